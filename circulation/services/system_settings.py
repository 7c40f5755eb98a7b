import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional

from sqlalchemy.orm import Session

from circulation.config import settings
from circulation.exceptions import ValidationFailed
from circulation.models.system_setting import SystemSetting

logger = logging.getLogger(__name__)

FINE_RATE_PERCENT = "fine_rate_percent"
MAX_BORROW_DAYS = "max_borrow_days"
MAX_BOOKS_PER_USER = "max_books_per_user"
MIN_DEPOSIT_AMOUNT = "min_deposit_amount"

SETTING_DESCRIPTIONS = {
    FINE_RATE_PERCENT: "Daily late fine, percent of the copy price",
    MAX_BORROW_DAYS: "Days between request and due date",
    MAX_BOOKS_PER_USER: "Copies a card may hold at once",
    MIN_DEPOSIT_AMOUNT: "Deposit required on a card before borrowing",
}


@dataclass(frozen=True)
class LibrarySettings:
    """Circulation parameters passed explicitly into each operation."""
    fine_rate_percent: Decimal
    max_borrow_days: int
    max_books_per_user: int
    min_deposit_amount: Decimal

    @classmethod
    def defaults(cls) -> "LibrarySettings":
        return cls(
            fine_rate_percent=Decimal(settings.default_fine_rate_percent),
            max_borrow_days=settings.default_max_borrow_days,
            max_books_per_user=settings.default_max_books_per_user,
            min_deposit_amount=Decimal(settings.default_min_deposit_amount),
        )

    def to_dict(self) -> Dict:
        data = asdict(self)
        data[FINE_RATE_PERCENT] = float(self.fine_rate_percent)
        data[MIN_DEPOSIT_AMOUNT] = float(self.min_deposit_amount)
        return data


def _parse_decimal(raw: Optional[str]) -> Optional[Decimal]:
    if raw is None:
        return None
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def _parse_int(raw: Optional[str]) -> Optional[int]:
    value = _parse_decimal(raw)
    if value is None or value != value.to_integral_value():
        return None
    return int(value)


def _raw_settings(db: Session) -> Dict[str, str]:
    return {row.setting_key: row.setting_value for row in db.query(SystemSetting).all()}


def load_settings(db: Session) -> LibrarySettings:
    """Read circulation settings, falling back to defaults per key."""
    raw = _raw_settings(db)
    defaults = LibrarySettings.defaults()

    def pick(key, parser, default):
        value = parser(raw.get(key))
        if value is None:
            if key in raw:
                logger.warning(f"Unparsable system setting {key}={raw[key]!r}, using default {default}")
            return default
        return value

    return LibrarySettings(
        fine_rate_percent=pick(FINE_RATE_PERCENT, _parse_decimal, defaults.fine_rate_percent),
        max_borrow_days=pick(MAX_BORROW_DAYS, _parse_int, defaults.max_borrow_days),
        max_books_per_user=pick(MAX_BOOKS_PER_USER, _parse_int, defaults.max_books_per_user),
        min_deposit_amount=pick(MIN_DEPOSIT_AMOUNT, _parse_decimal, defaults.min_deposit_amount),
    )


def all_settings(db: Session) -> Dict[str, object]:
    """Effective circulation settings merged with any extra stored keys."""
    merged: Dict[str, object] = dict(_raw_settings(db))
    merged.update(load_settings(db).to_dict())
    return merged


def update_settings(db: Session, updates: Mapping[str, object]) -> Dict[str, object]:
    """Upsert settings in one commit. Known keys must be non-negative numbers."""
    parsers = {
        FINE_RATE_PERCENT: _parse_decimal,
        MAX_BORROW_DAYS: _parse_int,
        MAX_BOOKS_PER_USER: _parse_int,
        MIN_DEPOSIT_AMOUNT: _parse_decimal,
    }
    errors = []
    for key, value in updates.items():
        parser = parsers.get(key)
        if parser is not None and parser(None if value is None else str(value)) is None:
            errors.append({"field": key, "message": f"{key} must be a non-negative number"})
    if MAX_BORROW_DAYS in updates and not errors and _parse_int(str(updates[MAX_BORROW_DAYS])) == 0:
        errors.append({"field": MAX_BORROW_DAYS, "message": f"{MAX_BORROW_DAYS} must be at least 1"})
    if errors:
        raise ValidationFailed(errors, message="Invalid system settings")

    existing = {row.setting_key: row for row in db.query(SystemSetting).all()}
    for key, value in updates.items():
        row = existing.get(key)
        if row is None:
            db.add(SystemSetting(
                setting_key=key,
                setting_value=str(value),
                description=SETTING_DESCRIPTIONS.get(key),
            ))
        elif row.setting_value != str(value):
            row.setting_value = str(value)
    db.commit()
    logger.info(f"System settings updated: {sorted(updates)}")
    return all_settings(db)
