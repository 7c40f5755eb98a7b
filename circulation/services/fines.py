"""Fine calculation for returned book copies.

A returned copy can be charged for two independent reasons that add up:

* lateness: ``price * rate% * days_overdue`` when the copy comes back after
  the request's due date;
* condition: half the price when damaged, the full price when lost.

Every function here is pure so the same numbers can be shown as a preview
before a return and recorded when the return is processed.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CONDITION_NORMAL = "normal"
CONDITION_DAMAGED = "damaged"
CONDITION_LOST = "lost"

# Share of the copy price charged for the condition on return
CONDITION_RATES = {
    CONDITION_NORMAL: Decimal("0"),
    CONDITION_DAMAGED: Decimal("0.5"),
    CONDITION_LOST: Decimal("1"),
}

DEFAULT_FINE_RATE_PERCENT = Decimal("5")

CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def to_money(value: Any) -> Decimal:
    """Non-negative amount rounded to cents; anything unusable counts as 0."""
    number = _to_decimal(value)
    if number is None or number <= 0:
        return Decimal("0.00")
    return number.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_fine_rate(value: Any, default: Any = DEFAULT_FINE_RATE_PERCENT) -> Decimal:
    """Fine rate in percent from a raw setting value.

    Falls back to ``default`` when the value is missing or non-numeric.
    A negative rate charges nothing.
    """
    number = _to_decimal(value)
    if number is None:
        fallback = _to_decimal(default)
        return fallback if fallback is not None and fallback >= 0 else DEFAULT_FINE_RATE_PERCENT
    return max(number, Decimal("0"))


def _to_days(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def days_overdue(due_date: Optional[date], on_date: date) -> int:
    """Whole days between the due date and ``on_date``, never negative.

    Datetimes are reduced to their calendar date first, so any part of a
    late day counts as a full day.
    """
    if due_date is None:
        return 0
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    if isinstance(on_date, datetime):
        on_date = on_date.date()
    return max(0, (on_date - due_date).days)


def overdue_amount(copy_price: Any, days: int, fine_rate_percent: Any) -> Decimal:
    price = to_money(copy_price)
    rate = resolve_fine_rate(fine_rate_percent)
    days = _to_days(days)
    if days == 0:
        return Decimal("0.00")
    return (price * rate / Decimal(100) * Decimal(days)).quantize(CENT, rounding=ROUND_HALF_UP)


def condition_amount(copy_price: Any, condition: str) -> Decimal:
    if condition not in CONDITION_RATES:
        raise ValueError(f"Unknown return condition: {condition}")
    price = to_money(copy_price)
    return (price * CONDITION_RATES[condition]).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_fine(copy_price: Any, days: int, fine_rate_percent: Any, condition: str = CONDITION_NORMAL) -> Decimal:
    """Total fine for one copy: lateness charge plus condition charge."""
    return overdue_amount(copy_price, days, fine_rate_percent) + condition_amount(copy_price, condition)


def describe_fine(days: int, fine_rate_percent: Any, condition: str) -> str:
    """Reason text stored on the fine record."""
    parts = []
    days = _to_days(days)
    if days > 0:
        rate = resolve_fine_rate(fine_rate_percent).normalize()
        parts.append(f"Returned {days} day(s) late ({rate:f}% of price per day)")
    if condition == CONDITION_DAMAGED:
        parts.append("Book damaged (50% of price)")
    elif condition == CONDITION_LOST:
        parts.append("Book lost (100% of price)")
    return "; ".join(parts)
