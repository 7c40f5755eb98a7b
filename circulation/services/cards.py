"""Library card status changes: renew, lock and unlock."""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from circulation.exceptions import NotFound, StateConflict, ValidationFailed
from circulation.models.library_card import LibraryCard, CARD_ACTIVE, CARD_EXPIRED, CARD_LOCKED
from circulation.models.user import User
from circulation.services.borrowing import require_staff
from circulation.services.notifications import notification_service
from circulation.utils.timezone import today_local

logger = logging.getLogger(__name__)


def get_card(db: Session, library_card_id: int) -> LibraryCard:
    card = db.query(LibraryCard).filter(LibraryCard.library_card_id == library_card_id).first()
    if not card:
        raise NotFound("Library card not found")
    return card


def _save(db: Session, card: LibraryCard, event: str, staff: User) -> LibraryCard:
    db.commit()
    db.refresh(card)
    logger.info(f"Library card {card.library_card_id} {event} by user {staff.user_id} (status: {card.status})")
    notification_service.publish(
        f"library_card.{event}",
        card.library_card_id,
        {"status": card.status, "expiryDate": card.expiry_date.isoformat()},
    )
    return card


def renew_card(
    db: Session,
    library_card_id: int,
    staff: User,
    new_expiry_date: Optional[date],
    today: Optional[date] = None,
) -> LibraryCard:
    """Move the expiry date forward and reactivate an expired card.

    Locked cards stay locked; they have to be unlocked first.
    """
    require_staff(staff, "renew library cards")
    today = today or today_local()
    if new_expiry_date is None:
        raise ValidationFailed.single("new_expiry_date", "Please enter the new expiry date")
    if new_expiry_date <= today:
        raise ValidationFailed.single("new_expiry_date", "New expiry date must be after today")

    card = get_card(db, library_card_id)
    if card.status == CARD_LOCKED:
        raise StateConflict("Library card is locked. Unlock it before renewing")
    card.expiry_date = new_expiry_date
    card.status = CARD_ACTIVE
    return _save(db, card, "renewed", staff)


def lock_card(db: Session, library_card_id: int, staff: User) -> LibraryCard:
    require_staff(staff, "lock library cards")
    card = get_card(db, library_card_id)
    if card.status == CARD_LOCKED:
        raise StateConflict("Library card is already locked")
    card.status = CARD_LOCKED
    return _save(db, card, "locked", staff)


def unlock_card(db: Session, library_card_id: int, staff: User, today: Optional[date] = None) -> LibraryCard:
    """Unlock a card; it comes back as expired when its expiry date has passed."""
    require_staff(staff, "unlock library cards")
    card = get_card(db, library_card_id)
    if card.status != CARD_LOCKED:
        raise StateConflict("Library card is not locked")
    card.status = CARD_EXPIRED if card.expiry_date < (today or today_local()) else CARD_ACTIVE
    return _save(db, card, "unlocked", staff)
