"""Borrow request operations: creation and the staff-driven transitions."""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from circulation.exceptions import NotFound, PermissionDenied, StateConflict, ValidationFailed
from circulation.models.book import BookCopy, COPY_AVAILABLE, COPY_BORROWED, COPY_DISPOSED
from circulation.models.borrow import BorrowRequest, BorrowDetail
from circulation.models.library_card import LibraryCard, CARD_ACTIVE
from circulation.models.user import User
from circulation.services import lifecycle
from circulation.services.notifications import notification_service
from circulation.services.system_settings import LibrarySettings, load_settings
from circulation.utils.timezone import today_local

logger = logging.getLogger(__name__)


def require_staff(actor: User, action: str = "perform this action"):
    if not actor.is_staff:
        raise PermissionDenied(f"Only librarians and admins can {action}")


def get_borrow_request(db: Session, borrow_request_id: int) -> BorrowRequest:
    borrow_request = db.query(BorrowRequest).filter(
        BorrowRequest.borrow_request_id == borrow_request_id
    ).first()
    if not borrow_request:
        raise NotFound("Borrow request not found")
    return borrow_request


def ensure_can_view(borrow_request: BorrowRequest, actor: User):
    """Readers only see requests made on their own card."""
    if actor.is_staff:
        return
    card = actor.library_card
    if not card or borrow_request.library_card_id != card.library_card_id:
        raise PermissionDenied("You do not have access to this borrow request")


def list_borrow_requests(
    db: Session,
    status: Optional[str] = None,
    library_card_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[BorrowRequest]:
    """List requests, newest first. ``overdue`` filters on the derived status."""
    query = db.query(BorrowRequest)
    if library_card_id:
        query = query.filter(BorrowRequest.library_card_id == library_card_id)
    if status == lifecycle.STATUS_OVERDUE:
        query = query.filter(
            BorrowRequest.status == lifecycle.STATUS_BORROWED,
            BorrowRequest.due_date < (today or today_local()),
        )
    elif status:
        query = query.filter(BorrowRequest.status == status)
    return query.order_by(BorrowRequest.borrow_request_id.desc()).all()


def outstanding_copy_count(db: Session, library_card_id: int) -> int:
    """Copies held or reserved on a card: open details of approved/borrowed requests."""
    return db.query(BorrowDetail).join(BorrowRequest).filter(
        BorrowRequest.library_card_id == library_card_id,
        BorrowRequest.status.in_(lifecycle.ACTIVE_STATUSES),
        BorrowDetail.actual_return_date.is_(None),
    ).count()


def _resolve_card(db: Session, actor: User, library_card_id: Optional[int]) -> LibraryCard:
    if not actor.is_staff:
        # Readers always borrow on their own card
        if not actor.library_card:
            raise ValidationFailed.single(
                "library_card_id",
                "You do not have a library card yet. Please ask a librarian to issue one.",
            )
        return actor.library_card
    if not library_card_id:
        raise ValidationFailed.single("library_card_id", "Please select a library card")
    card = db.query(LibraryCard).filter(LibraryCard.library_card_id == library_card_id).first()
    if not card:
        raise NotFound("Library card not found")
    return card


def create_borrow_request(
    db: Session,
    actor: User,
    book_copy_ids: Sequence[int],
    library_card_id: Optional[int] = None,
    notes: Optional[str] = None,
    library_settings: Optional[LibrarySettings] = None,
    today: Optional[date] = None,
) -> BorrowRequest:
    """Create a pending request for the given copies.

    The due date is the request date plus ``max_borrow_days``. The card must
    be active, unexpired and hold the minimum deposit, and the new copies
    must fit under ``max_books_per_user``.
    """
    today = today or today_local()
    library_settings = library_settings or load_settings(db)
    copy_ids = list(book_copy_ids or [])

    if not copy_ids:
        raise ValidationFailed.single("book_copy_ids", "Please select at least one book copy")
    if len(set(copy_ids)) != len(copy_ids):
        raise ValidationFailed.single("book_copy_ids", "The same book copy is listed more than once")

    card = _resolve_card(db, actor, library_card_id)
    if card.status != CARD_ACTIVE:
        raise ValidationFailed.single("library_card_id", "Library card is not active")
    if card.expiry_date < today:
        raise ValidationFailed.single("library_card_id", "Library card has expired")
    if Decimal(card.deposit_amount or 0) < library_settings.min_deposit_amount:
        raise ValidationFailed.single(
            "library_card_id",
            f"Deposit balance is too low. At least {library_settings.min_deposit_amount:,.0f} is required to borrow.",
        )

    current = outstanding_copy_count(db, card.library_card_id)
    if current + len(copy_ids) > library_settings.max_books_per_user:
        raise ValidationFailed.single(
            "book_copy_ids",
            f"Borrowing limit exceeded ({library_settings.max_books_per_user}). Currently borrowed: {current}",
        )

    copies = db.query(BookCopy).filter(BookCopy.copy_id.in_(copy_ids)).all()
    if len(copies) != len(copy_ids):
        found = {copy.copy_id for copy in copies}
        missing = [copy_id for copy_id in copy_ids if copy_id not in found]
        raise ValidationFailed.single("book_copy_ids", f"Book copies not found: {missing}")

    if actor.is_staff:
        blocked = [c.copy_id for c in copies if c.status in (COPY_DISPOSED, COPY_BORROWED)]
        if blocked:
            raise ValidationFailed.single("book_copy_ids", f"Book copies cannot be lent: {blocked}")
    else:
        unavailable = [c.copy_id for c in copies if c.status != COPY_AVAILABLE]
        if unavailable:
            raise ValidationFailed.single("book_copy_ids", f"Book copies are not available: {unavailable}")

    borrow_request = BorrowRequest(
        library_card_id=card.library_card_id,
        created_by=actor.user_id,
        request_date=today,
        due_date=lifecycle.due_date_for(today, library_settings.max_borrow_days),
        status=lifecycle.STATUS_PENDING,
        notes=notes,
    )
    borrow_request.details = [BorrowDetail(book_copy_id=copy_id) for copy_id in copy_ids]
    db.add(borrow_request)
    db.commit()
    db.refresh(borrow_request)

    logger.info(
        f"Borrow request {borrow_request.borrow_request_id} created on card {card.library_card_id} "
        f"for copies {copy_ids} by user {actor.user_id}"
    )
    notification_service.borrow_event("borrow_request.created", borrow_request)
    return borrow_request


def approve_borrow_request(db: Session, borrow_request_id: int, staff: User, notes: Optional[str] = None) -> BorrowRequest:
    require_staff(staff, "approve borrow requests")
    borrow_request = get_borrow_request(db, borrow_request_id)
    lifecycle.check_transition(borrow_request.status, lifecycle.STATUS_APPROVED)

    borrow_request.status = lifecycle.STATUS_APPROVED
    borrow_request.approved_by = staff.user_id
    if notes:
        borrow_request.notes = notes
    db.commit()
    db.refresh(borrow_request)

    logger.info(f"Borrow request {borrow_request_id} approved by user {staff.user_id}")
    notification_service.borrow_event("borrow_request.approved", borrow_request)
    return borrow_request


def issue_books(
    db: Session,
    borrow_request_id: int,
    staff: User,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> BorrowRequest:
    """Hand the copies of an approved request to the reader."""
    require_staff(staff, "issue books")
    borrow_request = get_borrow_request(db, borrow_request_id)
    lifecycle.check_transition(borrow_request.status, lifecycle.STATUS_BORROWED)

    copies = [detail.copy for detail in borrow_request.details]
    blocked = [copy.copy_id for copy in copies if copy.status in (COPY_BORROWED, COPY_DISPOSED)]
    if blocked:
        raise StateConflict(f"Book copies are already lent out or disposed: {blocked}")

    for copy in copies:
        copy.status = COPY_BORROWED
    borrow_request.status = lifecycle.STATUS_BORROWED
    borrow_request.borrow_date = today or today_local()
    if notes:
        borrow_request.notes = notes
    db.commit()
    db.refresh(borrow_request)

    logger.info(f"Borrow request {borrow_request_id} issued ({len(copies)} copies) by user {staff.user_id}")
    notification_service.borrow_event("borrow_request.issued", borrow_request)
    return borrow_request


def reject_borrow_request(db: Session, borrow_request_id: int, staff: User, reason: str) -> BorrowRequest:
    require_staff(staff, "reject borrow requests")
    if not reason or not reason.strip():
        raise ValidationFailed.single("reason", "Please enter a reason for rejection")
    borrow_request = get_borrow_request(db, borrow_request_id)
    lifecycle.check_transition(borrow_request.status, lifecycle.STATUS_REJECTED)

    borrow_request.status = lifecycle.STATUS_REJECTED
    borrow_request.approved_by = staff.user_id
    borrow_request.notes = reason.strip()
    db.commit()
    db.refresh(borrow_request)

    logger.info(f"Borrow request {borrow_request_id} rejected by user {staff.user_id}")
    notification_service.borrow_event("borrow_request.rejected", borrow_request, reason=borrow_request.notes)
    return borrow_request


def cancel_borrow_request(db: Session, borrow_request_id: int, actor: User) -> BorrowRequest:
    """Withdraw a pending request. Readers may only cancel their own."""
    borrow_request = get_borrow_request(db, borrow_request_id)
    ensure_can_view(borrow_request, actor)
    if borrow_request.status != lifecycle.STATUS_PENDING:
        raise StateConflict("Only pending borrow requests can be cancelled")
    lifecycle.check_transition(borrow_request.status, lifecycle.STATUS_CANCELLED)

    borrow_request.status = lifecycle.STATUS_CANCELLED
    db.commit()
    db.refresh(borrow_request)

    logger.info(f"Borrow request {borrow_request_id} cancelled by user {actor.user_id}")
    notification_service.borrow_event("borrow_request.cancelled", borrow_request)
    return borrow_request


def extend_borrow_request(
    db: Session,
    borrow_request_id: int,
    staff: User,
    new_due_date: date,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> BorrowRequest:
    require_staff(staff, "extend borrow requests")
    borrow_request = get_borrow_request(db, borrow_request_id)
    lifecycle.check_extension(borrow_request.status, borrow_request.due_date, new_due_date, today or today_local())

    previous = borrow_request.due_date
    borrow_request.due_date = new_due_date
    if notes:
        borrow_request.notes = notes
    db.commit()
    db.refresh(borrow_request)

    logger.info(f"Borrow request {borrow_request_id} extended from {previous} to {new_due_date} by user {staff.user_id}")
    notification_service.borrow_event("borrow_request.extended", borrow_request, previousDueDate=previous.isoformat())
    return borrow_request
