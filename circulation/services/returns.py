"""Return processing for borrowed copies.

Each selected copy is handled on its own: a copy that does not belong to
the request or was already returned is reported back as a failed item,
and the rest of the batch still goes through. The return stamp is a
conditional update on ``actual_return_date IS NULL`` so two concurrent
returns of the same copy cannot both charge a fine.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from circulation.exceptions import StateConflict, ValidationFailed
from circulation.models.book import COPY_AVAILABLE, COPY_DAMAGED, COPY_DISPOSED
from circulation.models.borrow import BorrowDetail
from circulation.models.finance import Fine, FINE_UNPAID
from circulation.models.user import User
from circulation.services import lifecycle
from circulation.services.borrowing import get_borrow_request, require_staff
from circulation.services.fines import (
    CONDITION_DAMAGED,
    CONDITION_LOST,
    CONDITION_NORMAL,
    CONDITION_RATES,
    compute_fine,
    days_overdue,
    describe_fine,
)
from circulation.services.notifications import notification_service
from circulation.services.system_settings import LibrarySettings, load_settings
from circulation.utils.timezone import today_local

logger = logging.getLogger(__name__)

COPY_STATUS_AFTER_RETURN = {
    CONDITION_NORMAL: COPY_AVAILABLE,
    CONDITION_DAMAGED: COPY_DAMAGED,
    CONDITION_LOST: COPY_DISPOSED,
}

# Requests that may receive return calls; returned ones only yield per-item failures
RETURNABLE_STATUSES = (lifecycle.STATUS_BORROWED, lifecycle.STATUS_RETURNED)


@dataclass
class ReturnSelection:
    book_copy_id: int
    condition: str = CONDITION_NORMAL
    notes: Optional[str] = None


@dataclass
class ReturnItemResult:
    book_copy_id: int
    success: bool
    fine_amount: Decimal = Decimal("0.00")
    days_overdue: int = 0
    fine_id: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self):
        return {
            "bookCopyId": str(self.book_copy_id),
            "success": self.success,
            "fineAmount": float(self.fine_amount),
            "daysOverdue": self.days_overdue,
            "fineId": str(self.fine_id) if self.fine_id else None,
            "error": self.error,
        }


@dataclass
class ReturnResult:
    borrow_request_id: int
    status: str
    total_fine: Decimal = Decimal("0.00")
    fines: List[Fine] = field(default_factory=list)
    items: List[ReturnItemResult] = field(default_factory=list)
    all_returned: bool = False

    def to_dict(self):
        return {
            "borrowRequestId": str(self.borrow_request_id),
            "status": self.status,
            "totalFine": float(self.total_fine),
            "fines": [fine.to_dict() for fine in self.fines],
            "items": [item.to_dict() for item in self.items],
            "allReturned": self.all_returned,
        }


def _validate_selections(selections: Sequence[ReturnSelection]):
    if not selections:
        raise ValidationFailed.single("returns", "Please select at least one book copy to return")
    errors = [
        {"field": f"returns[{index}].condition", "message": f"Unknown return condition '{selection.condition}'"}
        for index, selection in enumerate(selections)
        if selection.condition not in CONDITION_RATES
    ]
    if errors:
        raise ValidationFailed(errors, message="Invalid return conditions")


def preview_return(
    db: Session,
    borrow_request_id: int,
    selections: Sequence[ReturnSelection],
    library_settings: Optional[LibrarySettings] = None,
    on_date: Optional[date] = None,
) -> List[dict]:
    """Fines a return would create today, without writing anything."""
    _validate_selections(selections)
    library_settings = library_settings or load_settings(db)
    on_date = on_date or today_local()
    borrow_request = get_borrow_request(db, borrow_request_id)
    details = {detail.book_copy_id: detail for detail in borrow_request.outstanding_details()}
    days = days_overdue(borrow_request.due_date, on_date)

    preview = []
    for selection in selections:
        detail = details.get(selection.book_copy_id)
        if detail is None:
            continue
        amount = compute_fine(detail.copy.price, days, library_settings.fine_rate_percent, selection.condition)
        preview.append({
            "bookCopyId": str(selection.book_copy_id),
            "condition": selection.condition,
            "daysOverdue": days,
            "amount": float(amount),
            "reason": describe_fine(days, library_settings.fine_rate_percent, selection.condition),
        })
    return preview


def process_return(
    db: Session,
    borrow_request_id: int,
    selections: Sequence[ReturnSelection],
    staff: User,
    library_settings: Optional[LibrarySettings] = None,
    returned_on: Optional[date] = None,
) -> ReturnResult:
    require_staff(staff, "process returns")
    _validate_selections(selections)
    library_settings = library_settings or load_settings(db)
    returned_on = returned_on or today_local()

    borrow_request = get_borrow_request(db, borrow_request_id)
    if borrow_request.status not in RETURNABLE_STATUSES:
        raise StateConflict(f"Borrow request is not borrowed (status: {borrow_request.status})")

    details = {detail.book_copy_id: detail for detail in borrow_request.details}
    days = days_overdue(borrow_request.due_date, returned_on)
    result = ReturnResult(borrow_request_id=borrow_request_id, status=borrow_request.status)

    for selection in selections:
        copy_id = selection.book_copy_id
        detail = details.get(copy_id)
        if detail is None:
            logger.warning(f"Return rejected: copy {copy_id} is not part of borrow request {borrow_request_id}")
            result.items.append(ReturnItemResult(copy_id, False, error="Book copy does not belong to this borrow request"))
            continue
        if detail.actual_return_date is not None:
            logger.warning(f"Return rejected: copy {copy_id} on borrow request {borrow_request_id} already returned")
            result.items.append(ReturnItemResult(copy_id, False, error="Book copy has already been returned"))
            continue

        stamped = db.execute(
            update(BorrowDetail)
            .where(
                BorrowDetail.borrow_detail_id == detail.borrow_detail_id,
                BorrowDetail.actual_return_date.is_(None),
            )
            .values(
                actual_return_date=returned_on,
                return_condition=selection.condition,
                notes=selection.notes,
            )
        )
        if stamped.rowcount != 1:
            logger.warning(f"Return conflict: copy {copy_id} on borrow request {borrow_request_id} returned concurrently")
            result.items.append(ReturnItemResult(copy_id, False, error="Book copy has already been returned"))
            continue

        copy = detail.copy
        copy.status = COPY_STATUS_AFTER_RETURN[selection.condition]

        amount = compute_fine(copy.price, days, library_settings.fine_rate_percent, selection.condition)
        item = ReturnItemResult(copy_id, True, fine_amount=amount, days_overdue=days)
        if amount > 0:
            fine = Fine(
                borrow_request_id=borrow_request_id,
                borrow_detail_id=detail.borrow_detail_id,
                book_copy_id=copy_id,
                amount=amount,
                reason=describe_fine(days, library_settings.fine_rate_percent, selection.condition),
                status=FINE_UNPAID,
            )
            db.add(fine)
            db.flush()
            item.fine_id = fine.fine_id
            result.fines.append(fine)
            result.total_fine += amount
        result.items.append(item)

    db.flush()
    remaining = db.query(BorrowDetail).filter(
        BorrowDetail.borrow_request_id == borrow_request_id,
        BorrowDetail.actual_return_date.is_(None),
    ).count()
    result.all_returned = remaining == 0
    if result.all_returned and borrow_request.status == lifecycle.STATUS_BORROWED:
        lifecycle.check_transition(borrow_request.status, lifecycle.STATUS_RETURNED)
        borrow_request.status = lifecycle.STATUS_RETURNED
    db.commit()
    db.refresh(borrow_request)
    result.status = lifecycle.display_status(borrow_request.status, borrow_request.due_date, returned_on)

    returned = [item.book_copy_id for item in result.items if item.success]
    failed = [item.book_copy_id for item in result.items if not item.success]
    logger.info(
        f"Return on borrow request {borrow_request_id} by user {staff.user_id}: "
        f"returned={returned} failed={failed} total_fine={result.total_fine}"
    )
    if returned:
        notification_service.borrow_event(
            "borrow_request.returned",
            borrow_request,
            returnedCopyIds=returned,
            totalFine=float(result.total_fine),
            allReturned=result.all_returned,
        )
    return result
