"""Borrow request state machine.

Stored statuses move ``pending -> approved -> borrowed -> returned``, with
``pending -> rejected`` (staff decline) and ``pending -> cancelled``
(withdrawn before approval). ``overdue`` is never stored: it is projected
from the due date whenever a borrowed request is read.
"""
from datetime import date, timedelta
from typing import Optional

from circulation.exceptions import StateConflict, ValidationFailed

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_BORROWED = "borrowed"
STATUS_RETURNED = "returned"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"
STATUS_OVERDUE = "overdue"  # derived only

STORED_STATUSES = (
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_BORROWED,
    STATUS_RETURNED,
    STATUS_REJECTED,
    STATUS_CANCELLED,
)

TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED, STATUS_CANCELLED},
    STATUS_APPROVED: {STATUS_BORROWED},
    STATUS_BORROWED: {STATUS_RETURNED},
}

# Requests whose copies count against the card's borrowing limit
ACTIVE_STATUSES = (STATUS_APPROVED, STATUS_BORROWED)
EXTENDABLE_STATUSES = (STATUS_APPROVED, STATUS_BORROWED)


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise StateConflict(f"Cannot move borrow request from '{current}' to '{target}'")


def due_date_for(request_date: date, max_borrow_days: int) -> date:
    return request_date + timedelta(days=max_borrow_days)


def is_overdue(status: str, due_date: Optional[date], today: date) -> bool:
    return status == STATUS_BORROWED and due_date is not None and today > due_date


def display_status(status: str, due_date: Optional[date], today: date) -> str:
    """Status as shown to callers, with overdue computed at read time."""
    if is_overdue(status, due_date, today):
        return STATUS_OVERDUE
    return status


def earliest_extension_exclusive(current_due: date, today: date) -> date:
    """The new due date must be strictly after this day."""
    tomorrow = today + timedelta(days=1)
    return max(tomorrow, current_due)


def check_extension(status: str, current_due: date, new_due: date, today: date) -> None:
    if status not in EXTENDABLE_STATUSES:
        raise StateConflict(f"Cannot extend a borrow request in status '{status}'")
    limit = earliest_extension_exclusive(current_due, today)
    if new_due <= limit:
        raise ValidationFailed.single(
            "new_due_date",
            f"New due date must be after {limit.isoformat()}",
        )
