import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from circulation.exceptions import NotFound, StateConflict, ValidationFailed
from circulation.models.borrow import BorrowRequest
from circulation.models.finance import Fine, DepositTransaction, FINE_PAID, FINE_UNPAID, DEPOSIT_IN, DEPOSIT_REFUND
from circulation.models.library_card import LibraryCard
from circulation.models.user import User
from circulation.services import lifecycle
from circulation.services.borrowing import get_borrow_request, require_staff
from circulation.services.cards import get_card
from circulation.services.fines import to_money
from circulation.utils.timezone import today_local

logger = logging.getLogger(__name__)


def get_fine(db: Session, fine_id: int) -> Fine:
    fine = db.query(Fine).filter(Fine.fine_id == fine_id).first()
    if not fine:
        raise NotFound("Fine not found")
    return fine


def list_fines(db: Session, status: Optional[str] = None, library_card_id: Optional[int] = None) -> List[Fine]:
    query = db.query(Fine)
    if library_card_id:
        query = query.join(BorrowRequest).filter(BorrowRequest.library_card_id == library_card_id)
    if status:
        query = query.filter(Fine.status == status)
    return query.order_by(Fine.fine_id.desc()).all()


def fine_summary(fines: Iterable[Fine]) -> Dict[str, float]:
    unpaid = Decimal("0")
    paid = Decimal("0")
    count = 0
    for fine in fines:
        count += 1
        if fine.status == FINE_PAID:
            paid += Decimal(fine.amount)
        else:
            unpaid += Decimal(fine.amount)
    return {"count": count, "unpaid": float(unpaid), "paid": float(paid)}


def pay_fine(db: Session, fine_id: int, staff: User, today: Optional[date] = None) -> Fine:
    require_staff(staff, "collect fines")
    fine = get_fine(db, fine_id)
    if fine.status == FINE_PAID:
        raise StateConflict("Fine has already been paid")
    fine.status = FINE_PAID
    fine.paid_date = today or today_local()
    fine.collected_by = staff.user_id
    db.commit()
    db.refresh(fine)
    logger.info(f"Fine {fine_id} ({fine.amount}) paid, collected by user {staff.user_id}")
    return fine


def pay_all_fines(db: Session, borrow_request_id: int, staff: User, today: Optional[date] = None) -> int:
    """Mark every unpaid fine of a borrow request as paid; returns how many."""
    require_staff(staff, "collect fines")
    get_borrow_request(db, borrow_request_id)
    fines = db.query(Fine).filter(
        Fine.borrow_request_id == borrow_request_id,
        Fine.status == FINE_UNPAID,
    ).all()
    paid_on = today or today_local()
    for fine in fines:
        fine.status = FINE_PAID
        fine.paid_date = paid_on
        fine.collected_by = staff.user_id
    db.commit()
    logger.info(f"Paid {len(fines)} fines on borrow request {borrow_request_id}, collected by user {staff.user_id}")
    return len(fines)


def delete_fine(db: Session, fine_id: int, staff: User):
    require_staff(staff, "delete fines")
    fine = get_fine(db, fine_id)
    if fine.status == FINE_PAID:
        raise StateConflict("Cannot delete a fine that has already been paid")
    db.delete(fine)
    db.commit()
    logger.info(f"Fine {fine_id} deleted by user {staff.user_id}")


def record_deposit(db: Session, library_card_id: int, amount, staff: User, notes: Optional[str] = None) -> DepositTransaction:
    require_staff(staff, "record deposits")
    money = to_money(amount)
    if money <= 0:
        raise ValidationFailed.single("amount", "Deposit amount must be greater than 0")
    card = get_card(db, library_card_id)

    card.deposit_amount = Decimal(card.deposit_amount or 0) + money
    transaction = DepositTransaction(
        library_card_id=library_card_id,
        type=DEPOSIT_IN,
        amount=money,
        notes=notes,
        staff_id=staff.user_id,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    logger.info(f"Deposit of {money} recorded on card {library_card_id} by user {staff.user_id}")
    return transaction


def refund_deposit(db: Session, library_card_id: int, amount, staff: User, notes: Optional[str] = None) -> DepositTransaction:
    """Refund part or all of a card's deposit once nothing is owed or on loan."""
    require_staff(staff, "refund deposits")
    money = to_money(amount)
    if money <= 0:
        raise ValidationFailed.single("amount", "Refund amount must be greater than 0")
    card = get_card(db, library_card_id)
    if money > Decimal(card.deposit_amount or 0):
        raise ValidationFailed.single("amount", "Refund amount exceeds the deposit balance")

    active = db.query(BorrowRequest).filter(
        BorrowRequest.library_card_id == library_card_id,
        BorrowRequest.status == lifecycle.STATUS_BORROWED,
    ).count()
    if active:
        raise StateConflict("Cannot refund the deposit while books are still on loan")

    unpaid = db.query(Fine).join(BorrowRequest).filter(
        BorrowRequest.library_card_id == library_card_id,
        Fine.status == FINE_UNPAID,
    ).count()
    if unpaid:
        raise StateConflict("Please pay all fines before refunding the deposit")

    card.deposit_amount = Decimal(card.deposit_amount or 0) - money
    transaction = DepositTransaction(
        library_card_id=library_card_id,
        type=DEPOSIT_REFUND,
        amount=money,
        notes=notes,
        staff_id=staff.user_id,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    logger.info(f"Refund of {money} from card {library_card_id} by user {staff.user_id}")
    return transaction


def list_deposits(
    db: Session,
    type: Optional[str] = None,
    library_card_id: Optional[int] = None,
) -> List[DepositTransaction]:
    """Deposit and refund history, newest first."""
    query = db.query(DepositTransaction)
    if type:
        query = query.filter(DepositTransaction.type == type)
    if library_card_id:
        query = query.filter(DepositTransaction.library_card_id == library_card_id)
    return query.order_by(DepositTransaction.deposit_id.desc()).all()


def card_deposits(db: Session, card: Optional[LibraryCard]) -> Dict:
    """A reader's own transactions plus the card's current deposit balance."""
    if card is None:
        return {"data": [], "balance": Decimal("0.00")}
    return {
        "data": list_deposits(db, library_card_id=card.library_card_id),
        "balance": to_money(card.deposit_amount),
    }
