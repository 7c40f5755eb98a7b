from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from circulation.database import get_db
from circulation.models.user import User
from circulation.services import finance
from circulation.services.auth import get_current_user, get_current_staff
from circulation.schemas.borrow import FineResponse
from circulation.schemas.finance import FineListResponse, FineSummary, DepositCreate, DepositResponse, MyDepositsResponse

router = APIRouter(prefix="/api", tags=["Finance"])

def _fine_list(fines) -> FineListResponse:
    return FineListResponse(
        data=[FineResponse.model_validate(fine.to_dict()) for fine in fines],
        summary=FineSummary(**finance.fine_summary(fines)),
    )

@router.get("/fines", response_model=FineListResponse)
async def list_fines(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(unpaid|paid)$"),
    library_card_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    return _fine_list(finance.list_fines(db, status=status_filter, library_card_id=library_card_id))

@router.get("/fines/my", response_model=FineListResponse)
async def list_my_fines(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    card = current_user.library_card
    if not card:
        return FineListResponse(data=[], summary=FineSummary(count=0, unpaid=0, paid=0))
    return _fine_list(finance.list_fines(db, library_card_id=card.library_card_id))

@router.put("/fines/pay-all/{borrow_request_id}")
async def pay_all_fines(
    borrow_request_id: int,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Pay every unpaid fine of a borrow request."""
    count = finance.pay_all_fines(db, borrow_request_id, current_user)
    return {"borrowRequestId": str(borrow_request_id), "paidCount": count}

@router.put("/fines/{fine_id}/pay", response_model=FineResponse)
async def pay_fine(
    fine_id: int,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    return FineResponse.model_validate(finance.pay_fine(db, fine_id, current_user).to_dict())

@router.delete("/fines/{fine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_fine(
    fine_id: int,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    finance.delete_fine(db, fine_id, current_user)

@router.post("/deposits", response_model=DepositResponse, status_code=status.HTTP_201_CREATED)
async def create_deposit(
    deposit_data: DepositCreate,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    transaction = finance.record_deposit(
        db, deposit_data.library_card_id, deposit_data.amount, current_user, notes=deposit_data.notes
    )
    return DepositResponse.model_validate(transaction.to_dict())

@router.post("/deposits/refund", response_model=DepositResponse, status_code=status.HTTP_201_CREATED)
async def refund_deposit(
    deposit_data: DepositCreate,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    transaction = finance.refund_deposit(
        db, deposit_data.library_card_id, deposit_data.amount, current_user, notes=deposit_data.notes
    )
    return DepositResponse.model_validate(transaction.to_dict())

@router.get("/deposits", response_model=List[DepositResponse])
async def list_deposits(
    type_filter: Optional[str] = Query(None, alias="type", pattern="^(deposit|refund)$"),
    library_card_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Deposit and refund history, newest first."""
    deposits = finance.list_deposits(db, type=type_filter, library_card_id=library_card_id)
    return [DepositResponse.model_validate(d.to_dict()) for d in deposits]

@router.get("/deposits/my", response_model=MyDepositsResponse)
async def list_my_deposits(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Transactions on the current reader's card and its deposit balance."""
    result = finance.card_deposits(db, current_user.library_card)
    return MyDepositsResponse(
        data=[DepositResponse.model_validate(d.to_dict()) for d in result["data"]],
        balance=float(result["balance"]),
    )
