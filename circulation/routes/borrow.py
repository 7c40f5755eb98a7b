from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from circulation.database import get_db
from circulation.models.user import User
from circulation.services import borrowing, returns
from circulation.services.auth import get_current_user, get_current_staff
from circulation.schemas.borrow import (
    BorrowRequestCreate,
    ApproveRequest,
    IssueRequest,
    RejectRequest,
    ExtendRequest,
    ReturnRequest,
    BorrowRequestResponse,
    ReturnResultResponse,
    FinePreviewItem,
)

router = APIRouter(prefix="/api/borrow-requests", tags=["Borrow Requests"])

def _response(borrow_request) -> BorrowRequestResponse:
    return BorrowRequestResponse.model_validate(borrow_request.to_dict())

def _selections(return_data: ReturnRequest):
    return [
        returns.ReturnSelection(
            book_copy_id=item.book_copy_id,
            condition=item.return_condition,
            notes=item.notes,
        )
        for item in return_data.returns
    ]

@router.get("", response_model=List[BorrowRequestResponse])
async def list_borrow_requests(
    status_filter: Optional[str] = Query(None, alias="status", description="Stored status or 'overdue'"),
    library_card_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """List borrow requests for staff, newest first."""
    requests = borrowing.list_borrow_requests(db, status=status_filter, library_card_id=library_card_id)
    return [_response(r) for r in requests]

@router.get("/my", response_model=List[BorrowRequestResponse])
async def list_my_borrow_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Borrow requests on the current reader's card."""
    card = current_user.library_card
    if not card:
        return []
    requests = borrowing.list_borrow_requests(db, status=status_filter, library_card_id=card.library_card_id)
    return [_response(r) for r in requests]

@router.get("/{borrow_request_id}", response_model=BorrowRequestResponse)
async def get_borrow_request(
    borrow_request_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    borrow_request = borrowing.get_borrow_request(db, borrow_request_id)
    borrowing.ensure_can_view(borrow_request, current_user)
    return _response(borrow_request)

@router.post("", response_model=BorrowRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_borrow_request(
    request_data: BorrowRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a pending borrow request for one or more copies."""
    borrow_request = borrowing.create_borrow_request(
        db,
        current_user,
        request_data.book_copy_ids,
        library_card_id=request_data.library_card_id,
        notes=request_data.notes,
    )
    return _response(borrow_request)

@router.put("/{borrow_request_id}/approve", response_model=BorrowRequestResponse)
async def approve_borrow_request(
    borrow_request_id: int,
    request_data: Optional[ApproveRequest] = None,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    notes = request_data.notes if request_data else None
    return _response(borrowing.approve_borrow_request(db, borrow_request_id, current_user, notes=notes))

@router.put("/{borrow_request_id}/issue", response_model=BorrowRequestResponse)
async def issue_books(
    borrow_request_id: int,
    request_data: Optional[IssueRequest] = None,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Hand out the copies of an approved request."""
    notes = request_data.notes if request_data else None
    return _response(borrowing.issue_books(db, borrow_request_id, current_user, notes=notes))

@router.put("/{borrow_request_id}/reject", response_model=BorrowRequestResponse)
async def reject_borrow_request(
    borrow_request_id: int,
    request_data: RejectRequest,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    return _response(borrowing.reject_borrow_request(db, borrow_request_id, current_user, request_data.reason))

@router.put("/{borrow_request_id}/cancel", response_model=BorrowRequestResponse)
async def cancel_borrow_request(
    borrow_request_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Withdraw a pending request."""
    return _response(borrowing.cancel_borrow_request(db, borrow_request_id, current_user))

@router.put("/{borrow_request_id}/extend", response_model=BorrowRequestResponse)
async def extend_borrow_request(
    borrow_request_id: int,
    request_data: ExtendRequest,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    borrow_request = borrowing.extend_borrow_request(
        db, borrow_request_id, current_user, request_data.new_due_date, notes=request_data.notes
    )
    return _response(borrow_request)

@router.put("/{borrow_request_id}/return", response_model=ReturnResultResponse)
async def return_books(
    borrow_request_id: int,
    return_data: ReturnRequest,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Return selected copies; failures are reported per copy."""
    result = returns.process_return(db, borrow_request_id, _selections(return_data), current_user)
    return ReturnResultResponse.model_validate(result.to_dict())

@router.post("/{borrow_request_id}/fine-preview", response_model=List[FinePreviewItem])
async def preview_fines(
    borrow_request_id: int,
    return_data: ReturnRequest,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Fines the given return would create today; nothing is saved."""
    preview = returns.preview_return(db, borrow_request_id, _selections(return_data))
    return [FinePreviewItem.model_validate(item) for item in preview]
