from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date

class BorrowRequestCreate(BaseModel):
    """Readers borrow on their own card; staff must name the card."""
    library_card_id: Optional[int] = Field(None, ge=1)
    book_copy_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = None

class ApproveRequest(BaseModel):
    notes: Optional[str] = None

class IssueRequest(BaseModel):
    notes: Optional[str] = None

class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)

class ExtendRequest(BaseModel):
    new_due_date: date
    notes: Optional[str] = None

class ReturnItemIn(BaseModel):
    book_copy_id: int
    return_condition: str = Field("normal", pattern="^(normal|damaged|lost)$")
    notes: Optional[str] = None

class ReturnRequest(BaseModel):
    returns: List[ReturnItemIn] = Field(default_factory=list)

class BorrowDetailResponse(BaseModel):
    id: str
    bookCopyId: str
    copyNumber: Optional[int] = None
    bookTitle: Optional[str] = None
    bookCode: Optional[str] = None
    price: Optional[float] = None
    actualReturnDate: Optional[date] = None
    returnCondition: Optional[str] = None
    notes: Optional[str] = None

class FineResponse(BaseModel):
    id: str
    borrowRequestId: str
    borrowDetailId: str
    bookCopyId: str
    amount: float
    reason: str
    status: str
    paidDate: Optional[date] = None
    collectedBy: Optional[str] = None
    
    class Config:
        from_attributes = True

class BorrowRequestResponse(BaseModel):
    id: str
    libraryCardId: str
    createdBy: Optional[str] = None
    approvedBy: Optional[str] = None
    requestDate: date
    borrowDate: Optional[date] = None
    dueDate: date
    status: str
    storedStatus: str
    notes: Optional[str] = None
    details: List[BorrowDetailResponse] = []
    fines: List[FineResponse] = []
    
    class Config:
        from_attributes = True

class ReturnItemResultResponse(BaseModel):
    bookCopyId: str
    success: bool
    fineAmount: float
    daysOverdue: int
    fineId: Optional[str] = None
    error: Optional[str] = None

class ReturnResultResponse(BaseModel):
    borrowRequestId: str
    status: str
    totalFine: float
    fines: List[FineResponse] = []
    items: List[ReturnItemResultResponse] = []
    allReturned: bool

class FinePreviewItem(BaseModel):
    bookCopyId: str
    condition: str
    daysOverdue: int
    amount: float
    reason: str
