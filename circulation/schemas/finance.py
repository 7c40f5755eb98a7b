from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from .borrow import FineResponse

class FineSummary(BaseModel):
    count: int
    unpaid: float
    paid: float

class FineListResponse(BaseModel):
    data: List[FineResponse]
    summary: FineSummary

class DepositCreate(BaseModel):
    library_card_id: int
    amount: float = Field(..., gt=0)
    notes: Optional[str] = None

class DepositResponse(BaseModel):
    id: str
    libraryCardId: str
    type: str
    amount: float
    notes: Optional[str] = None
    staffId: Optional[str] = None
    createdAt: Optional[datetime] = None
    
    class Config:
        from_attributes = True

class MyDepositsResponse(BaseModel):
    data: List[DepositResponse]
    balance: float
