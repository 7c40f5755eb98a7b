from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
from .auth import UserResponse

class LibraryCardCreate(BaseModel):
    user_id: int
    card_number: str = Field(..., min_length=1, max_length=20)
    expiry_date: date
    deposit_amount: float = Field(0, ge=0)

class LibraryCardResponse(BaseModel):
    id: str
    cardNumber: str
    userId: str
    issueDate: date
    expiryDate: date
    status: str
    depositAmount: float
    user: Optional[UserResponse] = None
    
    class Config:
        from_attributes = True

class LibraryCardRenew(BaseModel):
    new_expiry_date: date
