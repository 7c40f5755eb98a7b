from pydantic import BaseModel, EmailStr, Field
from typing import Optional

class UserCreate(BaseModel):
    """Self-service signup; always creates a reader."""
    user_fname: str = Field(..., min_length=1, max_length=100)
    user_lname: str = Field(..., min_length=1, max_length=100)
    user_email: EmailStr
    password: str = Field(..., min_length=6)
    phone_number: Optional[str] = Field(None, max_length=20)

class StaffCreate(UserCreate):
    user_role: str = Field("librarian", pattern="^(librarian|admin)$")

class UserLogin(BaseModel):
    user_email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    phoneNumber: Optional[str] = None
    role: str
    isStaff: bool
    libraryCardId: Optional[str] = None
    cardNumber: Optional[str] = None

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
