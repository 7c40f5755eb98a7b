from pydantic import BaseModel, Field
from typing import Optional

class BookBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = None
    description: Optional[str] = None

class BookCreate(BookBase):
    pass

class BookResponse(BookBase):
    id: str
    
    class Config:
        from_attributes = True

class EditionCreate(BaseModel):
    book_id: int
    publisher: Optional[str] = Field(None, max_length=255)
    publish_year: Optional[int] = Field(None, ge=0)

class EditionResponse(BaseModel):
    id: str
    bookId: str
    publisher: Optional[str] = None
    publishYear: Optional[int] = None
    
    class Config:
        from_attributes = True

class BookCopyCreate(BaseModel):
    edition_id: int
    copy_number: int = Field(..., gt=0)
    price: float = Field(0, ge=0)
    status: Optional[str] = Field("available", pattern="^(available|damaged|disposed)$")
    condition_notes: Optional[str] = None

class BookCopyResponse(BaseModel):
    id: str
    editionId: str
    copyNumber: int
    price: float
    status: str
    conditionNotes: Optional[str] = None
    book: Optional[BookResponse] = None
    
    class Config:
        from_attributes = True
