from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from sqlalchemy import or_
from circulation.database import get_db
from circulation.models.book import Book, BookEdition, BookCopy
from circulation.models.user import User
from circulation.services.auth import get_current_staff
from circulation.schemas.book import (
    BookResponse, BookCreate,
    EditionResponse, EditionCreate,
    BookCopyResponse, BookCopyCreate,
)

router = APIRouter(prefix="/api/library", tags=["Library Books"])

# Book endpoints
@router.get("/books", response_model=List[BookResponse])
async def get_books(
    search: Optional[str] = Query(None, description="Search by title, author, or code"),
    category: Optional[str] = Query(None, description="Filter by category"),
    db: Session = Depends(get_db)
):
    """Get list of books with optional search and filter."""
    query = db.query(Book)
    
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Book.title.ilike(search_term),
                Book.author.ilike(search_term),
                Book.code.ilike(search_term)
            )
        )
    
    if category:
        query = query.filter(Book.category == category)
    
    books = query.order_by(Book.title).all()
    return [BookResponse.model_validate(book.to_dict()) for book in books]

@router.get("/books/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, db: Session = Depends(get_db)):
    """Get book details by ID."""
    book = db.query(Book).filter(Book.book_id == book_id).first()
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return BookResponse.model_validate(book.to_dict())

@router.get("/books/{book_id}/copies", response_model=List[BookCopyResponse])
async def get_book_copies(book_id: int, db: Session = Depends(get_db)):
    """Get all copies of a book across its editions."""
    copies = db.query(BookCopy).join(BookEdition).filter(
        BookEdition.book_id == book_id
    ).order_by(BookCopy.edition_id, BookCopy.copy_number).all()
    return [BookCopyResponse.model_validate(copy.to_dict()) for copy in copies]

@router.post("/books", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Add a book to the catalog."""
    if db.query(Book).filter(Book.code == book_data.code).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Book code already exists"
        )
    book = Book(**book_data.model_dump())
    db.add(book)
    db.commit()
    db.refresh(book)
    return BookResponse.model_validate(book.to_dict())

@router.post("/editions", response_model=EditionResponse, status_code=status.HTTP_201_CREATED)
async def create_edition(
    edition_data: EditionCreate,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Add a published edition of a book."""
    if not db.query(Book).filter(Book.book_id == edition_data.book_id).first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    edition = BookEdition(**edition_data.model_dump())
    db.add(edition)
    db.commit()
    db.refresh(edition)
    return EditionResponse.model_validate(edition.to_dict())

@router.post("/copies", response_model=BookCopyResponse, status_code=status.HTTP_201_CREATED)
async def create_copy(
    copy_data: BookCopyCreate,
    current_user: User = Depends(get_current_staff),
    db: Session = Depends(get_db)
):
    """Register a physical copy of an edition."""
    if not db.query(BookEdition).filter(BookEdition.edition_id == copy_data.edition_id).first():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Edition not found"
        )
    duplicate = db.query(BookCopy).filter(
        BookCopy.edition_id == copy_data.edition_id,
        BookCopy.copy_number == copy_data.copy_number
    ).first()
    if duplicate:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Copy number {copy_data.copy_number} already exists for this edition"
        )
    copy = BookCopy(**copy_data.model_dump())
    db.add(copy)
    db.commit()
    db.refresh(copy)
    return BookCopyResponse.model_validate(copy.to_dict())
