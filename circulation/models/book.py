from sqlalchemy import Column, String, DateTime, Integer, Numeric, Text, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base

COPY_AVAILABLE = "available"
COPY_BORROWED = "borrowed"
COPY_DAMAGED = "damaged"
COPY_DISPOSED = "disposed"

class Book(Base):
    __tablename__ = "book"
    
    book_id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    editions = relationship("BookEdition", back_populates="book", cascade="all, delete-orphan")
    
    def to_dict(self):
        return {
            "id": str(self.book_id),
            "code": self.code,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "description": self.description,
        }

class BookEdition(Base):
    __tablename__ = "book_edition"
    
    edition_id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("book.book_id", ondelete="CASCADE"), nullable=False, index=True)
    publisher = Column(String(255), nullable=True)
    publish_year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    book = relationship("Book", back_populates="editions")
    copies = relationship("BookCopy", back_populates="edition", cascade="all, delete-orphan")
    
    def to_dict(self):
        return {
            "id": str(self.edition_id),
            "bookId": str(self.book_id),
            "publisher": self.publisher,
            "publishYear": self.publish_year,
        }

class BookCopy(Base):
    __tablename__ = "book_copy"
    
    copy_id = Column(Integer, primary_key=True, autoincrement=True)
    edition_id = Column(Integer, ForeignKey("book_edition.edition_id", ondelete="CASCADE"), nullable=False, index=True)
    copy_number = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), default=0, nullable=False)  # used to compute fines
    status = Column(String(50), default=COPY_AVAILABLE, nullable=False, index=True)
    condition_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    edition = relationship("BookEdition", back_populates="copies")
    borrow_details = relationship("BorrowDetail", back_populates="copy")
    
    __table_args__ = (
        UniqueConstraint("edition_id", "copy_number", name="uq_copy_number_per_edition"),
        CheckConstraint("status IN ('available', 'borrowed', 'damaged', 'disposed')", name="chk_copy_status"),
    )
    
    @property
    def book(self):
        return self.edition.book if self.edition else None
    
    def to_dict(self):
        book = self.book
        return {
            "id": str(self.copy_id),
            "editionId": str(self.edition_id),
            "copyNumber": self.copy_number,
            "price": float(self.price or 0),
            "status": self.status,
            "conditionNotes": self.condition_notes,
            "book": book.to_dict() if book else None,
        }
