from sqlalchemy import Column, String, DateTime, Date, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base
from circulation.services.lifecycle import STATUS_PENDING, display_status
from circulation.utils.timezone import today_local

class BorrowRequest(Base):
    __tablename__ = "borrow_request"
    
    borrow_request_id = Column(Integer, primary_key=True, autoincrement=True)
    library_card_id = Column(Integer, ForeignKey("library_card.library_card_id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    approved_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    request_date = Column(Date, nullable=False)
    borrow_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), default=STATUS_PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    library_card = relationship("LibraryCard", back_populates="borrow_requests")
    creator = relationship("User", foreign_keys=[created_by])
    approver = relationship("User", foreign_keys=[approved_by])
    details = relationship("BorrowDetail", back_populates="borrow_request", order_by="BorrowDetail.borrow_detail_id")
    fines = relationship("Fine", back_populates="borrow_request", order_by="Fine.fine_id")
    
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'borrowed', 'returned', 'rejected', 'cancelled')",
            name="chk_borrow_request_status",
        ),
        CheckConstraint("due_date >= request_date", name="chk_due_after_request"),
    )
    
    def outstanding_details(self):
        return [detail for detail in self.details if detail.actual_return_date is None]
    
    def to_dict(self, today=None):
        today = today or today_local()
        return {
            "id": str(self.borrow_request_id),
            "libraryCardId": str(self.library_card_id),
            "createdBy": str(self.created_by) if self.created_by else None,
            "approvedBy": str(self.approved_by) if self.approved_by else None,
            "requestDate": self.request_date.isoformat() if self.request_date else None,
            "borrowDate": self.borrow_date.isoformat() if self.borrow_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "status": display_status(self.status, self.due_date, today),
            "storedStatus": self.status,
            "notes": self.notes,
            "details": [detail.to_dict() for detail in self.details],
            "fines": [fine.to_dict() for fine in self.fines],
        }

class BorrowDetail(Base):
    __tablename__ = "borrow_detail"
    
    borrow_detail_id = Column(Integer, primary_key=True, autoincrement=True)
    borrow_request_id = Column(Integer, ForeignKey("borrow_request.borrow_request_id", ondelete="CASCADE"), nullable=False, index=True)
    book_copy_id = Column(Integer, ForeignKey("book_copy.copy_id", ondelete="RESTRICT"), nullable=False, index=True)
    actual_return_date = Column(Date, nullable=True)
    return_condition = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    borrow_request = relationship("BorrowRequest", back_populates="details")
    copy = relationship("BookCopy", back_populates="borrow_details")
    
    __table_args__ = (
        CheckConstraint(
            "return_condition IS NULL OR return_condition IN ('normal', 'damaged', 'lost')",
            name="chk_return_condition",
        ),
    )
    
    def to_dict(self):
        book = self.copy.book if self.copy else None
        return {
            "id": str(self.borrow_detail_id),
            "bookCopyId": str(self.book_copy_id),
            "copyNumber": self.copy.copy_number if self.copy else None,
            "bookTitle": book.title if book else None,
            "bookCode": book.code if book else None,
            "price": float(self.copy.price or 0) if self.copy else None,
            "actualReturnDate": self.actual_return_date.isoformat() if self.actual_return_date else None,
            "returnCondition": self.return_condition,
            "notes": self.notes,
        }
