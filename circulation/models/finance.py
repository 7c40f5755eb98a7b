from sqlalchemy import Column, String, DateTime, Date, Integer, Numeric, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base

FINE_UNPAID = "unpaid"
FINE_PAID = "paid"
DEPOSIT_IN = "deposit"
DEPOSIT_REFUND = "refund"

class Fine(Base):
    __tablename__ = "fine"
    
    fine_id = Column(Integer, primary_key=True, autoincrement=True)
    borrow_request_id = Column(Integer, ForeignKey("borrow_request.borrow_request_id", ondelete="CASCADE"), nullable=False, index=True)
    borrow_detail_id = Column(Integer, ForeignKey("borrow_detail.borrow_detail_id", ondelete="CASCADE"), nullable=False, unique=True)
    book_copy_id = Column(Integer, ForeignKey("book_copy.copy_id", ondelete="RESTRICT"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(String(255), nullable=False)
    status = Column(String(20), default=FINE_UNPAID, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)
    collected_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    borrow_request = relationship("BorrowRequest", back_populates="fines")
    copy = relationship("BookCopy")
    
    __table_args__ = (
        CheckConstraint("status IN ('unpaid', 'paid')", name="chk_fine_status"),
        CheckConstraint("amount > 0", name="chk_fine_amount_positive"),
    )
    
    def to_dict(self):
        return {
            "id": str(self.fine_id),
            "borrowRequestId": str(self.borrow_request_id),
            "borrowDetailId": str(self.borrow_detail_id),
            "bookCopyId": str(self.book_copy_id),
            "amount": float(self.amount),
            "reason": self.reason,
            "status": self.status,
            "paidDate": self.paid_date.isoformat() if self.paid_date else None,
            "collectedBy": str(self.collected_by) if self.collected_by else None,
        }

class DepositTransaction(Base):
    __tablename__ = "deposit_transaction"
    
    deposit_id = Column(Integer, primary_key=True, autoincrement=True)
    library_card_id = Column(Integer, ForeignKey("library_card.library_card_id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # deposit, refund
    amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    staff_id = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    library_card = relationship("LibraryCard", back_populates="deposits")
    
    __table_args__ = (
        CheckConstraint("type IN ('deposit', 'refund')", name="chk_deposit_type"),
    )
    
    def to_dict(self):
        return {
            "id": str(self.deposit_id),
            "libraryCardId": str(self.library_card_id),
            "type": self.type,
            "amount": float(self.amount),
            "notes": self.notes,
            "staffId": str(self.staff_id) if self.staff_id else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
