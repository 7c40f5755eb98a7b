from sqlalchemy import Column, String, DateTime, Date, Integer, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base

CARD_ACTIVE = "active"
CARD_EXPIRED = "expired"
CARD_LOCKED = "locked"

class LibraryCard(Base):
    __tablename__ = "library_card"
    
    library_card_id = Column(Integer, primary_key=True, autoincrement=True)
    card_number = Column(String(20), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    status = Column(String(20), default=CARD_ACTIVE, nullable=False)
    deposit_amount = Column(Numeric(12, 2), default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    user = relationship("User", back_populates="library_card")
    borrow_requests = relationship("BorrowRequest", back_populates="library_card")
    deposits = relationship("DepositTransaction", back_populates="library_card")
    
    __table_args__ = (
        CheckConstraint("status IN ('active', 'expired', 'locked')", name="chk_card_status"),
    )
    
    def to_dict(self):
        return {
            "id": str(self.library_card_id),
            "cardNumber": self.card_number,
            "userId": str(self.user_id),
            "issueDate": self.issue_date.isoformat() if self.issue_date else None,
            "expiryDate": self.expiry_date.isoformat() if self.expiry_date else None,
            "status": self.status,
            "depositAmount": float(self.deposit_amount or 0),
            "user": self.user.to_dict() if self.user else None,
        }
