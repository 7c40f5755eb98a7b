from sqlalchemy import Column, String, DateTime, Integer, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base

ROLE_READER = "reader"
ROLE_LIBRARIAN = "librarian"
ROLE_ADMIN = "admin"
STAFF_ROLES = (ROLE_LIBRARIAN, ROLE_ADMIN)

class User(Base):
    __tablename__ = "user"
    
    user_id = Column(Integer, primary_key=True, autoincrement=True)
    user_fname = Column(String(100), nullable=False)
    user_lname = Column(String(100), nullable=False)
    user_email = Column(String(255), unique=True, nullable=False, index=True)
    user_password_hash = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=True)
    user_role = Column(String(50), default=ROLE_READER, nullable=False)  # reader, librarian, admin
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    library_card = relationship("LibraryCard", back_populates="user", uselist=False)
    
    __table_args__ = (
        CheckConstraint("user_role IN ('reader', 'librarian', 'admin')", name="chk_user_role"),
    )
    
    @property
    def is_staff(self) -> bool:
        return self.user_role in STAFF_ROLES
    
    def to_dict(self):
        card = self.library_card
        return {
            "id": str(self.user_id),
            "name": f"{self.user_fname} {self.user_lname}",
            "email": self.user_email,
            "phoneNumber": self.phone_number,
            "role": self.user_role,
            "isStaff": self.is_staff,
            "libraryCardId": str(card.library_card_id) if card else None,
            "cardNumber": card.card_number if card else None,
        }
