from sqlalchemy import Column, String, DateTime, Integer
from sqlalchemy.sql import func
from circulation.database import Base

class SystemSetting(Base):
    __tablename__ = "system_setting"
    
    setting_id = Column(Integer, primary_key=True, autoincrement=True)
    setting_key = Column(String(50), unique=True, nullable=False, index=True)
    setting_value = Column(String(255), nullable=False)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
