"""
User and vendor account models
Vendor balance and commission live as running totals on the user row
"""
from sqlalchemy import Column, String, Text, DateTime, Boolean, Numeric
from sqlalchemy.sql import func
from core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True, index=True)

    # Basic info
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    image = Column(Text, nullable=True)

    # Vendor account
    is_vendor = Column(Boolean, default=False)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    commission = Column(Numeric(12, 2), nullable=False, default=0)
    commission_rate = Column(Numeric(5, 4), nullable=True)  # overrides COMMISSION_RATE when set

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
