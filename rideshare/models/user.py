from datetime import datetime

from sqlalchemy import Column, DateTime, String

from rideshare.db.base_class import Base


class User(Base):
    """Profile columns the ride core reads (contact handle) or writes (saved card)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    # Contact handle disclosed to ride members
    phone = Column(String(32), unique=True, nullable=False)
    # Saved payment method reference for off-session charges
    payment_method_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
