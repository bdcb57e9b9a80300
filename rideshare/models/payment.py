import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from rideshare.db.base_class import Base
from rideshare.models.enums import PaymentStatus, status_column_type


class Payment(Base):
    """One external charge, identified at the processor by ``intent_id``."""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    ride_id = Column(String(36), ForeignKey("rides.id", ondelete="SET NULL"), nullable=True, index=True)
    participant_id = Column(
        String(36), ForeignKey("participants.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Processor's payment id; the webhook idempotency key
    intent_id = Column(String(64), nullable=False, unique=True, index=True)
    status = Column(
        status_column_type(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    # Minor currency units
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_payments_user_status", "user_id", "status"),
    )
