import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint

from rideshare.db.base_class import Base
from rideshare.models.enums import ParticipantStatus, status_column_type


class Participant(Base):
    """A user's relationship to one ride; at most one row per (user, ride)."""

    __tablename__ = "participants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ride_id = Column(String(36), ForeignKey("rides.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        status_column_type(ParticipantStatus, "participant_status"),
        default=ParticipantStatus.PENDING_PAYMENT,
        nullable=False,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "ride_id", name="uq_participants_user_ride"),
        # Capacity count: WHERE ride_id = ? AND status = 'active'
        Index("ix_participants_ride_status", "ride_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Participant {self.id} user={self.user_id} ride={self.ride_id} {self.status.value}>"
