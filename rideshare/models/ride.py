import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import relationship

from rideshare.db.base_class import Base
from rideshare.models.enums import RideStatus, status_column_type

MIN_SEATS = 1
MAX_SEATS = 5


class Ride(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Creator
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    departure_location_name = Column(String(255), nullable=False)
    departure_lat = Column(Float, nullable=True)
    departure_lng = Column(Float, nullable=True)
    arrival_location_name = Column(String(255), nullable=False)
    arrival_lat = Column(Float, nullable=True)
    arrival_lng = Column(Float, nullable=True)

    departure_date = Column(Date, nullable=False)
    departure_time = Column(Time, nullable=False)

    # Never changes after creation; "full" is derived from active participants
    total_seats = Column(Integer, nullable=False)
    status = Column(
        status_column_type(RideStatus, "ride_status"),
        default=RideStatus.ACTIVE,
        nullable=False,
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    creator = relationship("User")

    __table_args__ = (
        CheckConstraint(
            f"total_seats >= {MIN_SEATS} AND total_seats <= {MAX_SEATS}",
            name="ck_rides_total_seats_range",
        ),
        Index("ix_rides_status_departure", "status", "departure_date"),
    )

    @property
    def departs_at(self) -> datetime:
        return datetime.combine(self.departure_date, self.departure_time)

    def __repr__(self) -> str:
        return f"<Ride {self.id} {self.status.value} seats={self.total_seats}>"
