"""Closed status sets persisted by value."""

import enum

from sqlalchemy import Enum


class RideStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class ParticipantStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    ACTIVE = "active"
    LEFT = "left"
    CANCELLED_RIDE = "cancelled_ride"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def status_column_type(enum_cls, name: str) -> Enum:
    """Store the enum's value (``"pending_payment"``), not its member name."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )
