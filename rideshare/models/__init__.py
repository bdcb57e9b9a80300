from rideshare.models.enums import ParticipantStatus, PaymentStatus, RideStatus
from rideshare.models.participant import Participant
from rideshare.models.payment import Payment
from rideshare.models.ride import Ride
from rideshare.models.user import User

__all__ = [
    "Participant",
    "ParticipantStatus",
    "Payment",
    "PaymentStatus",
    "Ride",
    "RideStatus",
    "User",
]
