from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from rideshare.services.participation import ContactInfo
from rideshare.services.ride_service import RideDetails


class RideCreate(BaseModel):
    departure_location_name: str
    departure_lat: Optional[float] = None
    departure_lng: Optional[float] = None
    arrival_location_name: str
    arrival_lat: Optional[float] = None
    arrival_lng: Optional[float] = None
    # YYYY-MM-DD / HH:MM, checked by the ride service
    departure_date: str
    departure_time: str
    total_seats: int


def success(message: str, data: Any = None) -> Dict[str, Any]:
    return {"status": "success", "message": message, "data": data}


def ride_to_dict(details: RideDetails) -> Dict[str, Any]:
    ride = details.ride
    return {
        "id": ride.id,
        "creator_id": ride.user_id,
        "departure_location_name": ride.departure_location_name,
        "departure_lat": ride.departure_lat,
        "departure_lng": ride.departure_lng,
        "arrival_location_name": ride.arrival_location_name,
        "arrival_lat": ride.arrival_lat,
        "arrival_lng": ride.arrival_lng,
        "departure_date": ride.departure_date.isoformat(),
        "departure_time": ride.departure_time.strftime("%H:%M"),
        "total_seats": ride.total_seats,
        "places_taken": details.places_taken,
        "available_seats": details.available_seats,
        "status": ride.status.value,
    }


def contacts_to_list(contacts: List[ContactInfo]) -> List[Dict[str, Any]]:
    return [
        {
            "user_id": c.user_id,
            "first_name": c.first_name,
            "last_name": c.last_name,
            "phone": c.phone,
            "is_creator": c.is_creator,
        }
        for c in contacts
    ]
