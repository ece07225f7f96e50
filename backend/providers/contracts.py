from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol


class RideSourceError(Exception):
    """Raised when the ride/booking source cannot be read."""


class RideSource(Protocol):
    async def list_active_driver_rides(
        self, user_id: str, departure_from: datetime, departure_to: datetime
    ) -> List[Dict[str, Any]]:
        """Active rides driven by user_id departing inside the window.

        Each ride: id, origin, destination, departure_time, seats_total,
        seats_available, cost.
        """
        ...

    async def list_confirmed_bookings_for_passenger(
        self, user_id: str
    ) -> List[Dict[str, Any]]:
        """Confirmed bookings of user_id, each with ride_id and an embedded
        ride {id, origin, destination, departure_time, cost, driver_id}."""
        ...

    async def list_confirmed_bookings_for_ride(
        self, ride_id: str
    ) -> List[Dict[str, Any]]:
        """Confirmed bookings on a ride: pickup_point, dropoff_point and
        passenger {first_name, last_name}."""
        ...

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """first_name, last_name, bit_link, or None if no such profile."""
        ...
