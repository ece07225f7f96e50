from __future__ import annotations

import copy
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .contracts import RideSource, RideSourceError

FIXTURES_ROOT = Path(__file__).parent.parent / "fixtures" / "demo"


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


class InMemoryRideSource(RideSource):
    """Ride/booking source held in memory.

    Rows mirror the remote tables: rides, bookings and profiles. Set
    `fail` to make every call raise RideSourceError, or `fail_on` to
    fail only the named methods.
    """

    def __init__(self) -> None:
        self.rides: Dict[str, Dict[str, Any]] = {}
        self.bookings: List[Dict[str, Any]] = []
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.fail = False
        self.fail_on: set = set()
        self.calls: List[str] = []

    def add_ride(
        self,
        ride_id: str,
        driver_id: str,
        departure_time: datetime,
        origin: str = "Tel Aviv",
        destination: str = "Haifa",
        seats_total: int = 4,
        seats_available: int = 4,
        cost: float = 25,
        status: str = "active",
    ) -> Dict[str, Any]:
        ride = {
            "id": ride_id,
            "driver_id": driver_id,
            "origin": origin,
            "destination": destination,
            "departure_time": departure_time.isoformat(),
            "seats_total": seats_total,
            "seats_available": seats_available,
            "cost": cost,
            "status": status,
        }
        self.rides[ride_id] = ride
        return ride

    def add_booking(
        self,
        ride_id: str,
        passenger_id: str,
        status: str = "confirmed",
        pickup_point: Optional[str] = None,
        dropoff_point: Optional[str] = None,
    ) -> Dict[str, Any]:
        booking = {
            "ride_id": ride_id,
            "passenger_id": passenger_id,
            "status": status,
            "pickup_point": pickup_point,
            "dropoff_point": dropoff_point,
        }
        self.bookings.append(booking)
        return booking

    def add_profile(
        self,
        user_id: str,
        first_name: str,
        last_name: str,
        bit_link: Optional[str] = None,
    ) -> Dict[str, Any]:
        profile = {"first_name": first_name, "last_name": last_name, "bit_link": bit_link}
        self.profiles[user_id] = profile
        return profile

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail or name in self.fail_on:
            raise RideSourceError(f"{name} unavailable")

    async def list_active_driver_rides(
        self, user_id: str, departure_from: datetime, departure_to: datetime
    ) -> List[Dict[str, Any]]:
        self._check("list_active_driver_rides")
        fields = ("id", "origin", "destination", "departure_time", "seats_total", "seats_available", "cost")
        return [
            {k: ride[k] for k in fields}
            for ride in self.rides.values()
            if ride["driver_id"] == user_id
            and ride["status"] == "active"
            and departure_from <= _parse_time(ride["departure_time"]) <= departure_to
        ]

    async def list_confirmed_bookings_for_passenger(
        self, user_id: str
    ) -> List[Dict[str, Any]]:
        self._check("list_confirmed_bookings_for_passenger")
        fields = ("id", "origin", "destination", "departure_time", "cost", "driver_id")
        results = []
        for booking in self.bookings:
            if booking["passenger_id"] != user_id or booking["status"] != "confirmed":
                continue
            ride = self.rides.get(booking["ride_id"])
            results.append({
                "ride_id": booking["ride_id"],
                "ride": {k: ride[k] for k in fields} if ride else None,
            })
        return results

    async def list_confirmed_bookings_for_ride(
        self, ride_id: str
    ) -> List[Dict[str, Any]]:
        self._check("list_confirmed_bookings_for_ride")
        results = []
        for booking in self.bookings:
            if booking["ride_id"] != ride_id or booking["status"] != "confirmed":
                continue
            profile = self.profiles.get(booking["passenger_id"], {})
            results.append({
                "pickup_point": booking["pickup_point"],
                "dropoff_point": booking["dropoff_point"],
                "passenger": {
                    "first_name": profile.get("first_name", ""),
                    "last_name": profile.get("last_name", ""),
                },
            })
        return results

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        self._check("get_profile")
        profile = self.profiles.get(user_id)
        return copy.deepcopy(profile) if profile else None


class FixtureRideSource(InMemoryRideSource):
    """InMemoryRideSource seeded from fixtures/demo/rides/data.json.

    Fixture rides give departure_offset_minutes instead of absolute times,
    resolved against the clock when the fixture is loaded.
    """

    def __init__(
        self,
        fixture_name: str = "rides",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__()
        self.path = FIXTURES_ROOT / fixture_name / "data.json"
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        now = (clock or (lambda: datetime.now(timezone.utc)))()
        for user_id, profile in data.get("profiles", {}).items():
            self.add_profile(user_id, profile["first_name"], profile["last_name"], profile.get("bit_link"))
        for ride in data.get("rides", []):
            self.add_ride(
                ride_id=ride["id"],
                driver_id=ride["driver_id"],
                departure_time=now + timedelta(minutes=ride["departure_offset_minutes"]),
                origin=ride["origin"],
                destination=ride["destination"],
                seats_total=ride["seats_total"],
                seats_available=ride["seats_available"],
                cost=ride["cost"],
                status=ride.get("status", "active"),
            )
        for booking in data.get("bookings", []):
            self.add_booking(
                ride_id=booking["ride_id"],
                passenger_id=booking["passenger_id"],
                status=booking.get("status", "confirmed"),
                pickup_point=booking.get("pickup_point"),
                dropoff_point=booking.get("dropoff_point"),
            )
