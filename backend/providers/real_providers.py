from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .contracts import RideSource, RideSourceError

logger = logging.getLogger(__name__)

RIDE_FIELDS = "id,origin,destination,departure_time,seats_total,seats_available,cost"
PASSENGER_BOOKING_FIELDS = "ride_id,ride:rides(id,origin,destination,departure_time,cost,driver_id)"
RIDE_BOOKING_FIELDS = (
    "pickup_point,dropoff_point,"
    "passenger:profiles!bookings_passenger_id_fkey(first_name,last_name)"
)
PROFILE_FIELDS = "first_name,last_name,bit_link"


class SupabaseRideSource(RideSource):
    """Reads rides, bookings and profiles from a Supabase PostgREST endpoint."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not base_url or not anon_key:
            raise ValueError("base_url and anon_key required")
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Accept": "application/json",
        }

    async def _select(
        self, table: str, params: Sequence[Tuple[str, str]]
    ) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            if self.client is not None:
                response = await self.client.get(url, params=list(params), headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.get(url, params=list(params), headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise RideSourceError(f"{table} query failed: {e}") from e
        except ValueError as e:
            raise RideSourceError(f"{table} returned invalid JSON") from e
        if not isinstance(data, list):
            raise RideSourceError(f"{table} returned {type(data).__name__}, expected list")
        logger.debug(f"Supabase {table}: {len(data)} rows")
        return data

    async def list_active_driver_rides(
        self, user_id: str, departure_from: datetime, departure_to: datetime
    ) -> List[Dict[str, Any]]:
        return await self._select("rides", [
            ("select", RIDE_FIELDS),
            ("driver_id", f"eq.{user_id}"),
            ("status", "eq.active"),
            ("departure_time", f"gte.{departure_from.isoformat()}"),
            ("departure_time", f"lte.{departure_to.isoformat()}"),
        ])

    async def list_confirmed_bookings_for_passenger(
        self, user_id: str
    ) -> List[Dict[str, Any]]:
        return await self._select("bookings", [
            ("select", PASSENGER_BOOKING_FIELDS),
            ("passenger_id", f"eq.{user_id}"),
            ("status", "eq.confirmed"),
        ])

    async def list_confirmed_bookings_for_ride(
        self, ride_id: str
    ) -> List[Dict[str, Any]]:
        return await self._select("bookings", [
            ("select", RIDE_BOOKING_FIELDS),
            ("ride_id", f"eq.{ride_id}"),
            ("status", "eq.confirmed"),
        ])

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._select("profiles", [
            ("select", PROFILE_FIELDS),
            ("id", f"eq.{user_id}"),
            ("limit", "1"),
        ])
        return rows[0] if rows else None
