"""
Notification Dispatcher

Single entry point for event-driven notifications. Every send writes an
in-app record and, unless disabled, fires an advisory push. The notify_*
helpers only format titles and bodies for specific ride events.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import NotificationRecord, NotificationType
from .push import PushGateway
from .store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fans a domain event out to the store and the push gateway."""

    def __init__(
        self,
        store: NotificationStore,
        gateway: PushGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def send(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        body: str,
        ride_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        push: bool = True,
    ) -> NotificationRecord:
        """
        Send a notification (in-app + optional push).

        The record is always written first. Push delivery runs as a task on
        the running event loop, or inline for synchronous callers; it can
        never undo the record.

        Returns:
            The stored record
        """
        notification_type = NotificationType(notification_type)
        record = self.store.add(
            user_id,
            notification_type,
            title,
            body,
            ride_id=ride_id,
            meta=meta,
        )
        logger.debug(f"Stored {notification_type.value} notification {record.id} for user {user_id}")
        if push:
            # Without a ride id, fall back to a time-based tag so unrelated
            # notifications don't collapse into one.
            suffix = ride_id or str(int(self.clock().timestamp() * 1000))
            self.gateway.dispatch(title, body=body, tag=f"{notification_type.value}_{suffix}")
        return record

    # ── Convenience functions for specific events ──

    def notify_driver_new_passenger(
        self,
        driver_id: str,
        passenger_name: str,
        ride_origin: str,
        ride_destination: str,
        ride_id: str,
        pickup_point: Optional[str] = None,
        dropoff_point: Optional[str] = None,
    ) -> NotificationRecord:
        """Notify driver that someone joined their ride."""
        pickup = f"\nPickup point: {pickup_point}" if pickup_point else ""
        dropoff = f"\nDrop-off point: {dropoff_point}" if dropoff_point else ""
        return self.send(
            driver_id,
            NotificationType.RIDE_BOOKED,
            "🎉 New passenger!",
            f"{passenger_name} joined your ride {ride_origin} → {ride_destination}{pickup}{dropoff}",
            ride_id=ride_id,
        )

    def notify_passenger_booking_confirmed(
        self,
        passenger_id: str,
        driver_name: str,
        ride_origin: str,
        ride_destination: str,
        ride_id: str,
        cost: float,
    ) -> NotificationRecord:
        """Notify passenger that their booking was confirmed."""
        return self.send(
            passenger_id,
            NotificationType.BOOKING_CONFIRMED,
            "✅ Booking confirmed!",
            f"You joined {driver_name}'s ride from {ride_origin} to {ride_destination}. "
            f"Cost: ₪{format_amount(cost)}",
            ride_id=ride_id,
        )

    def notify_ride_updated(
        self,
        passenger_ids: Iterable[str],
        ride_origin: str,
        ride_destination: str,
        ride_id: str,
        change_description: str,
    ) -> List[NotificationRecord]:
        """Notify every passenger that a ride was updated."""
        return [
            self.send(
                passenger_id,
                NotificationType.RIDE_UPDATED,
                "📝 Ride updated",
                f"The ride {ride_origin} → {ride_destination} was updated: {change_description}",
                ride_id=ride_id,
            )
            for passenger_id in passenger_ids
        ]

    def notify_ride_cancelled(
        self,
        passenger_ids: Iterable[str],
        driver_name: str,
        ride_origin: str,
        ride_destination: str,
        ride_id: str,
    ) -> List[NotificationRecord]:
        """Notify every passenger that a ride was cancelled."""
        return [
            self.send(
                passenger_id,
                NotificationType.RIDE_CANCELLED,
                "❌ Ride cancelled",
                f"{driver_name}'s ride from {ride_origin} to {ride_destination} was cancelled.",
                ride_id=ride_id,
            )
            for passenger_id in passenger_ids
        ]

    def notify_new_ride_posted(
        self,
        user_ids: Iterable[str],
        driver_name: str,
        ride_origin: str,
        ride_destination: str,
        ride_id: str,
        departure_label: str,
    ) -> List[NotificationRecord]:
        """Tell interested users about a newly posted ride."""
        return [
            self.send(
                user_id,
                NotificationType.NEW_RIDE_POSTED,
                "🚗 New ride posted",
                f"{driver_name} posted a ride from {ride_origin} to {ride_destination} ({departure_label})",
                ride_id=ride_id,
            )
            for user_id in user_ids
        ]


def format_amount(amount: Any) -> str:
    """Render 25.0 as 25 and 12.5 as 12.5."""
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        return str(amount)
    return str(int(value)) if value.is_integer() else f"{value:g}"
