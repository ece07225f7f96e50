"""
Notification domain models.

Defines the persisted notification record, the scheduler's bookkeeping marker,
and the closed vocabularies both of them use. Field aliases keep the stored
JSON in camelCase so collections written by the web client round-trip.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Kinds of notification records."""
    RIDE_BOOKED = "ride_booked"  # someone joined your ride
    BOOKING_CONFIRMED = "booking_confirmed"  # your booking was confirmed
    RIDE_REMINDER = "ride_reminder"  # 30 min before departure
    PAYMENT_REMINDER = "payment_reminder"  # 15 min after departure
    RIDE_UPDATED = "ride_updated"
    RIDE_CANCELLED = "ride_cancelled"
    NEW_RIDE_POSTED = "new_ride_posted"
    GENERAL = "general"


class ReminderKind(str, Enum):
    """Scheduled reminder kinds; the value doubles as the marker dedup key."""
    RIDE_REMINDER = "ride_reminder"
    DRIVER_PAYMENT_REMINDER = "driver_payment_reminder"
    PASSENGER_PAYMENT_REMINDER = "passenger_payment_reminder"

    @property
    def notification_type(self) -> NotificationType:
        if self is ReminderKind.RIDE_REMINDER:
            return NotificationType.RIDE_REMINDER
        return NotificationType.PAYMENT_REMINDER


class PermissionStatus(str, Enum):
    """Push permission as reported by the host platform."""
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"
    UNSUPPORTED = "unsupported"


class NotificationRecord(BaseModel):
    """One entry in a user's in-app notification list."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str
    type: NotificationType
    title: str
    body: str
    timestamp: str  # ISO-8601, set by the store
    read: bool = False
    user_id: Optional[str] = Field(default=None, alias="userId")
    ride_id: Optional[str] = Field(default=None, alias="rideId")
    meta: Optional[Dict[str, Any]] = None

    @property
    def created_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)

    def to_storage_doc(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScheduleMarker(BaseModel):
    """Persisted proof that a (ride, kind) reminder has already been armed."""
    model_config = ConfigDict(populate_by_name=True)

    ride_id: str = Field(alias="rideId")
    type: ReminderKind
    fire_at: str = Field(alias="fireAt")
    user_id: str = Field(alias="userId")

    @property
    def key(self) -> str:
        return reminder_key(self.ride_id, self.type)

    @property
    def role(self) -> Optional[str]:
        """driver/passenger for payment reminders, None for ride reminders."""
        if self.type is ReminderKind.DRIVER_PAYMENT_REMINDER:
            return "driver"
        if self.type is ReminderKind.PASSENGER_PAYMENT_REMINDER:
            return "passenger"
        return None

    @property
    def fire_at_dt(self) -> datetime:
        return datetime.fromisoformat(self.fire_at)

    def to_storage_doc(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def reminder_key(ride_id: str, kind: ReminderKind) -> str:
    return f"{ride_id}_{kind.value}"


def isoformat_utc(moment: datetime) -> str:
    """Millisecond ISO-8601 with a trailing Z, matching the web client."""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
