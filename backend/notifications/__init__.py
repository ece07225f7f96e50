"""
Notifications package - in-process notification engine

Submodules:
- models: Notification records, schedule markers, enums
- storage: Key/value backends (memory, JSON files, MongoDB)
- store: Per-user notification records with change subscription
- markers: Persisted "already scheduled" markers
- push: Push gateway over a host notification platform
- expo_push: Expo push client and platform
- dispatcher: Event -> record + push fan-out
- scheduler: Time-relative ride reminders (APScheduler)
- read_model: Live view for the active identity
"""

from .models import (
    NotificationRecord,
    NotificationType,
    PermissionStatus,
    ReminderKind,
    ScheduleMarker,
)
from .storage import JsonFileStorage, MemoryStorage, MongoStorage
from .store import NotificationStore
from .markers import ScheduleMarkerStore
from .push import PushGateway
from .expo_push import ExpoPushClient, ExpoNotificationPlatform
from .dispatcher import NotificationDispatcher
from .scheduler import ReminderScheduler
from .read_model import NotificationsReadModel

__all__ = [
    "NotificationRecord",
    "NotificationType",
    "PermissionStatus",
    "ReminderKind",
    "ScheduleMarker",
    "JsonFileStorage",
    "MemoryStorage",
    "MongoStorage",
    "NotificationStore",
    "ScheduleMarkerStore",
    "PushGateway",
    "ExpoPushClient",
    "ExpoNotificationPlatform",
    "NotificationDispatcher",
    "ReminderScheduler",
    "NotificationsReadModel",
]
