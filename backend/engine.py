"""
Notification engine wiring.

Builds the store, push gateway, dispatcher, reminder scheduler and read model
from environment settings and hands them out as one object, so callers share
a single explicitly constructed instance instead of module globals.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from pymongo import MongoClient

from common.logging_setup import configure_logging
from common.settings import Settings, load_settings
from notifications.dispatcher import NotificationDispatcher
from notifications.expo_push import ExpoNotificationPlatform, ExpoPushClient
from notifications.markers import ScheduleMarkerStore
from notifications.push import NotificationPlatform, PushGateway
from notifications.read_model import NotificationsReadModel
from notifications.scheduler import ReminderScheduler
from notifications.storage import JsonFileStorage, KeyValueStorage, MemoryStorage, MongoStorage
from notifications.store import NotificationStore
from providers.contracts import RideSource
from providers.registry import load_ride_source

logger = logging.getLogger(__name__)


@dataclass
class NotificationEngine:
    store: NotificationStore
    markers: ScheduleMarkerStore
    gateway: PushGateway
    dispatcher: NotificationDispatcher
    scheduler: ReminderScheduler
    push_client: Optional[ExpoPushClient] = None  # owned only when built here

    def read_model(self) -> NotificationsReadModel:
        return NotificationsReadModel(self.store, self.gateway, self.scheduler)

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    async def aclose(self) -> None:
        """Shut the scheduler down and close the engine-owned Expo HTTP client."""
        self.shutdown()
        # APScheduler applies shutdown via call_soon_threadsafe
        await asyncio.sleep(0)
        if self.push_client is not None:
            await self.push_client.aclose()
            self.push_client = None


def build_storage(settings: Settings) -> KeyValueStorage:
    backend = settings.storage_backend
    if backend == "memory":
        return MemoryStorage()
    if backend == "mongo":
        client = MongoClient(settings.mongo_url, serverSelectionTimeoutMS=5000)
        return MongoStorage(client[settings.db_name]["notification_storage"])
    if backend == "file":
        return JsonFileStorage(settings.storage_dir)
    raise ValueError(f"Unknown NOTIFICATIONS_STORAGE backend: {backend!r}")


def build_platform(settings: Settings, push_token: Optional[str] = None) -> ExpoNotificationPlatform:
    return ExpoNotificationPlatform(
        ExpoPushClient(access_token=settings.expo_access_token or None),
        push_token=push_token,
    )


def create_engine(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
    platform: Optional[NotificationPlatform] = None,
    ride_source: Optional[RideSource] = None,
) -> NotificationEngine:
    """
    Build a NotificationEngine.

    Anything not passed in is built from settings, which are loaded from
    the environment (and .env) when omitted. The default push platform is
    Expo without a device token, i.e. permission "default" until the host
    registers one.
    """
    if settings is None:
        load_dotenv()
        settings = load_settings()
    configure_logging(settings)

    storage = storage if storage is not None else build_storage(settings)
    store = NotificationStore(storage)
    markers = ScheduleMarkerStore(storage)
    push_client = None
    if platform is None:
        platform = build_platform(settings)
        push_client = platform.client
    gateway = PushGateway(platform)
    source = ride_source if ride_source is not None else load_ride_source(settings.mode, settings)

    logger.info(
        f"Notification engine ready (mode={settings.mode}, storage={settings.storage_backend})"
    )
    return NotificationEngine(
        store=store,
        markers=markers,
        gateway=gateway,
        dispatcher=NotificationDispatcher(store, gateway),
        scheduler=ReminderScheduler(
            store,
            gateway,
            source,
            markers,
            check_interval_seconds=settings.reminder_check_interval_seconds,
        ),
        push_client=push_client,
    )
