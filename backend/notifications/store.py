"""
Notification Store - per-user notification records with change subscription.

Handles:
- Reading a user's records newest-first (corrupt data reads as empty)
- Adding records, capped at MAX_NOTIFICATIONS per user
- Monotonic read marking, single delete and clear
- Notifying zero-argument listeners after every mutation
"""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import TypeAdapter

from .models import NotificationRecord, NotificationType, isoformat_utc
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "rideshare_notifications_"
MAX_NOTIFICATIONS = 100

Listener = Callable[[], None]

_records_adapter = TypeAdapter(List[NotificationRecord])


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationStore:
    """Durable CRUD over notification records partitioned by user id."""

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Optional[Callable[[], datetime]] = None,
        max_notifications: int = MAX_NOTIFICATIONS,
    ):
        """
        Initialize the store.

        Args:
            storage: Key/value backend holding one JSON array per user
            clock: Returns the current instant (default: UTC now)
            max_notifications: Per-user cap; oldest records are evicted
        """
        self.storage = storage
        self.clock = clock or _utc_now
        self.max_notifications = max_notifications
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    @staticmethod
    def storage_key(user_id: str) -> str:
        return f"{STORAGE_PREFIX}{user_id}"

    def get_all(self, user_id: str) -> List[NotificationRecord]:
        """Return the user's records, newest first. Never raises."""
        try:
            raw = self.storage.get_item(self.storage_key(user_id))
        except Exception as e:
            logger.warning(f"Notification storage unreadable for {user_id}: {e}")
            return []
        if not raw:
            return []
        try:
            return _records_adapter.validate_json(raw)
        except Exception as e:
            logger.warning(f"Discarding corrupt notification data for {user_id}: {e}")
            return []

    def get_unread_count(self, user_id: str) -> int:
        return sum(1 for n in self.get_all(user_id) if not n.read)

    def add(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        body: str,
        ride_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> NotificationRecord:
        """
        Prepend a new unread record for the user.

        Args:
            user_id: Owning identity
            notification_type: One of NotificationType (or its string value)
            title: Display title
            body: Display body (plain text, may contain newlines)
            ride_id: Optional ride back-reference
            meta: Optional free-form metadata

        Returns:
            The stored record with id and timestamp assigned
        """
        record = NotificationRecord(
            id=str(uuid4()),
            type=NotificationType(notification_type),
            title=title,
            body=body,
            timestamp=isoformat_utc(self.clock()),
            read=False,
            user_id=user_id,
            ride_id=ride_id,
            meta=meta,
        )
        with self._lock:
            records = [record] + self.get_all(user_id)
            self._write(user_id, records[: self.max_notifications])
        self._notify()
        return record

    def mark_read(self, user_id: str, notification_id: str) -> None:
        """Mark one record read; unknown ids are ignored."""
        with self._lock:
            records = self.get_all(user_id)
            for i, record in enumerate(records):
                if record.id == notification_id:
                    records[i] = record.model_copy(update={"read": True})
                    break
            else:
                return
            self._write(user_id, records)
        self._notify()

    def mark_all_read(self, user_id: str) -> None:
        with self._lock:
            records = [r.model_copy(update={"read": True}) for r in self.get_all(user_id)]
            self._write(user_id, records)
        self._notify()

    def remove(self, user_id: str, notification_id: str) -> None:
        with self._lock:
            records = [r for r in self.get_all(user_id) if r.id != notification_id]
            self._write(user_id, records)
        self._notify()

    def clear_all(self, user_id: str) -> None:
        with self._lock:
            try:
                self.storage.remove_item(self.storage_key(user_id))
            except Exception as e:
                logger.error(f"Failed to clear notifications for {user_id}: {e}")
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback run after every mutation. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _write(self, user_id: str, records: List[NotificationRecord]) -> None:
        payload = json.dumps([r.to_storage_doc() for r in records], ensure_ascii=False)
        try:
            self.storage.set_item(self.storage_key(user_id), payload)
        except Exception as e:
            logger.error(f"Failed to persist notifications for {user_id}: {e}")

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        # Listeners run outside the lock so they can call back into the store.
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Notification listener failed")
