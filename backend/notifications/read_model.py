"""
Live view of the active identity's notifications.

Keeps `notifications` and `unread_count` in sync with the store, starts the
reminder scheduler while an identity is present and stops it when the
identity is cleared or the view is closed.
"""

import logging
from typing import Callable, List, Optional

from .models import NotificationRecord, PermissionStatus
from .push import PushGateway
from .scheduler import ReminderScheduler
from .store import NotificationStore

logger = logging.getLogger(__name__)


class NotificationsReadModel:
    def __init__(
        self,
        store: NotificationStore,
        gateway: PushGateway,
        scheduler: ReminderScheduler,
    ):
        self.store = store
        self.gateway = gateway
        self.scheduler = scheduler
        self.notifications: List[NotificationRecord] = []
        self.unread_count = 0
        self.permission_status: PermissionStatus = gateway.get_permission()
        self._user_id: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []
        # One subscription for the model's lifetime; _sync reads the
        # identity at call time so a switch never leaves a stale listener.
        self._unsubscribe: Optional[Callable[[], None]] = store.subscribe(self._sync)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_supported(self) -> bool:
        return self.gateway.is_supported()

    async def set_identity(self, user_id: Optional[str]) -> None:
        """Switch the active identity (None signs out)."""
        user_id = user_id or None
        if user_id == self._user_id:
            return
        if self._user_id is not None:
            self.scheduler.stop()
        self._user_id = user_id
        self._sync()
        if user_id is not None:
            await self.scheduler.start(user_id)

    def _sync(self) -> None:
        uid = self._user_id
        if uid:
            self.notifications = self.store.get_all(uid)
            self.unread_count = sum(1 for n in self.notifications if not n.read)
        else:
            self.notifications = []
            self.unread_count = 0
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Read model listener failed")

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call listener whenever notifications/unread_count change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def request_permission(self) -> PermissionStatus:
        self.permission_status = await self.gateway.request_permission()
        return self.permission_status

    def mark_read(self, notification_id: str) -> None:
        if self._user_id:
            self.store.mark_read(self._user_id, notification_id)

    def mark_all_read(self) -> None:
        if self._user_id:
            self.store.mark_all_read(self._user_id)

    def remove_notification(self, notification_id: str) -> None:
        if self._user_id:
            self.store.remove(self._user_id, notification_id)

    def clear_all(self) -> None:
        if self._user_id:
            self.store.clear_all(self._user_id)

    def close(self) -> None:
        """Tear down: stop the scheduler and drop the store subscription."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.scheduler.stop()
        self._user_id = None
        self.notifications = []
        self.unread_count = 0

    async def __aenter__(self) -> "NotificationsReadModel":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
