"""
Push Gateway - best-effort OS-level notifications.

Wraps whatever notification capability the host platform exposes. Delivery
tries the platform's background-capable channel first (it can show while the
app is not focused) and falls back to the foreground channel. Every failure
degrades to a logged no-op: push is advisory and must never break the in-app
record path.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Set

from .models import PermissionStatus

logger = logging.getLogger(__name__)

DEFAULT_PUSH_OPTIONS: Dict[str, Any] = {
    "icon": "/pwa-192x192.png",
    "badge": "/pwa-192x192.png",
}


class PushChannel(Protocol):
    async def show_notification(self, title: str, options: Dict[str, Any]) -> None:
        ...


class NotificationPlatform(Protocol):
    def permission(self) -> str:
        ...

    async def request_permission(self) -> str:
        ...

    async def background_channel(self) -> Optional[PushChannel]:
        ...

    def show(
        self,
        title: str,
        options: Dict[str, Any],
        on_click: Optional[Callable[[], None]] = None,
    ) -> None:
        ...


def _as_status(value: Any) -> PermissionStatus:
    try:
        return PermissionStatus(value)
    except ValueError:
        logger.debug(f"[PUSH] Unknown permission value {value!r}, treating as default")
        return PermissionStatus.DEFAULT


class PushGateway:
    """Delivers push notifications through an optional host platform."""

    def __init__(
        self,
        platform: Optional[NotificationPlatform] = None,
        default_options: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the gateway.

        Args:
            platform: Host notification capability; None means unsupported
            default_options: Display options merged under every send
        """
        self.platform = platform
        self.default_options = dict(DEFAULT_PUSH_OPTIONS if default_options is None else default_options)
        self._pending: Set[asyncio.Task] = set()

    def is_supported(self) -> bool:
        return self.platform is not None

    def get_permission(self) -> PermissionStatus:
        if self.platform is None:
            return PermissionStatus.UNSUPPORTED
        try:
            return _as_status(self.platform.permission())
        except Exception as e:
            logger.warning(f"[PUSH] Could not read permission: {e}")
            return PermissionStatus.DEFAULT

    async def request_permission(self) -> PermissionStatus:
        """
        Ask the platform for permission.

        Must be triggered by a user gesture on platforms that enforce it.
        If the request itself fails, the current permission is reported.
        """
        if self.platform is None:
            return PermissionStatus.UNSUPPORTED
        try:
            result = await self.platform.request_permission()
        except Exception as e:
            logger.warning(f"[PUSH] Permission request failed: {e}")
            return self.get_permission()
        return _as_status(result)

    async def send(
        self,
        title: str,
        body: Optional[str] = None,
        tag: Optional[str] = None,
        on_click: Optional[Callable[[], None]] = None,
        **platform_options: Any,
    ) -> None:
        """
        Show a notification if supported and permitted; never raises.

        Notifications sharing a tag may collapse into one at the platform level.
        on_click is only honoured by the foreground channel.
        """
        if self.platform is None:
            logger.debug("[PUSH] Unsupported platform, skipping push")
            return
        if self.get_permission() is not PermissionStatus.GRANTED:
            logger.debug("[PUSH] Permission not granted, skipping push")
            return

        options = dict(self.default_options)
        if body is not None:
            options["body"] = body
        if tag is not None:
            options["tag"] = tag
        options.update(platform_options)

        try:
            channel = await self.platform.background_channel()
            if channel is not None:
                await channel.show_notification(title, options)
                return
        except Exception as e:
            logger.debug(f"[PUSH] Background channel failed, using foreground: {e}")

        try:
            self.platform.show(title, options, on_click=on_click)
        except Exception as e:
            logger.warning(f"[PUSH] Foreground notification failed: {e}")

    def dispatch(self, title: str, **kwargs: Any) -> Optional[asyncio.Task]:
        """
        Fire-and-forget send() on the running event loop.

        Returns the task. Synchronous callers (no running loop) get the push
        delivered before this returns, and None.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[PUSH] No running event loop, sending inline")
            asyncio.run(self.send(title, **kwargs))
            return None
        task = loop.create_task(self.send(title, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched push to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
