"""
Expo Push Notifications Client

Sends push notifications via Expo Push API.
https://docs.expo.dev/push-notifications/overview/

Serves as the background-capable channel of the push gateway: a message sent
through Expo shows on the device even when the app is not in the foreground.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .models import PermissionStatus

logger = logging.getLogger(__name__)

# Expo Push API endpoint
EXPO_PUSH_API_URL = "https://exp.host/--/api/v2/push/send"

EXPO_TOKEN_PREFIX = "ExponentPushToken["

# Display options that only make sense for the foreground channel
_FOREGROUND_ONLY_OPTIONS = {"icon", "badge", "dir", "lang", "body", "tag"}


class PushDeliveryError(Exception):
    """Raised by the Expo channel when a message could not be delivered."""


def is_valid_push_token(token: Optional[str]) -> bool:
    return bool(token) and token.startswith(EXPO_TOKEN_PREFIX)


class ExpoPushClient:
    """Client for sending push notifications via Expo."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Expo push client.

        Args:
            access_token: Optional Expo access token (may not be required for basic usage)
            client: Optional preconfigured httpx client (tests pass a MockTransport)
        """
        self.access_token = access_token
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def send_notification(
        self,
        push_token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        sound: str = "default",
    ) -> bool:
        """
        Send a push notification via Expo.

        Args:
            push_token: Expo push token
            title: Notification title
            body: Notification body
            data: Optional data payload
            sound: Sound to play ("default" or "none")

        Returns:
            True if sent successfully, False otherwise
        """
        if not is_valid_push_token(push_token):
            logger.warning(f"Invalid push token format: {(push_token or '')[:20]}...")
            return False

        payload: Dict[str, Any] = {
            "to": push_token,
            "title": title,
            "body": body,
            "sound": sound,
            "priority": "high",
        }
        if data:
            payload["data"] = data

        try:
            response = await self.client.post(
                EXPO_PUSH_API_URL,
                json=payload,
                headers=self._get_headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to send push notification: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"Expo push API error: {response.status_code} {response.text}")
            return False

        try:
            result = response.json()
        except ValueError:
            logger.error("Expo push API returned a non-JSON body")
            return False

        ticket = result.get("data", {})
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if ticket.get("status") == "error":
            logger.error(f"Expo push error: {ticket.get('message', 'Unknown error')}")
            return False

        logger.info(f"[PUSH] Sent to {push_token[:30]}... (title: {title[:30]})")
        return True

    def _get_headers(self) -> dict:
        """Get HTTP headers for Expo API."""
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()


class ExpoChannel:
    """Background push channel bound to one device token."""

    def __init__(self, client: ExpoPushClient, push_token: str):
        self.client = client
        self.push_token = push_token

    async def show_notification(self, title: str, options: Dict[str, Any]) -> None:
        data = {k: v for k, v in options.items() if k not in _FOREGROUND_ONLY_OPTIONS}
        if options.get("tag"):
            data["tag"] = options["tag"]
        sent = await self.client.send_notification(
            push_token=self.push_token,
            title=title,
            body=options.get("body", ""),
            data=data or None,
        )
        if not sent:
            raise PushDeliveryError(f"Expo rejected push '{title[:30]}'")


ForegroundHandler = Callable[[str, Dict[str, Any], Optional[Callable[[], None]]], None]


class ExpoNotificationPlatform:
    """
    Notification platform backed by an Expo device token.

    Permission is derived from the token: a registered token means granted,
    an explicit refusal means denied, neither means default. The token
    provider is the device's registration prompt and must run from a user
    gesture.
    """

    def __init__(
        self,
        client: ExpoPushClient,
        push_token: Optional[str] = None,
        token_provider: Optional[Callable[[], Awaitable[Optional[str]]]] = None,
        foreground_handler: Optional[ForegroundHandler] = None,
    ):
        self.client = client
        self.push_token = push_token if is_valid_push_token(push_token) else None
        self.token_provider = token_provider
        self.foreground_handler = foreground_handler
        self._denied = False

    def permission(self) -> str:
        if self.push_token:
            return PermissionStatus.GRANTED.value
        if self._denied:
            return PermissionStatus.DENIED.value
        return PermissionStatus.DEFAULT.value

    async def request_permission(self) -> str:
        if self.push_token or self.token_provider is None:
            return self.permission()
        token = await self.token_provider()
        if is_valid_push_token(token):
            self.push_token = token
            self._denied = False
        else:
            self._denied = True
        return self.permission()

    async def background_channel(self) -> Optional[ExpoChannel]:
        if not self.push_token:
            return None
        return ExpoChannel(self.client, self.push_token)

    def show(
        self,
        title: str,
        options: Dict[str, Any],
        on_click: Optional[Callable[[], None]] = None,
    ) -> None:
        if self.foreground_handler is None:
            logger.info(f"[PUSH] {title}: {options.get('body', '')}")
            return
        self.foreground_handler(title, options, on_click)
