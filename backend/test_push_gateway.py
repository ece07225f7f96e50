"""
Tests for notifications/push.py and notifications/expo_push.py

Covers:
- Unsupported platform and permission gating
- Background channel first, foreground fallback
- Fire-and-forget dispatch
- Expo client against a mocked HTTP transport
- Expo platform permission derived from the device token
"""

import json

import httpx
import pytest

from notifications.expo_push import (
    EXPO_PUSH_API_URL,
    ExpoNotificationPlatform,
    ExpoPushClient,
    PushDeliveryError,
    is_valid_push_token,
)
from notifications.models import PermissionStatus
from notifications.push import DEFAULT_PUSH_OPTIONS, PushGateway

TOKEN = "ExponentPushToken[abc123]"


class RecordingChannel:
    def __init__(self, error=None):
        self.shown = []
        self.error = error

    async def show_notification(self, title, options):
        if self.error:
            raise self.error
        self.shown.append((title, options))


class FakePlatform:
    def __init__(self, permission="granted", channel=None, request_result="granted", request_error=None):
        self._permission = permission
        self.channel = channel
        self.request_result = request_result
        self.request_error = request_error
        self.shown = []
        self.show_error = None

    def permission(self):
        return self._permission

    async def request_permission(self):
        if self.request_error:
            raise self.request_error
        self._permission = self.request_result
        return self.request_result

    async def background_channel(self):
        return self.channel

    def show(self, title, options, on_click=None):
        if self.show_error:
            raise self.show_error
        self.shown.append((title, options, on_click))


def _expo_client(handler, access_token=None):
    return ExpoPushClient(
        access_token=access_token,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestUnsupported:
    def test_permission_unsupported(self):
        gateway = PushGateway()
        assert gateway.is_supported() is False
        assert gateway.get_permission() is PermissionStatus.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_request_and_send_are_noops(self):
        gateway = PushGateway()
        assert await gateway.request_permission() is PermissionStatus.UNSUPPORTED
        await gateway.send("title", body="body", tag="t")


class TestPermission:
    CASES = [
        ("granted", PermissionStatus.GRANTED),
        ("denied", PermissionStatus.DENIED),
        ("default", PermissionStatus.DEFAULT),
        ("prompt", PermissionStatus.DEFAULT),
    ]

    @pytest.mark.parametrize("raw,expected", CASES)
    def test_get_permission(self, raw, expected):
        assert PushGateway(FakePlatform(permission=raw)).get_permission() is expected

    @pytest.mark.asyncio
    async def test_request_permission(self):
        gateway = PushGateway(FakePlatform(permission="default", request_result="granted"))
        assert await gateway.request_permission() is PermissionStatus.GRANTED

    @pytest.mark.asyncio
    async def test_request_that_raises_reports_current(self):
        platform = FakePlatform(permission="denied", request_error=TypeError("callback-style API"))
        gateway = PushGateway(platform)
        assert await gateway.request_permission() is PermissionStatus.DENIED


class TestSend:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("permission", ["default", "denied"])
    async def test_not_granted_is_silent(self, permission):
        channel = RecordingChannel()
        platform = FakePlatform(permission=permission, channel=channel)
        await PushGateway(platform).send("title", body="body")
        assert channel.shown == []
        assert platform.shown == []

    @pytest.mark.asyncio
    async def test_background_channel_preferred(self):
        channel = RecordingChannel()
        platform = FakePlatform(channel=channel)

        await PushGateway(platform).send("⏰ Ride reminder", body="soon", tag="ride_reminder_r1")

        assert channel.shown == [(
            "⏰ Ride reminder",
            {**DEFAULT_PUSH_OPTIONS, "body": "soon", "tag": "ride_reminder_r1"},
        )]
        assert platform.shown == []

    @pytest.mark.asyncio
    async def test_caller_options_override_defaults(self):
        channel = RecordingChannel()
        gateway = PushGateway(FakePlatform(channel=channel))
        await gateway.send("t", icon="/custom.png", requireInteraction=True)
        _, options = channel.shown[0]
        assert options["icon"] == "/custom.png"
        assert options["badge"] == DEFAULT_PUSH_OPTIONS["badge"]
        assert options["requireInteraction"] is True

    @pytest.mark.asyncio
    async def test_falls_back_to_foreground_without_channel(self):
        platform = FakePlatform(channel=None)
        clicked = []

        await PushGateway(platform).send("t", body="b", on_click=lambda: clicked.append(1))

        [(title, options, on_click)] = platform.shown
        assert title == "t"
        assert options["body"] == "b"
        on_click()
        assert clicked == [1]

    @pytest.mark.asyncio
    async def test_falls_back_when_channel_fails(self):
        platform = FakePlatform(channel=RecordingChannel(error=PushDeliveryError("rejected")))
        await PushGateway(platform).send("t")
        assert len(platform.shown) == 1

    @pytest.mark.asyncio
    async def test_foreground_failure_swallowed(self):
        platform = FakePlatform(channel=None)
        platform.show_error = RuntimeError("no display")
        await PushGateway(platform).send("t")


class TestDispatch:
    def test_without_loop_sends_inline(self):
        channel = RecordingChannel()
        gateway = PushGateway(FakePlatform(channel=channel))
        assert gateway.dispatch("t", body="b", tag="general_1") is None
        assert channel.shown == [("t", {**DEFAULT_PUSH_OPTIONS, "body": "b", "tag": "general_1"})]

    def test_without_loop_respects_permission(self):
        channel = RecordingChannel()
        gateway = PushGateway(FakePlatform(permission="denied", channel=channel))
        gateway.dispatch("t", body="b")
        assert channel.shown == []

    @pytest.mark.asyncio
    async def test_runs_in_background(self):
        channel = RecordingChannel()
        gateway = PushGateway(FakePlatform(channel=channel))

        task = gateway.dispatch("t", body="b", tag="general_1")
        assert task is not None
        await gateway.drain()

        assert channel.shown[0][1]["tag"] == "general_1"
        assert task.done()


class TestExpoPushClient:
    @pytest.mark.parametrize("token,valid", [
        (TOKEN, True),
        ("ExpoPushToken[abc]", False),
        ("", False),
        (None, False),
    ])
    def test_token_format(self, token, valid):
        assert is_valid_push_token(token) is valid

    @pytest.mark.asyncio
    async def test_send_success(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-1"}})

        client = _expo_client(handler, access_token="expo-secret")
        sent = await client.send_notification(TOKEN, "Title", "Body", data={"rideId": "r1"})
        await client.aclose()

        assert sent is True
        [request] = requests
        assert str(request.url) == EXPO_PUSH_API_URL
        assert request.headers["Authorization"] == "Bearer expo-secret"
        payload = json.loads(request.content)
        assert payload == {
            "to": TOKEN,
            "title": "Title",
            "body": "Body",
            "sound": "default",
            "priority": "high",
            "data": {"rideId": "r1"},
        }

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self):
        headers = []

        def handler(request):
            headers.append(request.headers)
            return httpx.Response(200, json={"data": [{"status": "ok"}]})

        assert await _expo_client(handler).send_notification(TOKEN, "t", "b") is True
        assert "Authorization" not in headers[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"data": [{"status": "error", "message": "DeviceNotRegistered"}]}),
        httpx.Response(200, text="<html>"),
    ])
    async def test_send_failures_return_false(self, response):
        client = _expo_client(lambda request: response)
        assert await client.send_notification(TOKEN, "t", "b") is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        assert await _expo_client(handler).send_notification(TOKEN, "t", "b") is False

    @pytest.mark.asyncio
    async def test_invalid_token_skips_request(self):
        def handler(request):
            raise AssertionError("should not be called")

        assert await _expo_client(handler).send_notification("bad-token", "t", "b") is False


class TestExpoNotificationPlatform:
    def test_permission_from_token(self):
        client = _expo_client(lambda r: httpx.Response(200, json={"data": {}}))
        assert ExpoNotificationPlatform(client).permission() == "default"
        assert ExpoNotificationPlatform(client, push_token=TOKEN).permission() == "granted"
        assert ExpoNotificationPlatform(client, push_token="junk").permission() == "default"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provided,expected", [
        (TOKEN, PermissionStatus.GRANTED),
        (None, PermissionStatus.DENIED),
    ])
    async def test_request_permission_uses_token_provider(self, provided, expected):
        async def provider():
            return provided

        client = _expo_client(lambda r: httpx.Response(200, json={"data": {}}))
        gateway = PushGateway(ExpoNotificationPlatform(client, token_provider=provider))
        assert await gateway.request_permission() is expected

    @pytest.mark.asyncio
    async def test_send_through_gateway_moves_extras_into_data(self):
        payloads = []

        def handler(request):
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"data": {"status": "ok"}})

        gateway = PushGateway(ExpoNotificationPlatform(_expo_client(handler), push_token=TOKEN))
        await gateway.send("💰 Payment reminder", body="Check that everyone paid!", tag="payment_reminder_driver_r1", rideId="r1")

        [payload] = payloads
        assert payload["title"] == "💰 Payment reminder"
        assert payload["body"] == "Check that everyone paid!"
        assert payload["data"] == {"rideId": "r1", "tag": "payment_reminder_driver_r1"}

    @pytest.mark.asyncio
    async def test_rejected_push_falls_back_to_foreground_handler(self):
        foreground = []
        platform = ExpoNotificationPlatform(
            _expo_client(lambda r: httpx.Response(500)),
            push_token=TOKEN,
            foreground_handler=lambda title, options, on_click: foreground.append(title),
        )
        await PushGateway(platform).send("t", body="b")
        assert foreground == ["t"]
