"""
Tests for notifications/read_model.py - live view of the active identity
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from notifications.markers import ScheduleMarkerStore
from notifications.models import PermissionStatus
from notifications.push import PushGateway
from notifications.read_model import NotificationsReadModel
from notifications.scheduler import ReminderScheduler
from notifications.storage import MemoryStorage
from notifications.store import NotificationStore
from providers.fake_providers import InMemoryRideSource

NOW = datetime(2031, 3, 1, 12, 0, tzinfo=timezone.utc)
ALICE = "alice-0000-0001"
BOB = "bob-00000-0002"


class PromptPlatform:
    def __init__(self):
        self.state = "default"

    def permission(self):
        return self.state

    async def request_permission(self):
        self.state = "granted"
        return self.state

    async def background_channel(self):
        return None

    def show(self, title, options, on_click=None):
        pass


@pytest.fixture
def source():
    return InMemoryRideSource()


@pytest.fixture
def store():
    return NotificationStore(MemoryStorage(), clock=lambda: NOW)


@pytest.fixture
def gateway():
    return PushGateway(PromptPlatform())


@pytest_asyncio.fixture
async def scheduler(store, gateway, source):
    scheduler = ReminderScheduler(
        store, gateway, source, ScheduleMarkerStore(MemoryStorage()), clock=lambda: NOW
    )
    yield scheduler
    scheduler.shutdown()
    await asyncio.sleep(0)
    assert not scheduler.scheduler.running


@pytest_asyncio.fixture
async def model(store, gateway, scheduler):
    model = NotificationsReadModel(store, gateway, scheduler)
    yield model
    model.close()


class TestIdentity:
    @pytest.mark.asyncio
    async def test_starts_empty(self, model):
        assert model.user_id is None
        assert model.notifications == []
        assert model.unread_count == 0
        assert model.permission_status is PermissionStatus.DEFAULT

    @pytest.mark.asyncio
    async def test_loads_existing_records_and_starts_scheduler(self, model, store, scheduler):
        store.add(ALICE, "general", "a1", "b")
        store.add(ALICE, "general", "a2", "b")

        await model.set_identity(ALICE)

        assert [n.title for n in model.notifications] == ["a2", "a1"]
        assert model.unread_count == 2
        assert scheduler.user_id == ALICE

    @pytest.mark.asyncio
    async def test_switch_shows_only_new_users_records(self, model, store, scheduler):
        store.add(ALICE, "general", "for alice", "b")
        store.add(BOB, "general", "for bob", "b")
        await model.set_identity(ALICE)

        await model.set_identity(BOB)

        assert [n.title for n in model.notifications] == ["for bob"]
        assert scheduler.user_id == BOB

    @pytest.mark.asyncio
    async def test_sign_out_clears_view_and_stops_scheduler(self, model, store, scheduler):
        store.add(ALICE, "general", "a", "b")
        await model.set_identity(ALICE)

        await model.set_identity(None)

        assert model.notifications == []
        assert model.unread_count == 0
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_short_identity_shows_records_without_scheduler(self, model, store, scheduler):
        store.add("guest", "general", "hi", "b")
        await model.set_identity("guest")
        assert model.unread_count == 1
        assert not scheduler.running


class TestLiveUpdates:
    @pytest.mark.asyncio
    async def test_store_changes_propagate(self, model, store):
        await model.set_identity(ALICE)
        changes = []
        model.subscribe(lambda: changes.append(model.unread_count))

        record = store.add(ALICE, "general", "t", "b")
        store.add(ALICE, "general", "t", "b")
        model.mark_read(record.id)

        assert changes == [1, 2, 1]
        assert model.notifications[1].read is True

    @pytest.mark.asyncio
    async def test_other_users_writes_do_not_leak(self, model, store):
        await model.set_identity(ALICE)
        store.add(BOB, "general", "t", "b")
        assert model.notifications == []

    @pytest.mark.asyncio
    async def test_mark_all_remove_and_clear(self, model, store):
        await model.set_identity(ALICE)
        first = store.add(ALICE, "general", "first", "b")
        store.add(ALICE, "general", "second", "b")

        model.mark_all_read()
        assert model.unread_count == 0

        model.remove_notification(first.id)
        assert [n.title for n in model.notifications] == ["second"]

        model.clear_all()
        assert model.notifications == []

    @pytest.mark.asyncio
    async def test_actions_without_identity_are_noops(self, model, store):
        store.add(ALICE, "general", "t", "b")
        model.mark_all_read()
        model.clear_all()
        assert store.get_unread_count(ALICE) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, model, store):
        await model.set_identity(ALICE)
        changes = []
        unsubscribe = model.subscribe(lambda: changes.append(1))
        unsubscribe()
        store.add(ALICE, "general", "t", "b")
        assert changes == []

    @pytest.mark.asyncio
    async def test_scheduler_reminder_appears_in_view(self, model, source):
        source.add_ride("ride-1", ALICE, NOW + timedelta(minutes=20))
        await model.set_identity(ALICE)
        assert [n.title for n in model.notifications] == ["⏰ Ride reminder"]


class TestPermission:
    @pytest.mark.asyncio
    async def test_request_updates_status(self, model):
        assert await model.request_permission() is PermissionStatus.GRANTED
        assert model.permission_status is PermissionStatus.GRANTED

    @pytest.mark.asyncio
    async def test_unsupported_gateway(self, store, scheduler):
        model = NotificationsReadModel(store, PushGateway(), scheduler)
        assert model.is_supported is False
        assert model.permission_status is PermissionStatus.UNSUPPORTED
        model.close()


class TestClose:
    @pytest.mark.asyncio
    async def test_context_manager_stops_and_unsubscribes(self, store, gateway, scheduler):
        async with NotificationsReadModel(store, gateway, scheduler) as model:
            await model.set_identity(ALICE)
            assert scheduler.running

        assert not scheduler.running
        store.add(ALICE, "general", "after close", "b")
        assert model.notifications == []
        assert model.user_id is None
