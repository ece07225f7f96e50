"""
Ride Reminder Scheduler

Periodic job that:
1. Finds the user's upcoming driver rides and confirmed passenger bookings
2. Computes fire times for reminders per ride
3. Arms one-shot APScheduler jobs, persisting a marker per (ride, kind)
4. On fire, writes an in-app record and sends a push

Runs every 60 seconds via APScheduler while an identity is active.

Reminder kinds:
- ride_reminder: driver, 30 min before departure (fires at once if the app
  opens inside the last 30 min)
- driver_payment_reminder: driver, 15 min after departure
- passenger_payment_reminder: passenger, 15 min after departure
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Set

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from providers.contracts import RideSource

from .dispatcher import format_amount
from .markers import ScheduleMarkerStore
from .models import NotificationType, ReminderKind, ScheduleMarker, isoformat_utc, reminder_key
from .push import PushGateway
from .store import NotificationStore

logger = logging.getLogger(__name__)


def _parse_departure(ride: Dict[str, Any]) -> Optional[datetime]:
    raw = ride.get("departure_time")
    if not raw:
        return None
    try:
        departure = raw if isinstance(raw, datetime) else datetime.fromisoformat(str(raw))
    except ValueError:
        return None
    if departure.tzinfo is None:
        departure = departure.replace(tzinfo=timezone.utc)
    return departure


def _short_name(passenger: Optional[Dict[str, Any]]) -> str:
    """'Dana Katz' -> 'Dana K.'"""
    if not passenger:
        return ""
    first = (passenger.get("first_name") or "").strip()
    last = (passenger.get("last_name") or "").strip()
    return f"{first} {last[0]}." if last else first


class ReminderScheduler:
    """Arms time-relative ride reminders for one active identity."""

    # Poll interval for new rides
    CHECK_INTERVAL_SECONDS = 60

    # Only driver rides departing within this window are considered
    LOOKAHEAD = timedelta(hours=2)

    RIDE_REMINDER_LEAD = timedelta(minutes=30)
    PAYMENT_REMINDER_DELAY = timedelta(minutes=15)

    # Shorter ids are treated as "no identity"
    MIN_USER_ID_LENGTH = 10

    # Markers older than this are pruned; they can never fire again
    MARKER_RETENTION = timedelta(hours=24)

    POLL_JOB_ID = "reminder_poll"

    def __init__(
        self,
        store: NotificationStore,
        gateway: PushGateway,
        ride_source: RideSource,
        markers: ScheduleMarkerStore,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        check_interval_seconds: Optional[int] = None,
    ):
        """
        Initialize scheduler.

        Args:
            store: Notification store records are written to
            gateway: Push gateway for the advisory push
            ride_source: External ride/booking source that is polled
            markers: Persisted schedule markers
            scheduler: APScheduler instance (default: new AsyncIOScheduler)
            clock: Returns the current instant (default: UTC now)
            check_interval_seconds: Poll interval override
        """
        self.store = store
        self.gateway = gateway
        self.ride_source = ride_source
        self.markers = markers
        self.scheduler = scheduler or AsyncIOScheduler()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.check_interval_seconds = check_interval_seconds or self.CHECK_INTERVAL_SECONDS
        self._user_id: Optional[str] = None
        self._timers: Dict[str, Any] = {}
        self._fired: Set[str] = set()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def running(self) -> bool:
        return self._user_id is not None

    @property
    def armed_keys(self) -> Set[str]:
        return set(self._timers)

    @classmethod
    def is_valid_identity(cls, user_id: Any) -> bool:
        return isinstance(user_id, str) and len(user_id) >= cls.MIN_USER_ID_LENGTH

    async def start(self, user_id: str) -> None:
        """
        Start polling for the given user.

        Runs one pass immediately, then every check interval. Invalid ids
        are ignored.
        """
        if not self.is_valid_identity(user_id):
            logger.debug(f"[REMINDERS] Ignoring start for invalid identity {user_id!r}")
            return
        if self._user_id is not None and self._user_id != user_id:
            self.stop()

        self._user_id = user_id
        if not self.scheduler.running:
            self.scheduler.start()

        await self.schedule_upcoming_rides()
        if self._user_id != user_id:
            # stopped or switched while the first pass was in flight
            return

        self.scheduler.add_job(
            self.schedule_upcoming_rides,
            "interval",
            seconds=self.check_interval_seconds,
            id=self.POLL_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"[REMINDERS] Started for user {user_id}")

    def stop(self) -> None:
        """Cancel the poll job and every armed reminder. Idempotent."""
        self._remove_job(self.POLL_JOB_ID)
        for key in list(self._timers):
            self._remove_job(key)
        self._timers.clear()
        if self._user_id is not None:
            logger.info(f"[REMINDERS] Stopped for user {self._user_id}")
        self._user_id = None

    def shutdown(self) -> None:
        """stop() and shut the underlying APScheduler down."""
        self.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _remove_job(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def _still_running_for(self, user_id: str) -> bool:
        return self._user_id == user_id

    async def schedule_upcoming_rides(self) -> None:
        """One poll-and-arm pass. Source failures only shrink what gets armed."""
        user_id = self._user_id
        if not self.is_valid_identity(user_id):
            return

        now = self.clock()
        pruned = self.markers.prune_before(now - self.MARKER_RETENTION)
        if pruned:
            logger.debug(f"[REMINDERS] Pruned {pruned} stale markers")

        try:
            driver_rides = await self.ride_source.list_active_driver_rides(
                user_id, now, now + self.LOOKAHEAD
            )
        except Exception as e:
            logger.warning(f"[REMINDERS] Failed to fetch driver rides: {e}")
            driver_rides = []
        if not self._still_running_for(user_id):
            return

        try:
            passenger_bookings = await self.ride_source.list_confirmed_bookings_for_passenger(user_id)
        except Exception as e:
            logger.warning(f"[REMINDERS] Failed to fetch passenger bookings: {e}")
            passenger_bookings = []
        if not self._still_running_for(user_id):
            return

        for ride in driver_rides or []:
            await self._schedule_ride_reminder(user_id, ride)
            if not self._still_running_for(user_id):
                return
            self._schedule_payment_reminder(user_id, ride, ReminderKind.DRIVER_PAYMENT_REMINDER)

        for booking in passenger_bookings or []:
            ride = booking.get("ride")
            if not ride:
                continue
            self._schedule_payment_reminder(user_id, ride, ReminderKind.PASSENGER_PAYMENT_REMINDER)

    def _is_scheduled(self, ride_id: str, kind: ReminderKind) -> bool:
        key = reminder_key(ride_id, kind)
        return key in self._timers or key in self._fired or self.markers.exists(ride_id, kind)

    async def _schedule_ride_reminder(self, user_id: str, ride: Dict[str, Any]) -> None:
        kind = ReminderKind.RIDE_REMINDER
        ride_id = str(ride.get("id", ""))
        if not ride_id or self._is_scheduled(ride_id, kind):
            return
        departure = _parse_departure(ride)
        if departure is None:
            logger.warning(f"[REMINDERS] Ride {ride_id} has no usable departure_time")
            return

        fire_at = departure - self.RIDE_REMINDER_LEAD
        now = self.clock()
        if fire_at <= now:
            # Opened inside the last 30 minutes: remind now, once
            if now < departure:
                self._fired.add(reminder_key(ride_id, kind))
                await self._fire_ride_reminder(user_id, ride)
            return
        self._arm(user_id, ride_id, ride, kind, fire_at)

    def _schedule_payment_reminder(
        self, user_id: str, ride: Dict[str, Any], kind: ReminderKind
    ) -> None:
        ride_id = str(ride.get("id", ""))
        if not ride_id or self._is_scheduled(ride_id, kind):
            return
        departure = _parse_departure(ride)
        if departure is None:
            logger.warning(f"[REMINDERS] Ride {ride_id} has no usable departure_time")
            return

        fire_at = departure + self.PAYMENT_REMINDER_DELAY
        if fire_at <= self.clock():
            return  # a late payment reminder is not useful
        self._arm(user_id, ride_id, ride, kind, fire_at)

    def _arm(
        self,
        user_id: str,
        ride_id: str,
        ride: Dict[str, Any],
        kind: ReminderKind,
        fire_at: datetime,
    ) -> None:
        key = reminder_key(ride_id, kind)
        marker = ScheduleMarker(
            ride_id=ride_id,
            type=kind,
            fire_at=isoformat_utc(fire_at),
            user_id=user_id,
        )
        if not self.markers.add(marker):
            return
        self._timers[key] = self.scheduler.add_job(
            self._run_reminder,
            "date",
            run_date=fire_at,
            args=[key, kind, user_id, dict(ride)],
            id=key,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug(f"[REMINDERS] Armed {kind.value} for ride {ride_id} at {marker.fire_at}")

    async def _run_reminder(
        self, key: str, kind: ReminderKind, user_id: str, ride: Dict[str, Any]
    ) -> None:
        self._timers.pop(key, None)
        self._fired.add(key)
        try:
            if kind is ReminderKind.RIDE_REMINDER:
                await self._fire_ride_reminder(user_id, ride)
            elif kind is ReminderKind.DRIVER_PAYMENT_REMINDER:
                await self._fire_driver_payment_reminder(user_id, ride)
            else:
                await self._fire_passenger_payment_reminder(user_id, ride)
        finally:
            self.markers.remove(str(ride["id"]), kind)

    async def _fire_ride_reminder(self, user_id: str, ride: Dict[str, Any]) -> None:
        ride_id = str(ride["id"])
        try:
            bookings = await self.ride_source.list_confirmed_bookings_for_ride(ride_id)
        except Exception as e:
            logger.warning(f"[REMINDERS] Failed to fetch passengers for ride {ride_id}: {e}")
            bookings = []

        names = [n for n in (_short_name(b.get("passenger")) for b in bookings or []) if n]
        passenger_count = len(bookings or [])
        passenger_names = ", ".join(names) or "No passengers yet"

        body = (
            f"🚗 Your ride from {ride.get('origin')} to {ride.get('destination')} leaves in 30 minutes!\n"
            f"👥 {passenger_count} passengers: {passenger_names}"
        )
        await self._deliver(
            user_id,
            NotificationType.RIDE_REMINDER,
            "⏰ Ride reminder",
            body,
            ride_id,
            tag=f"ride_reminder_{ride_id}",
        )

    async def _fire_driver_payment_reminder(self, user_id: str, ride: Dict[str, Any]) -> None:
        ride_id = str(ride["id"])
        passengers_booked = int(ride.get("seats_total") or 0) - int(ride.get("seats_available") or 0)
        total_expected = passengers_booked * float(ride.get("cost") or 0)

        body = (
            f"💰 Your ride from {ride.get('origin')} to {ride.get('destination')} has ended.\n"
            f"You should receive ₪{format_amount(total_expected)} from {passengers_booked} passengers. "
            f"Check that everyone paid!"
        )
        await self._deliver(
            user_id,
            NotificationType.PAYMENT_REMINDER,
            "💰 Payment reminder",
            body,
            ride_id,
            tag=f"payment_reminder_driver_{ride_id}",
        )

    async def _fire_passenger_payment_reminder(self, user_id: str, ride: Dict[str, Any]) -> None:
        ride_id = str(ride["id"])
        driver_name = "the driver"
        bit_link = None
        driver_id = ride.get("driver_id")
        if driver_id:
            try:
                driver = await self.ride_source.get_profile(driver_id)
            except Exception as e:
                logger.warning(f"[REMINDERS] Failed to fetch driver {driver_id}: {e}")
                driver = None
            if driver:
                driver_name = f"{driver.get('first_name', '')} {driver.get('last_name', '')}".strip() or driver_name
                bit_link = driver.get("bit_link")

        body = (
            f"💳 Don't forget to pay ₪{format_amount(ride.get('cost'))} to {driver_name} "
            f"for the ride from {ride.get('origin')} to {ride.get('destination')}"
        )
        await self._deliver(
            user_id,
            NotificationType.PAYMENT_REMINDER,
            "💳 Did you pay the driver?",
            body,
            ride_id,
            tag=f"payment_reminder_passenger_{ride_id}",
            meta={"bitLink": bit_link},
        )

    async def _deliver(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        body: str,
        ride_id: str,
        tag: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.store.add(user_id, notification_type, title, body, ride_id=ride_id, meta=meta)
        await self.gateway.send(title, body=body, tag=tag)
        logger.info(f"[REMINDERS] Sent {notification_type.value} for ride {ride_id} to user {user_id}")
