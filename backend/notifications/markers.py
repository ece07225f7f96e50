"""
Persisted schedule markers.

A single JSON array under one fixed key, shared by every user on the device.
At most one marker exists per (ride_id, kind); that pair is what keeps a
reminder from being armed twice across poll passes or restarts.
"""

import json
import logging
import threading
from datetime import datetime
from typing import List

from pydantic import TypeAdapter

from .models import ReminderKind, ScheduleMarker
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

SCHEDULED_KEY = "rideshare_scheduled_notifications"

_markers_adapter = TypeAdapter(List[ScheduleMarker])


class ScheduleMarkerStore:
    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._lock = threading.RLock()

    def get_all(self) -> List[ScheduleMarker]:
        try:
            raw = self.storage.get_item(SCHEDULED_KEY)
        except Exception as e:
            logger.warning(f"Schedule markers unreadable: {e}")
            return []
        if not raw:
            return []
        try:
            return _markers_adapter.validate_json(raw)
        except Exception as e:
            logger.warning(f"Discarding corrupt schedule markers: {e}")
            return []

    def exists(self, ride_id: str, kind: ReminderKind) -> bool:
        return any(m.ride_id == ride_id and m.type is kind for m in self.get_all())

    def add(self, marker: ScheduleMarker) -> bool:
        """Persist the marker unless one already exists for its key. Returns True if added."""
        with self._lock:
            markers = self.get_all()
            if any(m.ride_id == marker.ride_id and m.type is marker.type for m in markers):
                return False
            markers.append(marker)
            self._write(markers)
            return True

    def remove(self, ride_id: str, kind: ReminderKind) -> None:
        with self._lock:
            markers = self.get_all()
            kept = [m for m in markers if not (m.ride_id == ride_id and m.type is kind)]
            if len(kept) != len(markers):
                self._write(kept)

    def prune_before(self, cutoff: datetime) -> int:
        """Drop markers whose fire time is earlier than cutoff. Returns the number dropped."""
        with self._lock:
            markers = self.get_all()
            kept = []
            for marker in markers:
                try:
                    stale = marker.fire_at_dt < cutoff
                except (ValueError, TypeError):
                    stale = True
                if not stale:
                    kept.append(marker)
            dropped = len(markers) - len(kept)
            if dropped:
                self._write(kept)
            return dropped

    def _write(self, markers: List[ScheduleMarker]) -> None:
        payload = json.dumps([m.to_storage_doc() for m in markers])
        try:
            self.storage.set_item(SCHEDULED_KEY, payload)
        except Exception as e:
            logger.error(f"Failed to persist schedule markers: {e}")
