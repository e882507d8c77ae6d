# salonbook/realtime.py

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .models import Appointment

logger = logging.getLogger(__name__)


def appointment_snapshot(appt: Appointment) -> dict:
    return {
        "id": appt.id,
        "salon_id": appt.salon_id,
        "service_id": appt.service_id,
        "client_id": appt.client_id,
        "appointment_date": appt.appointment_date.isoformat(),
        "appointment_time": appt.appointment_time.strftime("%H:%M"),
        "status": appt.status,
        "notes": appt.notes,
        "updated_at": appt.updated_at.isoformat(),
    }


@dataclass(frozen=True)
class AppointmentChange:
    op: str  # insert or update
    salon_id: int
    new: dict
    old: Optional[dict] = None

    def as_dict(self) -> dict:
        return {"op": self.op, "salon_id": self.salon_id, "old": self.old, "new": self.new}


class ChangeFeed:
    """
    In-process fan-out of appointment row changes, keyed by salon.

    Publishers call `publish` after their write has committed. Subscribers get
    every change for their salon in publish order; a failing subscriber is logged
    and does not affect the writer or other subscribers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[int, List[Callable]] = defaultdict(list)

    def subscribe(self, salon_id: int, callback: Callable[[AppointmentChange], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers[salon_id].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[salon_id]:
                    self._subscribers[salon_id].remove(callback)

        return unsubscribe

    def publish(self, change: AppointmentChange) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(change.salon_id, ()))
        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                logger.exception(f"Subscriber failed on {change.op} of appointment {change.new.get('id')}")

    def subscriber_count(self, salon_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(salon_id, ()))


feed = ChangeFeed()


def get_feed() -> ChangeFeed:
    return feed


class LiveAppointmentBoard:
    """
    A view's copy of a salon's appointments, kept current from the change feed.

    Delivery is at-least-once, so applying the same change twice is harmless, and
    a change older than the row already held (by `updated_at`) is ignored.
    """

    def __init__(self, salon_id: int):
        self.salon_id = salon_id
        self.rows: Dict[int, dict] = {}

    def apply(self, change: AppointmentChange) -> bool:
        if change.salon_id != self.salon_id:
            return False
        row = change.new
        current = self.rows.get(row["id"])
        if current is not None and current["updated_at"] > row["updated_at"]:
            logger.debug(f"Ignoring stale change for appointment {row['id']}")
            return False
        self.rows[row["id"]] = row
        return True

    def booked_times(self, on_date: str) -> List[str]:
        return sorted(
            r["appointment_time"]
            for r in self.rows.values()
            if r["appointment_date"] == on_date and r["status"] in ("pending", "confirmed")
        )
