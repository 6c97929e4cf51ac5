"""
Appointment reminder queue.

Holds at most one pending reminder per booking id. The booking engine feeds
it on create, reschedule, cancel and complete; whatever delivers the
reminders (email, SMS) drains it with ``pop_due``. Nothing in here touches
the booking tables.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .config import REMINDER_LEAD_HOURS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reminder:
    booking_id: int
    client_id: int
    barber_id: int
    starts_at: datetime
    due_at: datetime


class ReminderQueue:
    def __init__(self, lead_hours: int = REMINDER_LEAD_HOURS):
        self.lead = timedelta(hours=lead_hours)
        self._tasks: Dict[int, Reminder] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def schedule(self, booking, now: Optional[datetime] = None) -> Reminder:
        """Queue (or replace) the reminder of ``booking``."""
        due_at = booking.starts_at - self.lead
        if now is not None and due_at < now:
            due_at = now
        reminder = Reminder(
            booking_id=booking.id,
            client_id=booking.client_id,
            barber_id=booking.barber_id,
            starts_at=booking.starts_at,
            due_at=due_at,
        )
        with self._lock:
            self._tasks[booking.id] = reminder
        logger.debug(f"Reminder for booking {booking.id} due at {due_at:%Y-%m-%d %H:%M}")
        return reminder

    def discard(self, booking_id: int) -> bool:
        with self._lock:
            return self._tasks.pop(booking_id, None) is not None

    def get(self, booking_id: int) -> Optional[Reminder]:
        with self._lock:
            return self._tasks.get(booking_id)

    def pop_due(self, now: datetime) -> List[Reminder]:
        """Remove and return every reminder due at or before ``now``, oldest first."""
        with self._lock:
            due = sorted(
                (r for r in self._tasks.values() if r.due_at <= now),
                key=lambda r: (r.due_at, r.booking_id),
            )
            for reminder in due:
                del self._tasks[reminder.booking_id]
        if due:
            logger.info(f"{len(due)} appointment reminder(s) due")
        return due


reminder_queue = ReminderQueue()


def get_reminder_queue() -> ReminderQueue:
    return reminder_queue
