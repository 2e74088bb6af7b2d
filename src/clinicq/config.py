"""
Centralized scheduling defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Tuple


STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_SKIPPED = "Skipped"
STATUS_NO_SHOW = "No-show"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"

STATUSES: Tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_SKIPPED,
    STATUS_NO_SHOW,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)

# Statuses that occupy an advance slot for capacity purposes.
BOOKED_STATUSES: FrozenSet[str] = frozenset({STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED})
# Statuses whose thresholds follow the doctor's delay.
DELAY_TRACKED_STATUSES: FrozenSet[str] = frozenset({STATUS_PENDING, STATUS_CONFIRMED, STATUS_SKIPPED})

ADVANCE_PREFIX = "A"
WALK_IN_PREFIX = "W"

CONSULTATION_IN = "In"
CONSULTATION_OUT = "Out"

WEEKDAYS: Tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


@dataclass
class EngineConfig:
    consultation_minutes: int = 15  # slot step when the doctor has no average time
    booking_buffer_minutes: int = 30  # same-day bookings only
    walk_in_reserve_percent: int = 15  # tail of future capacity kept for walk-ins
    lookahead_days: int = 15
    cutoff_minutes: int = 15
    no_show_minutes: int = 15
    break_start_tolerance_minutes: int = 1
    delay_write_threshold_minutes: int = 5
    poll_interval_seconds: int = 30
    presence_poll_interval_seconds: int = 120
    stale_confirmed_minutes: int = 120
    check_in_lead_minutes: int = 30
    walk_in_lead_minutes: int = 30
    walk_in_close_minutes: int = 15
    max_breaks_per_session: int = 3
    booking_retry_attempts: int = 3

    def walk_in_reserve(self, future_count: int) -> int:
        # Integer ceil keeps 20 * 15% at exactly 3.
        if future_count <= 0:
            return 0
        return -(-future_count * self.walk_in_reserve_percent // 100)
