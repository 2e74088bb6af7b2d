"""
Exceptions raised by the engine and its persistence adapters.
"""

from __future__ import annotations

from datetime import date, datetime


class SchedulingError(RuntimeError):
    """Base class for clinicq failures."""


class SlotConflictError(SchedulingError):
    """The slot was claimed by someone else between search and write.

    Retryable: the caller re-runs the slot search against fresh state.
    """

    def __init__(self, clinic_id: str, doctor_id: str, day: date, slot_time: datetime):
        self.clinic_id = clinic_id
        self.doctor_id = doctor_id
        self.day = day
        self.slot_time = slot_time
        super().__init__(
            f"Slot {slot_time:%H:%M} on {day} for doctor {doctor_id} is already claimed"
        )


class InvalidBreakError(SchedulingError, ValueError):
    """A requested break cannot be scheduled."""
