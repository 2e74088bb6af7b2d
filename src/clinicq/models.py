"""
Typed containers shared by the scheduling engine and its adapters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from .config import ADVANCE_PREFIX, CONSULTATION_OUT, WALK_IN_PREFIX, EngineConfig
from .timeparse import parse_clock


@dataclass
class Session:
    start: str  # wall clock, "09:00 AM" or "09:00"
    end: str


@dataclass
class SessionExtension:
    session_index: int
    new_end_time: str
    original_end_time: Optional[str] = None


@dataclass
class BreakPeriod:
    start: str  # ISO timestamp
    end: str
    session_index: Optional[int] = None


@dataclass(frozen=True)
class BreakInterval:
    start: datetime
    end: datetime
    session_index: Optional[int] = None

    @property
    def minutes(self) -> int:
        return max(0, int((self.end - self.start).total_seconds() // 60))

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class Doctor:
    doctor_id: str
    name: str
    clinic_id: str = ""
    availability: Dict[str, List[Session]] = field(default_factory=dict)  # weekday name -> sessions
    extensions: Dict[date, List[SessionExtension]] = field(default_factory=dict)
    leave_slots: Dict[date, List[str]] = field(default_factory=dict)
    break_periods: Dict[date, List[BreakPeriod]] = field(default_factory=dict)
    consultation_status: str = CONSULTATION_OUT
    average_consulting_time: Optional[int] = None
    advance_booking_days: Optional[int] = None

    def sessions_for(self, day: date) -> List[Session]:
        weekday = day.strftime("%A").lower()
        for name, sessions in self.availability.items():
            if name.lower() == weekday:
                return list(sessions)
        return []

    def extension_for(self, day: date, session_index: int) -> Optional[SessionExtension]:
        # Later entries supersede earlier ones for the same session.
        latest = None
        for ext in self.extensions.get(day, []):
            if ext.session_index == session_index:
                latest = ext
        return latest

    def slot_minutes(self, cfg: EngineConfig) -> int:
        if self.average_consulting_time and self.average_consulting_time > 0:
            return self.average_consulting_time
        return cfg.consultation_minutes

    def lookahead_days(self, cfg: EngineConfig) -> int:
        if self.advance_booking_days and self.advance_booking_days > 0:
            return self.advance_booking_days
        return cfg.lookahead_days


@dataclass
class AppointmentRecord:
    appointment_id: str
    doctor_id: str
    date: date
    time: str
    token_number: str
    status: str
    clinic_id: str = ""
    cut_off_time: Optional[datetime] = None
    no_show_time: Optional[datetime] = None
    doctor_delay_minutes: int = 0
    cancelled_by_break: bool = False
    session_index: Optional[int] = None
    numeric_token: Optional[int] = None
    skipped_at: Optional[datetime] = None
    shifted_minutes: int = 0  # moved later by a break added after booking

    @property
    def slot_time(self) -> Optional[datetime]:
        return parse_clock(self.time, self.date)

    @property
    def booked_slot_time(self) -> Optional[datetime]:
        """Slot time before any break shift was applied."""
        moment = self.slot_time
        if moment is None or not self.shifted_minutes:
            return moment
        return moment - timedelta(minutes=self.shifted_minutes)

    @property
    def is_walk_in(self) -> bool:
        return self.token_number.strip().upper().startswith(WALK_IN_PREFIX)

    @property
    def is_advance(self) -> bool:
        return self.token_number.strip().upper().startswith(ADVANCE_PREFIX)


@dataclass(frozen=True)
class Slot:
    index: int  # global across the day's sessions
    time: datetime
    session_index: int


@dataclass(frozen=True)
class SlotDecision:
    day: date
    session_index: int
    slot_time: datetime
    slot_index: int
    reporting_time: datetime


@dataclass(frozen=True)
class DelayRecord:
    delay_minutes: int
    effective_start: Optional[datetime]
    in_break: bool = False
    window_open: bool = True
    session_index: Optional[int] = None


@dataclass(frozen=True)
class WalkInDecision:
    day: date
    session_index: int
    slot_time: datetime
    slot_index: int
    token_number: str
    numeric_token: int
    estimated_time: datetime  # slot time after break offsets and current delay
    patients_ahead: int


@dataclass(frozen=True)
class AppointmentShift:
    appointment_id: str
    new_time: datetime
    shift_minutes: int
    new_cut_off_time: Optional[datetime]
    new_no_show_time: Optional[datetime]
    during_break: bool  # original slot is covered by the break itself


@dataclass
class BreakShiftPlan:
    interval: BreakInterval
    shifts: List[AppointmentShift] = field(default_factory=list)
    placeholder_times: List[datetime] = field(default_factory=list)


@dataclass(frozen=True)
class ThresholdUpdate:
    appointment_id: str
    cut_off_time: datetime
    no_show_time: datetime
    doctor_delay_minutes: int


@dataclass(frozen=True)
class StatusTransition:
    appointment_id: str
    old_status: str
    new_status: str
    threshold: datetime


@dataclass
class QueueView:
    arrived: List[AppointmentRecord] = field(default_factory=list)
    skipped: List[AppointmentRecord] = field(default_factory=list)
    pending: List[AppointmentRecord] = field(default_factory=list)
    next_up: Optional[AppointmentRecord] = None
    break_remaining_minutes: Optional[int] = None
