"""
Capacity reservation: hold back the tail of each session's remaining capacity
for walk-ins and locate the earliest slot an advance booking may take.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from itertools import groupby
from typing import Callable, Iterable, List, Optional, Sequence, Set

from .breaks import break_blocked_times, build_break_intervals, leave_slot_times
from .config import BOOKED_STATUSES, EngineConfig
from .models import AppointmentRecord, Doctor, Slot, SlotDecision
from .slots import build_slot_grid

logger = logging.getLogger(__name__)

AppointmentLookup = Callable[[date], Sequence[AppointmentRecord]]
ClaimLookup = Callable[[date], Iterable[datetime]]


def booked_slot_times(appointments: Iterable[AppointmentRecord]) -> Set[datetime]:
    booked: Set[datetime] = set()
    for appt in appointments:
        if appt.is_walk_in or appt.status not in BOOKED_STATUSES:
            continue
        moment = appt.slot_time
        if moment is None:
            logger.warning("Appointment %s has unparsable time %r", appt.appointment_id, appt.time)
            continue
        booked.add(moment)
    return booked


class Scheduler:
    def __init__(self, cfg: EngineConfig):
        self.cfg = cfg

    def _is_future(self, moment: datetime, day: date, now: datetime) -> bool:
        if day == now.date():
            return moment > now + timedelta(minutes=self.cfg.booking_buffer_minutes)
        return moment >= now

    def reserved_walk_in(
        self,
        session_slots: Sequence[Slot],
        day: date,
        now: datetime,
        blocked: Set[datetime],
    ) -> Set[int]:
        """Global indexes of the trailing share of this session's future-valid slots."""
        future = [
            slot.index
            for slot in session_slots
            if slot.time not in blocked and self._is_future(slot.time, day, now)
        ]
        reserve = self.cfg.walk_in_reserve(len(future))
        return set(future[len(future) - reserve:]) if reserve else set()

    def first_eligible_slot(
        self,
        slots: Sequence[Slot],
        day: date,
        now: datetime,
        booked: Set[datetime],
        leave_blocked: Set[datetime],
        break_blocked: Set[datetime],
    ) -> Optional[SlotDecision]:
        blocked = leave_blocked | break_blocked
        # Sessions are scanned in declared order; the first to yield a slot wins.
        for session_index, group in groupby(slots, key=lambda s: s.session_index):
            session_slots = list(group)
            reserved = self.reserved_walk_in(session_slots, day, now, blocked)
            for slot in session_slots:
                if not self._is_future(slot.time, day, now):
                    continue
                if slot.time in blocked or slot.time in booked or slot.index in reserved:
                    continue
                return SlotDecision(
                    day=day,
                    session_index=session_index,
                    slot_time=slot.time,
                    slot_index=slot.index,
                    reporting_time=slot.time - timedelta(minutes=self.cfg.cutoff_minutes),
                )
        return None

    def day_decision(
        self,
        doctor: Doctor,
        day: date,
        now: datetime,
        appointments: Sequence[AppointmentRecord],
        claimed: Iterable[datetime] = (),
    ) -> Optional[SlotDecision]:
        """``claimed`` holds slot times taken at the persistence layer but not yet visible as records."""
        slots = build_slot_grid(doctor, day, self.cfg)
        if not slots:
            return None
        intervals = build_break_intervals(doctor, day, self.cfg)
        return self.first_eligible_slot(
            slots,
            day,
            now,
            booked=booked_slot_times(appointments) | set(claimed),
            leave_blocked=leave_slot_times(doctor, day),
            break_blocked=break_blocked_times(slots, intervals, appointments),
        )

    def next_available(
        self,
        doctor: Doctor,
        now: datetime,
        appointments_for: AppointmentLookup,
        claimed_for: Optional[ClaimLookup] = None,
    ) -> Optional[SlotDecision]:
        day = now.date()
        for _ in range(doctor.lookahead_days(self.cfg)):
            if doctor.sessions_for(day):
                claimed = claimed_for(day) if claimed_for else ()
                decision = self.day_decision(doctor, day, now, appointments_for(day), claimed)
                if decision:
                    return decision
            day += timedelta(days=1)
        logger.debug("No availability for doctor %s within look-ahead", doctor.doctor_id)
        return None

    def sessions_with_capacity(
        self, doctor: Doctor, day: date, now: datetime, appointments: Sequence[AppointmentRecord]
    ) -> List[int]:
        """Session indexes that could still take an advance booking on ``day``."""
        slots = build_slot_grid(doctor, day, self.cfg)
        intervals = build_break_intervals(doctor, day, self.cfg)
        booked = booked_slot_times(appointments)
        leave = leave_slot_times(doctor, day)
        breaks = break_blocked_times(slots, intervals, appointments)
        open_sessions: List[int] = []
        for session_index, group in groupby(slots, key=lambda s: s.session_index):
            if self.first_eligible_slot(list(group), day, now, booked, leave, breaks):
                open_sessions.append(session_index)
        return open_sessions
