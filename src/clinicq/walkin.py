"""
Walk-in placement: give a patient who turns up at the desk a ``W`` token, a
slot in the running session and an estimate of when they will be seen.

An empty slot within the next hour is taken first; otherwise the walk-in
goes into the session's reserved tail.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set

from .breaks import apply_break_offsets, break_blocked_times, build_break_intervals, leave_slot_times
from .capacity import Scheduler
from .config import (
    DELAY_TRACKED_STATUSES,
    STATUS_CANCELLED,
    STATUS_NO_SHOW,
    WALK_IN_PREFIX,
    EngineConfig,
)
from .delay import compute_delay
from .models import AppointmentRecord, Doctor, Slot, WalkInDecision
from .slots import active_session, build_slot_grid
from .tokens import format_token, token_kind, token_sequence

logger = logging.getLogger(__name__)

FILL_WINDOW_MINUTES = 60


def _occupied_times(appointments: Iterable[AppointmentRecord]) -> Set[datetime]:
    occupied: Set[datetime] = set()
    for appt in appointments:
        if appt.status in (STATUS_CANCELLED, STATUS_NO_SHOW):
            continue
        moment = appt.slot_time
        if moment is not None:
            occupied.add(moment)
    return occupied


def next_walk_in_number(appointments: Iterable[AppointmentRecord], slot_count: int) -> int:
    """One past the highest walk-in number of the day; the first follows the slot count."""
    numbers: List[int] = []
    for appt in appointments:
        if token_kind(appt.token_number) != WALK_IN_PREFIX:
            continue
        if appt.numeric_token:
            numbers.append(appt.numeric_token)
            continue
        sequence = token_sequence(appt.token_number)
        if sequence and sequence[-1] > 0:
            numbers.append(sequence[-1])
    return (max(numbers) if numbers else slot_count) + 1


def walk_in_decision(
    doctor: Doctor,
    now: datetime,
    appointments: Iterable[AppointmentRecord],
    cfg: EngineConfig,
) -> Optional[WalkInDecision]:
    """Where a walk-in arriving at ``now`` would go, or None when the session is full."""
    session = active_session(doctor, now, cfg)
    if session is None:
        logger.info("No session open for walk-ins for doctor %s at %s", doctor.doctor_id, now)
        return None

    day = now.date()
    appointments = [a for a in appointments if a.doctor_id == doctor.doctor_id and a.date == day]
    slots = build_slot_grid(doctor, day, cfg)
    intervals = build_break_intervals(doctor, day, cfg)
    blocked = leave_slot_times(doctor, day) | break_blocked_times(slots, intervals, appointments)
    occupied = _occupied_times(appointments)

    session_slots = [slot for slot in slots if slot.session_index == session.index]
    free = [
        slot
        for slot in session_slots
        if slot.time >= now and slot.time not in blocked and slot.time not in occupied
    ]
    horizon = now + timedelta(minutes=FILL_WINDOW_MINUTES)
    chosen: Optional[Slot] = next((slot for slot in free if slot.time <= horizon), None)
    if chosen is None:
        reserved = Scheduler(cfg).reserved_walk_in(session_slots, day, now, blocked)
        chosen = next((slot for slot in free if slot.index in reserved), None)
    if chosen is None:
        logger.info("No walk-in slot left for doctor %s in session %d", doctor.doctor_id, session.index)
        return None

    numeric = next_walk_in_number(appointments, len(slots))
    delay = compute_delay(doctor, now, cfg, intervals, session.index).delay_minutes
    ahead = sum(
        1
        for appt in appointments
        if appt.status in DELAY_TRACKED_STATUSES
        and appt.slot_time is not None
        and session.start <= appt.slot_time < chosen.time
    )
    return WalkInDecision(
        day=day,
        session_index=session.index,
        slot_time=chosen.time,
        slot_index=chosen.index,
        token_number=format_token(WALK_IN_PREFIX, numeric, session.index),
        numeric_token=numeric,
        estimated_time=apply_break_offsets(chosen.time, intervals) + timedelta(minutes=delay),
        patients_ahead=ahead,
    )
