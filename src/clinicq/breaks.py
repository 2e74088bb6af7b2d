"""
Leave and break handling: turn leave-slot markers and recorded break periods
into merged break intervals, and derive what those intervals block or shift.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Set

from .config import DELAY_TRACKED_STATUSES, STATUS_CANCELLED, STATUS_COMPLETED, EngineConfig
from .errors import InvalidBreakError
from .models import (
    AppointmentRecord,
    AppointmentShift,
    BreakInterval,
    BreakPeriod,
    BreakShiftPlan,
    Doctor,
    Slot,
)
from .slots import SessionWindow, build_slot_grid, session_windows
from .timeparse import parse_instant

logger = logging.getLogger(__name__)


def leave_slot_times(doctor: Doctor, day: date) -> Set[datetime]:
    times: Set[datetime] = set()
    for raw in doctor.leave_slots.get(day, []):
        moment = parse_instant(raw, day)
        if moment is None:
            logger.warning("Dropping unparsable leave slot %r for doctor %s", raw, doctor.doctor_id)
            continue
        times.add(moment)
    return times


def merge_adjacent(intervals: Iterable[BreakInterval]) -> List[BreakInterval]:
    """Merge intervals that touch or overlap: [9:15-9:30, 9:30-9:45] -> [9:15-9:45]."""
    ordered = sorted(intervals, key=lambda iv: (iv.start, iv.end))
    merged: List[BreakInterval] = []
    for interval in ordered:
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = BreakInterval(
                start=last.start, end=max(last.end, interval.end), session_index=last.session_index
            )
        else:
            merged.append(interval)
    return merged


def build_break_intervals(doctor: Doctor, day: date, cfg: EngineConfig) -> List[BreakInterval]:
    length = timedelta(minutes=doctor.slot_minutes(cfg))
    raw: List[BreakInterval] = [
        BreakInterval(start=moment, end=moment + length) for moment in leave_slot_times(doctor, day)
    ]
    for period in doctor.break_periods.get(day, []):
        start = parse_instant(period.start, day)
        end = parse_instant(period.end, day)
        if start is None or end is None or end <= start:
            logger.warning("Dropping malformed break period %s for doctor %s", period, doctor.doctor_id)
            continue
        raw.append(BreakInterval(start=start, end=end, session_index=period.session_index))
    return merge_adjacent(raw)


def apply_break_offsets(moment: datetime, intervals: Sequence[BreakInterval]) -> datetime:
    """Slide ``moment`` later by each break that starts at or before it.

    Shifts accumulate, so a slot pushed past a later break start picks up that
    break as well.
    """
    shifted = moment
    for interval in sorted(intervals, key=lambda iv: iv.start):
        if shifted >= interval.start:
            shifted += interval.end - interval.start
    return shifted


def is_within_break(now: datetime, intervals: Sequence[BreakInterval]) -> bool:
    return any(interval.contains(now) for interval in intervals)


def active_break_remaining(now: datetime, intervals: Sequence[BreakInterval]) -> Optional[int]:
    for interval in intervals:
        if interval.start <= now < interval.end:
            return max(0, math.ceil((interval.end - now).total_seconds() / 60))
    return None


def break_blocked_times(
    slots: Sequence[Slot],
    intervals: Sequence[BreakInterval],
    appointments: Iterable[AppointmentRecord] = (),
) -> Set[datetime]:
    blocked = {
        slot.time
        for slot in slots
        if any(interval.start <= slot.time < interval.end for interval in intervals)
    }
    for appt in appointments:
        # Break placeholders are stored as completed appointments on the slot.
        if appt.cancelled_by_break and appt.status == STATUS_COMPLETED:
            moment = appt.slot_time
            if moment is not None:
                blocked.add(moment)
    return blocked


def session_extension_minutes(intervals: Iterable[BreakInterval]) -> int:
    return sum(interval.minutes for interval in intervals)


def extended_session_end(window: SessionWindow, intervals: Iterable[BreakInterval]) -> datetime:
    own = [
        iv
        for iv in intervals
        if iv.session_index in (None, window.index) and window.start <= iv.start < window.end
    ]
    return window.end + timedelta(minutes=session_extension_minutes(own))


def validate_break(
    slot_times: Sequence[datetime],
    existing: Sequence[BreakInterval],
    window: SessionWindow,
    cfg: EngineConfig,
) -> None:
    if not slot_times:
        raise InvalidBreakError("No slots selected for break")
    if len(existing) >= cfg.max_breaks_per_session:
        raise InvalidBreakError(f"Maximum {cfg.max_breaks_per_session} breaks per session allowed")
    first, last = min(slot_times), max(slot_times)
    if first < window.start or last > window.end:
        raise InvalidBreakError("Break slots must be within session time")
    for interval in existing:
        overlaps = (
            interval.start <= first < interval.end
            or interval.start < last <= interval.end
            or (first <= interval.start and last >= interval.end)
        )
        if overlaps:
            raise InvalidBreakError(
                f"Break overlaps with existing break ({interval.start:%I:%M %p} - {interval.end:%I:%M %p})"
            )


def create_break(slot_times: Sequence[datetime], session_index: int, slot_minutes: int) -> BreakInterval:
    if not slot_times:
        raise InvalidBreakError("No slots selected for break")
    start = min(slot_times)
    end = max(slot_times) + timedelta(minutes=slot_minutes)
    return BreakInterval(start=start, end=end, session_index=session_index)


def to_break_period(interval: BreakInterval) -> BreakPeriod:
    return BreakPeriod(
        start=interval.start.isoformat(),
        end=interval.end.isoformat(),
        session_index=interval.session_index,
    )


def _in_session(appt: AppointmentRecord, window: SessionWindow) -> bool:
    if appt.session_index is not None:
        return appt.session_index == window.index
    moment = appt.slot_time
    return moment is not None and window.start <= moment < window.end


def plan_break_shift(
    interval: BreakInterval,
    window: SessionWindow,
    slots: Sequence[Slot],
    appointments: Iterable[AppointmentRecord],
) -> BreakShiftPlan:
    """Push every active appointment at or after the break start later by its length.

    Break slots nobody holds are returned as placeholder times so they stay
    blocked for booking.
    """
    duration = timedelta(minutes=interval.minutes)
    plan = BreakShiftPlan(interval=interval)
    held: Set[datetime] = set()
    for appt in appointments:
        if not _in_session(appt, window) or appt.status == STATUS_CANCELLED:
            continue
        moment = appt.slot_time
        if moment is None:
            continue
        if interval.start <= moment < interval.end:
            held.add(moment)
        if moment < interval.start or appt.cancelled_by_break or appt.status not in DELAY_TRACKED_STATUSES:
            continue
        plan.shifts.append(
            AppointmentShift(
                appointment_id=appt.appointment_id,
                new_time=moment + duration,
                shift_minutes=interval.minutes,
                new_cut_off_time=appt.cut_off_time + duration if appt.cut_off_time else None,
                new_no_show_time=appt.no_show_time + duration if appt.no_show_time else None,
                during_break=moment < interval.end,
            )
        )
    plan.shifts.sort(key=lambda shift: shift.new_time)
    plan.placeholder_times = [
        slot.time
        for slot in slots
        if slot.session_index == window.index
        and interval.start <= slot.time < interval.end
        and slot.time not in held
    ]
    return plan


def schedule_break(
    doctor: Doctor,
    day: date,
    slot_times: Sequence[datetime],
    session_index: int,
    cfg: EngineConfig,
    appointments: Iterable[AppointmentRecord],
) -> BreakShiftPlan:
    """Validate a break over ``slot_times`` and plan the appointment shift it causes."""
    windows = [w for w in session_windows(doctor, day) if w.index == session_index]
    if not windows:
        raise InvalidBreakError("Break slots must be within session time")
    window = windows[0]
    existing = [
        iv
        for iv in build_break_intervals(doctor, day, cfg)
        if iv.session_index in (None, session_index) and window.start <= iv.start < window.end
    ]
    validate_break(slot_times, existing, window, cfg)
    interval = create_break(slot_times, session_index, doctor.slot_minutes(cfg))
    return plan_break_shift(interval, window, build_slot_grid(doctor, day, cfg), appointments)
