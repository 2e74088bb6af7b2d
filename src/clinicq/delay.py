"""
Doctor delay: how late the queue is running relative to a session's start,
and the cut-off/no-show thresholds that follow from it.

Delay is tracked per session. It is only measured outside scheduled breaks
and only while that session's effective end has not passed, so the gap
between two sessions never accrues lateness.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .breaks import apply_break_offsets, build_break_intervals, is_within_break
from .config import CONSULTATION_IN, DELAY_TRACKED_STATUSES, EngineConfig
from .models import AppointmentRecord, BreakInterval, DelayRecord, Doctor, ThresholdUpdate
from .slots import SessionWindow, session_windows
from .timeparse import whole_minutes

logger = logging.getLogger(__name__)


def effective_start(
    first_start: datetime, intervals: Sequence[BreakInterval], cfg: EngineConfig
) -> datetime:
    """Session start, or the end of any break already running at that start."""
    tolerance = first_start + timedelta(minutes=cfg.break_start_tolerance_minutes)
    initial = [iv for iv in intervals if iv.start <= tolerance and iv.end > first_start]
    if not initial:
        return first_start
    return max(iv.end for iv in initial)


def delay_window(windows: Sequence[SessionWindow], now: datetime) -> SessionWindow:
    """The session that started most recently, or the first one before the day begins."""
    started = [window for window in windows if window.start <= now]
    return started[-1] if started else windows[0]


def appointment_session(
    appt: AppointmentRecord, windows: Sequence[SessionWindow]
) -> Optional[SessionWindow]:
    if not windows:
        return None
    for window in windows:
        if appt.session_index is not None and window.index == appt.session_index:
            return window
    moment = appt.booked_slot_time
    if moment is None:
        return None
    owner = windows[0]
    for window in windows:
        if window.start <= moment:
            owner = window
    return owner


def compute_delay(
    doctor: Doctor,
    now: datetime,
    cfg: EngineConfig,
    intervals: Optional[Sequence[BreakInterval]] = None,
    session_index: Optional[int] = None,
) -> DelayRecord:
    """Delay for ``session_index``, or for the session currently running when omitted."""
    today = now.date()
    windows = session_windows(doctor, today)
    if not windows:
        return DelayRecord(delay_minutes=0, effective_start=None)
    if session_index is None:
        window = delay_window(windows, now)
    else:
        matching = [w for w in windows if w.index == session_index]
        if not matching:
            return DelayRecord(delay_minutes=0, effective_start=None, window_open=False, session_index=session_index)
        window = matching[0]
    if intervals is None:
        intervals = build_break_intervals(doctor, today, cfg)

    start = effective_start(window.start, intervals, cfg)
    in_break = is_within_break(now, intervals)
    window_open = now <= window.end

    if in_break or not window_open:
        delay = 0
    elif now < start or doctor.consultation_status == CONSULTATION_IN:
        delay = 0
    else:
        delay = max(0, whole_minutes(start, now))

    logger.debug(
        "Doctor %s session %d delay=%dm start=%s in_break=%s window_open=%s",
        doctor.doctor_id,
        window.index,
        delay,
        start,
        in_break,
        window_open,
    )
    return DelayRecord(
        delay_minutes=delay,
        effective_start=start,
        in_break=in_break,
        window_open=window_open,
        session_index=window.index,
    )


def thresholds_for(
    appt: AppointmentRecord,
    delay_minutes: int,
    intervals: Sequence[BreakInterval],
    cfg: EngineConfig,
) -> Optional[ThresholdUpdate]:
    # Offsets are taken from the booked time; a break shift already moved the slot by the same amount.
    slot_time = appt.booked_slot_time
    if slot_time is None:
        logger.warning("Appointment %s missing a usable time, skipping delay update", appt.appointment_id)
        return None
    adjusted = apply_break_offsets(slot_time, intervals)
    delay = timedelta(minutes=delay_minutes)
    return ThresholdUpdate(
        appointment_id=appt.appointment_id,
        cut_off_time=adjusted - timedelta(minutes=cfg.cutoff_minutes) + delay,
        no_show_time=adjusted + timedelta(minutes=cfg.no_show_minutes) + delay,
        doctor_delay_minutes=delay_minutes,
    )


def _tracked_by_session(
    doctor: Doctor,
    appointments: Iterable[AppointmentRecord],
    now: datetime,
    windows: Sequence[SessionWindow],
) -> Dict[Optional[int], List[AppointmentRecord]]:
    groups: Dict[Optional[int], List[AppointmentRecord]] = {}
    for appt in appointments:
        if appt.doctor_id != doctor.doctor_id or appt.date != now.date():
            continue
        if appt.status not in DELAY_TRACKED_STATUSES:
            continue
        window = appointment_session(appt, windows)
        groups.setdefault(window.index if window else None, []).append(appt)
    return groups


def _session_records(
    doctor: Doctor,
    now: datetime,
    cfg: EngineConfig,
    intervals: Sequence[BreakInterval],
    windows: Sequence[SessionWindow],
) -> Dict[Optional[int], DelayRecord]:
    records: Dict[Optional[int], DelayRecord] = {
        window.index: compute_delay(doctor, now, cfg, intervals, window.index) for window in windows
    }
    records[None] = DelayRecord(delay_minutes=0, effective_start=None, window_open=False)
    return records


def propagate(
    doctor: Doctor,
    appointments: Iterable[AppointmentRecord],
    now: datetime,
    cfg: EngineConfig,
) -> Tuple[DelayRecord, List[ThresholdUpdate]]:
    """Current delay record plus threshold updates for the doctor's active appointments today.

    Each appointment follows the delay of its own session. The caller writes
    the updates as one group per doctor-day.
    """
    today = now.date()
    intervals = build_break_intervals(doctor, today, cfg)
    windows = session_windows(doctor, today)
    record = compute_delay(doctor, now, cfg, intervals)
    records = _session_records(doctor, now, cfg, intervals, windows)
    updates: List[ThresholdUpdate] = []
    for session_index, group in _tracked_by_session(doctor, appointments, now, windows).items():
        delay = records[session_index].delay_minutes
        for appt in group:
            update = thresholds_for(appt, delay, intervals, cfg)
            if update is not None:
                updates.append(update)
    return record, updates


def should_write_delay(stored: int, computed: int, cfg: EngineConfig) -> bool:
    """Hysteresis so small drifts do not rewrite a whole day of appointments."""
    threshold = cfg.delay_write_threshold_minutes
    if stored == 0 and computed >= threshold:
        return True
    if stored > 0 and computed == 0:
        return True
    return abs(computed - stored) >= threshold


def stored_delay(appointments: Iterable[AppointmentRecord], doctor_id: str) -> int:
    for appt in appointments:
        if appt.doctor_id == doctor_id and appt.status in DELAY_TRACKED_STATUSES:
            return appt.doctor_delay_minutes or 0
    return 0


def plan_delay_writes(
    doctor: Doctor,
    appointments: Sequence[AppointmentRecord],
    now: datetime,
    cfg: EngineConfig,
) -> Tuple[DelayRecord, List[ThresholdUpdate]]:
    """Updates that actually change persisted values on this polling cycle.

    Inside a break, or once a session has closed, that session's applied
    delay is forced to zero. Otherwise a new delay is applied only past the
    write threshold. Only records whose stored values differ are returned, so
    a repeated cycle with unchanged inputs writes nothing.
    """
    today = now.date()
    intervals = build_break_intervals(doctor, today, cfg)
    windows = session_windows(doctor, today)
    record = compute_delay(doctor, now, cfg, intervals)
    records = _session_records(doctor, now, cfg, intervals, windows)

    writes: List[ThresholdUpdate] = []
    for session_index, group in _tracked_by_session(doctor, appointments, now, windows).items():
        session_record = records[session_index]
        current = stored_delay(group, doctor.doctor_id)
        if session_record.in_break or not session_record.window_open:
            applied = 0
        elif should_write_delay(current, session_record.delay_minutes, cfg):
            applied = session_record.delay_minutes
        else:
            applied = current

        for appt in group:
            update = thresholds_for(appt, applied, intervals, cfg)
            if update is None:
                continue
            unchanged = (
                appt.cut_off_time == update.cut_off_time
                and appt.no_show_time == update.no_show_time
                and (appt.doctor_delay_minutes or 0) == update.doctor_delay_minutes
            )
            if not unchanged:
                writes.append(update)
    return record, writes
