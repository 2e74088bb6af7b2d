"""
Queue order and the time-driven Pending -> Skipped -> No-show transitions.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from .breaks import active_break_remaining
from .config import (
    CONSULTATION_IN,
    STATUS_CONFIRMED,
    STATUS_NO_SHOW,
    STATUS_PENDING,
    STATUS_SKIPPED,
    EngineConfig,
)
from .models import AppointmentRecord, BreakInterval, QueueView, StatusTransition
from .tokens import kind_rank, token_sequence

logger = logging.getLogger(__name__)


def queue_key(appt: AppointmentRecord) -> Tuple:
    """Date, time, advance before walk-in, token sequence; id settles anything left."""
    moment = appt.slot_time
    sequence = token_sequence(appt.token_number)
    if not sequence and appt.numeric_token is not None:
        sequence = (appt.numeric_token,)
    return (
        appt.date,
        moment is None,
        moment or datetime.max,
        kind_rank(appt.token_number),
        sequence,
        appt.appointment_id,
    )


def order_queue(appointments: Iterable[AppointmentRecord]) -> List[AppointmentRecord]:
    return sorted(appointments, key=queue_key)


def cutoff_threshold(appt: AppointmentRecord, cfg: EngineConfig) -> Optional[datetime]:
    if appt.cut_off_time is not None:
        return appt.cut_off_time
    # Legacy records never had thresholds persisted.
    moment = appt.slot_time
    if moment is None:
        return None
    return moment - timedelta(minutes=cfg.cutoff_minutes)


def no_show_threshold(appt: AppointmentRecord, cfg: EngineConfig) -> Optional[datetime]:
    if appt.no_show_time is not None:
        return appt.no_show_time
    moment = appt.slot_time
    if moment is None:
        return None
    return moment + timedelta(minutes=cfg.no_show_minutes)


def evaluate_transition(
    appt: AppointmentRecord, now: datetime, cfg: EngineConfig
) -> Optional[StatusTransition]:
    """At most one step per evaluation; anything other than Pending/Skipped is left alone."""
    if appt.status == STATUS_PENDING:
        threshold = cutoff_threshold(appt, cfg)
        target = STATUS_SKIPPED
    elif appt.status == STATUS_SKIPPED:
        threshold = no_show_threshold(appt, cfg)
        target = STATUS_NO_SHOW
    else:
        return None

    if threshold is None:
        logger.warning("Could not process appointment %s: unusable time %r", appt.appointment_id, appt.time)
        return None
    if now < threshold:
        return None
    logger.debug("Appointment %s %s -> %s (threshold %s)", appt.appointment_id, appt.status, target, threshold)
    return StatusTransition(
        appointment_id=appt.appointment_id,
        old_status=appt.status,
        new_status=target,
        threshold=threshold,
    )


def due_transitions(
    appointments: Iterable[AppointmentRecord], now: datetime, cfg: EngineConfig
) -> List[StatusTransition]:
    transitions = []
    for appt in appointments:
        transition = evaluate_transition(appt, now, cfg)
        if transition is not None:
            transitions.append(transition)
    return transitions


def build_queue_view(
    appointments: Sequence[AppointmentRecord],
    day: date,
    now: datetime,
    doctor_status: str,
    intervals: Sequence[BreakInterval] = (),
    session_index: Optional[int] = None,
) -> QueueView:
    relevant = [
        appt
        for appt in appointments
        if appt.date == day and (session_index is None or appt.session_index in (None, session_index))
    ]
    ordered = order_queue(relevant)
    arrived = [appt for appt in ordered if appt.status == STATUS_CONFIRMED]
    view = QueueView(
        arrived=arrived,
        skipped=[appt for appt in ordered if appt.status == STATUS_SKIPPED],
        pending=[appt for appt in ordered if appt.status == STATUS_PENDING],
        next_up=arrived[0] if arrived else None,
    )
    # An "In" doctor has resumed consulting, so an open break is not shown.
    if doctor_status != CONSULTATION_IN:
        view.break_remaining_minutes = active_break_remaining(now, intervals)
    return view
