"""
Doctor presence housekeeping: check doctors out once their day is over and
close out confirmed visits that were never marked complete.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Sequence

from .config import (
    CONSULTATION_IN,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    DELAY_TRACKED_STATUSES,
    EngineConfig,
)
from .models import AppointmentRecord, Doctor, StatusTransition
from .slots import session_windows

logger = logging.getLogger(__name__)


def stale_completions(
    appointments: Iterable[AppointmentRecord], now: datetime, cfg: EngineConfig
) -> List[StatusTransition]:
    cutoff = now - timedelta(minutes=cfg.stale_confirmed_minutes)
    transitions = []
    for appt in appointments:
        if appt.status != STATUS_CONFIRMED:
            continue
        moment = appt.slot_time
        if moment is None or moment >= cutoff:
            continue
        transitions.append(
            StatusTransition(
                appointment_id=appt.appointment_id,
                old_status=appt.status,
                new_status=STATUS_COMPLETED,
                threshold=moment + timedelta(minutes=cfg.stale_confirmed_minutes),
            )
        )
    return transitions


def has_active_appointments(
    appointments: Sequence[AppointmentRecord], now: datetime, cfg: EngineConfig
) -> bool:
    stale = {t.appointment_id for t in stale_completions(appointments, now, cfg)}
    return any(
        appt.status in DELAY_TRACKED_STATUSES and appt.appointment_id not in stale
        for appt in appointments
    )


def within_any_session(doctor: Doctor, now: datetime, cfg: EngineConfig) -> bool:
    lead = timedelta(minutes=cfg.check_in_lead_minutes)
    return any(
        window.start - lead <= now <= window.end for window in session_windows(doctor, now.date())
    )


def should_check_out(
    doctor: Doctor, appointments: Iterable[AppointmentRecord], now: datetime, cfg: EngineConfig
) -> bool:
    if doctor.consultation_status != CONSULTATION_IN:
        return False
    appointments = list(appointments)
    if within_any_session(doctor, now, cfg) or has_active_appointments(appointments, now, cfg):
        return False
    logger.info("Checking out doctor %s: no session open and queue empty", doctor.doctor_id)
    return True
