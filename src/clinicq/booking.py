"""
Booking adapter: claim and persist the next advance slot, or place a walk-in.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt

from .capacity import Scheduler
from .config import ADVANCE_PREFIX, STATUS_CONFIRMED, STATUS_PENDING, EngineConfig
from .errors import SlotConflictError
from .models import AppointmentRecord, Doctor
from .store import InMemoryStore
from .timeparse import format_clock
from .tokens import format_token
from .walkin import walk_in_decision

logger = logging.getLogger(__name__)


def _log_conflict(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        logger.info("Slot conflict on attempt %s: %s", retry_state.attempt_number, retry_state.outcome.exception())


def book_next_available(
    scheduler: Scheduler,
    store: InMemoryStore,
    doctor: Doctor,
    now: datetime,
    appointment_id: Optional[str] = None,
) -> Optional[AppointmentRecord]:
    """Book the earliest eligible advance slot, or return None when nothing is open.

    A collision on the claim re-runs the search against the store's current
    state; after ``booking_retry_attempts`` collisions the conflict propagates.
    """
    cfg = scheduler.cfg
    appointment_id = appointment_id or uuid.uuid4().hex

    def _attempt() -> Optional[AppointmentRecord]:
        decision = scheduler.next_available(
            doctor,
            now,
            lambda day: store.appointments_for(doctor.doctor_id, day),
            lambda day: store.claimed_times(doctor.clinic_id, doctor.doctor_id, day),
        )
        if decision is None:
            return None
        store.claim_slot(doctor.clinic_id, doctor.doctor_id, decision.day, decision.slot_time, appointment_id)

        numeric = store.next_token_number(doctor.doctor_id, decision.day, ADVANCE_PREFIX)
        appt = AppointmentRecord(
            appointment_id=appointment_id,
            doctor_id=doctor.doctor_id,
            clinic_id=doctor.clinic_id,
            date=decision.day,
            time=format_clock(decision.slot_time),
            token_number=format_token(ADVANCE_PREFIX, numeric, decision.session_index),
            status=STATUS_PENDING,
            cut_off_time=decision.slot_time - timedelta(minutes=cfg.cutoff_minutes),
            no_show_time=decision.slot_time + timedelta(minutes=cfg.no_show_minutes),
            session_index=decision.session_index,
            numeric_token=numeric,
        )
        store.add(appt)
        return appt

    decorated = retry(
        retry=retry_if_exception_type(SlotConflictError),
        stop=stop_after_attempt(max(1, cfg.booking_retry_attempts)),
        after=_log_conflict,
        reraise=True,
    )(_attempt)
    return decorated()


def book_walk_in(
    store: InMemoryStore,
    doctor: Doctor,
    now: datetime,
    cfg: EngineConfig,
    appointment_id: Optional[str] = None,
) -> Optional[AppointmentRecord]:
    """Register a walk-in who is already at the clinic; None when no slot is left."""
    decision = walk_in_decision(doctor, now, store.appointments_for(doctor.doctor_id, now.date()), cfg)
    if decision is None:
        return None
    appt = AppointmentRecord(
        appointment_id=appointment_id or uuid.uuid4().hex,
        doctor_id=doctor.doctor_id,
        clinic_id=doctor.clinic_id,
        date=decision.day,
        time=format_clock(decision.slot_time),
        token_number=decision.token_number,
        status=STATUS_CONFIRMED,
        cut_off_time=decision.estimated_time - timedelta(minutes=cfg.cutoff_minutes),
        no_show_time=decision.estimated_time + timedelta(minutes=cfg.no_show_minutes),
        session_index=decision.session_index,
        numeric_token=decision.numeric_token,
    )
    store.add(appt)
    logger.info(
        "Walk-in %s for doctor %s at %s, %d ahead",
        appt.token_number,
        doctor.doctor_id,
        appt.time,
        decision.patients_ahead,
    )
    return appt
