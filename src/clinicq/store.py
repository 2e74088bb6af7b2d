"""
In-memory reference persistence adapter.

Stands in for the hosted document store: threshold updates for one
doctor-day land as a single group, and slot claims are conditional writes
that fail on collision.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import BOOKED_STATUSES, STATUS_COMPLETED, STATUS_SKIPPED
from .errors import SlotConflictError
from .models import AppointmentRecord, BreakShiftPlan, StatusTransition, ThresholdUpdate
from .timeparse import format_clock
from .tokens import token_kind

logger = logging.getLogger(__name__)

ClaimKey = Tuple[str, str, date, datetime]


class InMemoryStore:
    def __init__(self, appointments: Iterable[AppointmentRecord] = ()):
        self._appointments: Dict[str, AppointmentRecord] = {}
        self._claims: Dict[ClaimKey, str] = {}
        self._guard = Lock()
        self._day_locks: Dict[Tuple[str, date], Lock] = defaultdict(Lock)
        self.write_count = 0
        for appt in appointments:
            self.add(appt)

    def _day_lock(self, doctor_id: str, day: date) -> Lock:
        with self._guard:
            return self._day_locks[(doctor_id, day)]

    @staticmethod
    def _claim_key(appt: AppointmentRecord) -> Optional[ClaimKey]:
        moment = appt.slot_time
        if moment is None or appt.is_walk_in or appt.status not in BOOKED_STATUSES:
            return None
        return (appt.clinic_id, appt.doctor_id, appt.date, moment)

    def add(self, appt: AppointmentRecord) -> None:
        """Insert or replace a record; a booked slot held by another appointment is refused."""
        with self._guard:
            key = self._claim_key(appt)
            if key is not None:
                holder = self._claims.get(key)
                if holder is not None and holder != appt.appointment_id:
                    raise SlotConflictError(*key)
            previous = self._appointments.get(appt.appointment_id)
            previous_key = self._claim_key(previous) if previous is not None else None
            if previous_key is not None and previous_key != key:
                self._claims.pop(previous_key, None)
            if key is not None:
                self._claims[key] = appt.appointment_id
            self._appointments[appt.appointment_id] = appt
            self.write_count += 1

    def get(self, appointment_id: str) -> AppointmentRecord:
        return self._appointments[appointment_id]

    def all(self) -> List[AppointmentRecord]:
        return list(self._appointments.values())

    def appointments_for(self, doctor_id: str, day: date) -> List[AppointmentRecord]:
        return [a for a in self._appointments.values() if a.doctor_id == doctor_id and a.date == day]

    def claim_slot(
        self, clinic_id: str, doctor_id: str, day: date, slot_time: datetime, appointment_id: str
    ) -> None:
        key = (clinic_id, doctor_id, day, slot_time)
        with self._guard:
            holder = self._claims.get(key)
            if holder is not None and holder != appointment_id:
                raise SlotConflictError(clinic_id, doctor_id, day, slot_time)
            self._claims[key] = appointment_id

    def claimed_times(self, clinic_id: str, doctor_id: str, day: date) -> Set[datetime]:
        with self._guard:
            return {
                moment
                for (clinic, doctor, claim_day, moment) in self._claims
                if clinic == clinic_id and doctor == doctor_id and claim_day == day
            }

    def release_slot(self, clinic_id: str, doctor_id: str, day: date, slot_time: datetime) -> None:
        with self._guard:
            self._claims.pop((clinic_id, doctor_id, day, slot_time), None)

    def next_token_number(self, doctor_id: str, day: date, kind: str) -> int:
        with self._guard:
            used = [
                a
                for a in self._appointments.values()
                if a.doctor_id == doctor_id and a.date == day and token_kind(a.token_number) == kind
            ]
            return len(used) + 1

    def apply_thresholds(self, doctor_id: str, day: date, updates: Sequence[ThresholdUpdate]) -> int:
        """Write every update for the doctor-day or none of them."""
        if not updates:
            return 0
        with self._day_lock(doctor_id, day):
            staged = {}
            for update in updates:
                current = self._appointments[update.appointment_id]
                staged[update.appointment_id] = replace(
                    current,
                    cut_off_time=update.cut_off_time,
                    no_show_time=update.no_show_time,
                    doctor_delay_minutes=update.doctor_delay_minutes,
                )
            with self._guard:
                self._appointments.update(staged)
                self.write_count += 1
        logger.debug("Applied %d threshold updates for doctor %s on %s", len(staged), doctor_id, day)
        return len(staged)

    def apply_transitions(
        self, transitions: Iterable[StatusTransition], now: datetime
    ) -> List[StatusTransition]:
        """Compare-and-set: a transition only lands if the status is still ``old_status``."""
        applied = []
        with self._guard:
            for transition in transitions:
                current = self._appointments.get(transition.appointment_id)
                if current is None or current.status != transition.old_status:
                    continue
                changes = {"status": transition.new_status}
                if transition.new_status == STATUS_SKIPPED:
                    changes["skipped_at"] = now
                self._appointments[transition.appointment_id] = replace(current, **changes)
                key = self._claim_key(current)
                if key is not None and transition.new_status not in BOOKED_STATUSES:
                    self._claims.pop(key, None)
                applied.append(transition)
            if applied:
                self.write_count += 1
        return applied

    def set_status(self, appointment_id: str, status: str) -> None:
        with self._guard:
            current = self._appointments[appointment_id]
            self._appointments[appointment_id] = replace(current, status=status)
            key = self._claim_key(current)
            if key is not None and status not in BOOKED_STATUSES:
                self._claims.pop(key, None)
            self.write_count += 1

    def apply_break_shift(
        self, clinic_id: str, doctor_id: str, day: date, plan: BreakShiftPlan
    ) -> List[AppointmentRecord]:
        """Move appointments past a new break and block its empty slots, all at once.

        An appointment covered by the break is kept as a completed placeholder
        and re-created at its shifted time; one after the break is moved in
        place. Returns the records created.
        """
        with self._day_lock(doctor_id, day), self._guard:
            staged: Dict[str, AppointmentRecord] = {}
            created: List[AppointmentRecord] = []
            releases = []
            for shift in plan.shifts:
                current = self._appointments[shift.appointment_id]
                releases.append(self._claim_key(current))
                moved = replace(
                    current,
                    time=format_clock(shift.new_time),
                    cut_off_time=shift.new_cut_off_time,
                    no_show_time=shift.new_no_show_time,
                    shifted_minutes=current.shifted_minutes + shift.shift_minutes,
                )
                if shift.during_break:
                    staged[current.appointment_id] = replace(
                        current, status=STATUS_COMPLETED, cancelled_by_break=True
                    )
                    moved = replace(moved, appointment_id=uuid.uuid4().hex)
                    created.append(moved)
                staged[moved.appointment_id] = moved
            for moment in plan.placeholder_times:
                placeholder = AppointmentRecord(
                    appointment_id=f"break-{doctor_id}-{moment:%Y%m%d%H%M}",
                    doctor_id=doctor_id,
                    clinic_id=clinic_id,
                    date=day,
                    time=format_clock(moment),
                    token_number="",
                    status=STATUS_COMPLETED,
                    cancelled_by_break=True,
                    session_index=plan.interval.session_index,
                )
                staged[placeholder.appointment_id] = placeholder
                created.append(placeholder)

            claims = dict(self._claims)
            for key in releases:
                if key is not None:
                    claims.pop(key, None)
            for appt in staged.values():
                key = self._claim_key(appt)
                if key is None:
                    continue
                holder = claims.get(key)
                if holder is not None and holder != appt.appointment_id:
                    raise SlotConflictError(*key)
                claims[key] = appt.appointment_id

            self._claims = claims
            self._appointments.update(staged)
            self.write_count += 1
        logger.info(
            "Shifted %d appointments and blocked %d empty slots for doctor %s on %s",
            len(plan.shifts),
            len(plan.placeholder_times),
            doctor_id,
            day,
        )
        return created
