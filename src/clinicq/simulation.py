"""
Day replay: drive the engine through one clinic day on its polling cadence.

Patients arrive (or not) around their slot, the doctor checks in late and
works through the arrived queue, and every tick runs the delay and status
cycles against an in-memory store, the way the clinic apps poll the hosted
database.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

from .breaks import build_break_intervals
from .config import (
    CONSULTATION_IN,
    CONSULTATION_OUT,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_NO_SHOW,
    STATUS_PENDING,
    STATUS_SKIPPED,
    STATUSES,
    EngineConfig,
)
from .data_generation import appointments_to_df
from .delay import plan_delay_writes
from .models import AppointmentRecord, Doctor
from .presence import should_check_out, stale_completions
from .queueing import build_queue_view, due_transitions
from .slots import session_windows
from .store import InMemoryStore


class DaySimulation:
    def __init__(
        self,
        cfg: EngineConfig,
        doctor: Doctor,
        appointments: List[AppointmentRecord],
        day: date,
        seed: int = 42,
        doctor_late_minutes: int = 20,
        no_show_rate: float = 0.1,
        arrival_mean_minutes: float = -10.0,
        arrival_sd_minutes: float = 12.0,
    ):
        self.cfg = cfg
        self.doctor = replace(doctor, consultation_status=CONSULTATION_OUT)
        self.day = day
        self.store = InMemoryStore(a for a in appointments if a.doctor_id == doctor.doctor_id and a.date == day)
        self.rng = np.random.default_rng(seed)
        self.doctor_late_minutes = doctor_late_minutes
        self.no_show_rate = no_show_rate
        self.arrival_mean_minutes = arrival_mean_minutes
        self.arrival_sd_minutes = arrival_sd_minutes

    def _draw_arrivals(self) -> Dict[str, Optional[datetime]]:
        arrivals: Dict[str, Optional[datetime]] = {}
        for appt in self.store.all():
            moment = appt.slot_time
            if moment is None or self.rng.random() < self.no_show_rate:
                arrivals[appt.appointment_id] = None
                continue
            offset = float(self.rng.normal(self.arrival_mean_minutes, self.arrival_sd_minutes))
            arrivals[appt.appointment_id] = moment + timedelta(minutes=round(offset))
        return arrivals

    def run(self) -> Tuple[pd.DataFrame, pd.DataFrame, Dict[str, float]]:
        windows = session_windows(self.doctor, self.day)
        if not windows:
            raise ValueError(f"Doctor {self.doctor.doctor_id} has no sessions on {self.day}")

        arrivals = self._draw_arrivals()
        intervals = build_break_intervals(self.doctor, self.day, self.cfg)
        step = timedelta(seconds=self.cfg.poll_interval_seconds)
        presence_every = max(1, self.cfg.presence_poll_interval_seconds // self.cfg.poll_interval_seconds)
        now = windows[0].start - timedelta(minutes=self.cfg.check_in_lead_minutes)
        stop = windows[-1].end + timedelta(minutes=self.cfg.no_show_minutes + 15)

        checked_in: Set[int] = set()
        consulting: Optional[str] = None
        busy_until: Optional[datetime] = None
        consult = timedelta(minutes=self.doctor.slot_minutes(self.cfg))
        timeline = []
        tick = 0

        while now <= stop:
            for window in windows:
                check_in_at = window.start + timedelta(minutes=self.doctor_late_minutes)
                if window.index not in checked_in and check_in_at <= now <= window.end:
                    self.doctor = replace(self.doctor, consultation_status=CONSULTATION_IN)
                    checked_in.add(window.index)

            for appt in self.store.all():
                arrived_at = arrivals.get(appt.appointment_id)
                if arrived_at is not None and arrived_at <= now and appt.status in (STATUS_PENDING, STATUS_SKIPPED):
                    self.store.set_status(appt.appointment_id, STATUS_CONFIRMED)

            if consulting is not None and busy_until is not None and now >= busy_until:
                self.store.set_status(consulting, STATUS_COMPLETED)
                consulting = None
            if consulting is None and self.doctor.consultation_status == CONSULTATION_IN:
                view = build_queue_view(self.store.all(), self.day, now, self.doctor.consultation_status)
                if view.next_up is not None:
                    consulting = view.next_up.appointment_id
                    busy_until = now + consult

            todays = self.store.appointments_for(self.doctor.doctor_id, self.day)
            record, writes = plan_delay_writes(self.doctor, todays, now, self.cfg)
            self.store.apply_thresholds(self.doctor.doctor_id, self.day, writes)

            todays = self.store.appointments_for(self.doctor.doctor_id, self.day)
            self.store.apply_transitions(due_transitions(todays, now, self.cfg), now)

            if tick % presence_every == 0:
                todays = [a for a in self.store.all() if a.appointment_id != consulting]
                self.store.apply_transitions(stale_completions(todays, now, self.cfg), now)
                if consulting is None and should_check_out(self.doctor, todays, now, self.cfg):
                    self.doctor = replace(self.doctor, consultation_status=CONSULTATION_OUT)

            view = build_queue_view(self.store.all(), self.day, now, self.doctor.consultation_status, intervals)
            row = {
                "time": now,
                "delay_minutes": record.delay_minutes,
                "in_break": record.in_break,
                "doctor_status": self.doctor.consultation_status,
                "queue_length": len(view.arrived),
            }
            for status in STATUSES:
                row[status] = sum(1 for a in self.store.all() if a.status == status)
            timeline.append(row)

            now += step
            tick += 1

        df = appointments_to_df(self.store.all())
        df["arrived_at"] = df["appointment_id"].map(arrivals)
        df["skipped"] = [self.store.get(i).skipped_at is not None for i in df["appointment_id"]]
        timeline_df = pd.DataFrame.from_records(timeline)
        return df, timeline_df, self._compute_metrics(df, timeline_df)

    def _compute_metrics(self, df: pd.DataFrame, timeline: pd.DataFrame) -> Dict[str, float]:
        metrics: Dict[str, float] = {}
        metrics["appointments"] = int(len(df))
        if df.empty:
            return metrics
        metrics["completed"] = int((df["status"] == STATUS_COMPLETED).sum())
        metrics["no_show_rate"] = float((df["status"] == STATUS_NO_SHOW).mean())
        metrics["skip_rate"] = float(df["skipped"].mean())
        metrics["max_delay_minutes"] = float(timeline["delay_minutes"].max())
        metrics["mean_delay_minutes"] = float(timeline["delay_minutes"].mean())
        return metrics
