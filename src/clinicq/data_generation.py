"""
Synthetic doctors and day snapshots, plus persistence to disk.

Doctors are stored as JSON (availability is nested); appointment snapshots as
CSV so they can be inspected and edited alongside the replay output.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta
from pathlib import Path
from random import Random
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config import ADVANCE_PREFIX, STATUS_PENDING, WALK_IN_PREFIX, WEEKDAYS, EngineConfig
from .models import AppointmentRecord, BreakPeriod, Doctor, Session, SessionExtension
from .slots import build_slot_grid
from .timeparse import format_clock, parse_day, parse_instant
from .tokens import format_token

DEFAULT_DATA_DIR = Path(__file__).resolve().parents[2] / "data"
DOCTOR_JSON = "doctor.json"
APPOINTMENTS_CSV = "appointments.csv"

APPOINTMENT_COLUMNS = [
    "appointment_id",
    "doctor_id",
    "clinic_id",
    "date",
    "time",
    "token_number",
    "status",
    "cut_off_time",
    "no_show_time",
    "doctor_delay_minutes",
    "cancelled_by_break",
    "session_index",
    "numeric_token",
    "shifted_minutes",
]

SESSION_TEMPLATES: List[List[Tuple[str, str]]] = [
    [("09:00 AM", "01:00 PM"), ("05:00 PM", "08:00 PM")],
    [("10:00 AM", "02:00 PM")],
    [("08:30 AM", "12:30 PM"), ("03:00 PM", "06:00 PM")],
]


def generate_doctor(seed: int = 42, doctor_id: str = "doc-1", clinic_id: str = "clinic-1") -> Doctor:
    rng = Random(seed)
    template = rng.choice(SESSION_TEMPLATES)
    working_days = [d for d in WEEKDAYS if d != "Sunday" and rng.random() > 0.1]
    return Doctor(
        doctor_id=doctor_id,
        name=f"Dr. {rng.choice(['Menon', 'Nair', 'Pillai', 'Varghese', 'Iyer'])}",
        clinic_id=clinic_id,
        availability={day: [Session(start, end) for start, end in template] for day in working_days},
        average_consulting_time=rng.choice([10, 15, 15, 20]),
        advance_booking_days=15,
    )


def generate_day(
    doctor: Doctor,
    day: date,
    cfg: EngineConfig,
    seed: int = 42,
    fill_rate: float = 0.8,
    walk_in_rate: float = 0.5,
) -> List[AppointmentRecord]:
    """Book roughly ``fill_rate`` of the advance share and some walk-ins in the reserved tail."""
    rng = np.random.default_rng(seed)
    slots = build_slot_grid(doctor, day, cfg)
    appointments: List[AppointmentRecord] = []
    counters = {ADVANCE_PREFIX: 0, WALK_IN_PREFIX: 0}
    by_session: Dict[int, list] = {}
    for slot in slots:
        by_session.setdefault(slot.session_index, []).append(slot)

    for session_index, session_slots in by_session.items():
        reserve = cfg.walk_in_reserve(len(session_slots))
        advance_share = len(session_slots) - reserve
        for position, slot in enumerate(session_slots):
            if position < advance_share:
                kind, rate = ADVANCE_PREFIX, fill_rate
            else:
                kind, rate = WALK_IN_PREFIX, walk_in_rate
            if rng.random() >= rate:
                continue
            counters[kind] += 1
            appointments.append(
                AppointmentRecord(
                    appointment_id=f"{doctor.doctor_id}-{day:%Y%m%d}-{kind}{counters[kind]:03d}",
                    doctor_id=doctor.doctor_id,
                    clinic_id=doctor.clinic_id,
                    date=day,
                    time=format_clock(slot.time),
                    token_number=format_token(kind, counters[kind], session_index),
                    status=STATUS_PENDING,
                    cut_off_time=slot.time - timedelta(minutes=cfg.cutoff_minutes),
                    no_show_time=slot.time + timedelta(minutes=cfg.no_show_minutes),
                    session_index=session_index,
                    numeric_token=counters[kind],
                )
            )
    return appointments


def doctor_to_dict(doctor: Doctor) -> Dict[str, Any]:
    return {
        "doctor_id": doctor.doctor_id,
        "name": doctor.name,
        "clinic_id": doctor.clinic_id,
        "consultation_status": doctor.consultation_status,
        "average_consulting_time": doctor.average_consulting_time,
        "advance_booking_days": doctor.advance_booking_days,
        "availability": {
            day: [{"from": s.start, "to": s.end} for s in sessions]
            for day, sessions in doctor.availability.items()
        },
        "extensions": {
            d.isoformat(): [
                {"session_index": e.session_index, "new_end_time": e.new_end_time, "original_end_time": e.original_end_time}
                for e in exts
            ]
            for d, exts in doctor.extensions.items()
        },
        "leave_slots": {d.isoformat(): list(values) for d, values in doctor.leave_slots.items()},
        "break_periods": {
            d.isoformat(): [{"start": b.start, "end": b.end, "session_index": b.session_index} for b in periods]
            for d, periods in doctor.break_periods.items()
        },
    }


def _dated(raw: Dict[str, Any]) -> Dict[date, Any]:
    out = {}
    for key, value in (raw or {}).items():
        day = parse_day(key)
        if day is not None:
            out[day] = value
    return out


def doctor_from_dict(raw: Dict[str, Any]) -> Doctor:
    return Doctor(
        doctor_id=str(raw["doctor_id"]),
        name=str(raw.get("name", raw["doctor_id"])),
        clinic_id=str(raw.get("clinic_id", "")),
        consultation_status=raw.get("consultation_status", "Out"),
        average_consulting_time=raw.get("average_consulting_time"),
        advance_booking_days=raw.get("advance_booking_days"),
        availability={
            day: [Session(s.get("from", ""), s.get("to", "")) for s in sessions]
            for day, sessions in (raw.get("availability") or {}).items()
        },
        extensions={
            day: [
                SessionExtension(int(e["session_index"]), e.get("new_end_time", ""), e.get("original_end_time"))
                for e in exts
            ]
            for day, exts in _dated(raw.get("extensions")).items()
        },
        leave_slots={day: [str(v) for v in values] for day, values in _dated(raw.get("leave_slots")).items()},
        break_periods={
            day: [BreakPeriod(p.get("start", ""), p.get("end", ""), p.get("session_index")) for p in periods]
            for day, periods in _dated(raw.get("break_periods")).items()
        },
    )


def appointments_to_df(appointments: List[AppointmentRecord]) -> pd.DataFrame:
    records = []
    for a in appointments:
        records.append(
            {
                "appointment_id": a.appointment_id,
                "doctor_id": a.doctor_id,
                "clinic_id": a.clinic_id,
                "date": a.date.isoformat(),
                "time": a.time,
                "token_number": a.token_number,
                "status": a.status,
                "cut_off_time": a.cut_off_time.isoformat() if a.cut_off_time else "",
                "no_show_time": a.no_show_time.isoformat() if a.no_show_time else "",
                "doctor_delay_minutes": a.doctor_delay_minutes,
                "cancelled_by_break": a.cancelled_by_break,
                "session_index": a.session_index,
                "numeric_token": a.numeric_token,
                "shifted_minutes": a.shifted_minutes,
            }
        )
    return pd.DataFrame.from_records(records, columns=APPOINTMENT_COLUMNS)


def _optional_int(value: Any) -> Optional[int]:
    text = str(value).strip()
    if not text or text.lower() in {"nan", "none"}:
        return None
    return int(float(text))


def _appointment_from_row(row: pd.Series) -> Optional[AppointmentRecord]:
    day = parse_day(row["date"])
    if day is None:
        return None
    return AppointmentRecord(
        appointment_id=str(row["appointment_id"]),
        doctor_id=str(row["doctor_id"]),
        clinic_id=str(row.get("clinic_id", "")),
        date=day,
        time=str(row["time"]),
        token_number=str(row["token_number"]),
        status=str(row["status"]),
        cut_off_time=parse_instant(row.get("cut_off_time") or None),
        no_show_time=parse_instant(row.get("no_show_time") or None),
        doctor_delay_minutes=_optional_int(row.get("doctor_delay_minutes", "")) or 0,
        cancelled_by_break=str(row.get("cancelled_by_break", "")).strip().lower() in {"1", "true", "yes"},
        session_index=_optional_int(row.get("session_index", "")),
        numeric_token=_optional_int(row.get("numeric_token", "")),
        shifted_minutes=_optional_int(row.get("shifted_minutes", "")) or 0,
    )


def appointments_from_df(df: pd.DataFrame) -> List[AppointmentRecord]:
    appointments = []
    for _, row in df.iterrows():
        appt = _appointment_from_row(row)
        if appt is not None:
            appointments.append(appt)
    return appointments


def save_data(doctor: Doctor, appointments: List[AppointmentRecord], out_dir: Path = DEFAULT_DATA_DIR) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / DOCTOR_JSON).write_text(json.dumps(doctor_to_dict(doctor), indent=2), encoding="utf-8")
    appointments_to_df(appointments).to_csv(out_dir / APPOINTMENTS_CSV, index=False)


def load_doctor(path: Path) -> Doctor:
    return doctor_from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def load_appointments(path: Path) -> List[AppointmentRecord]:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    return appointments_from_df(df)


def load_data(data_dir: Path = DEFAULT_DATA_DIR) -> Tuple[Doctor, List[AppointmentRecord]]:
    doctor_path = data_dir / DOCTOR_JSON
    appointments_path = data_dir / APPOINTMENTS_CSV
    if not (doctor_path.exists() and appointments_path.exists()):
        raise FileNotFoundError(f"Missing {DOCTOR_JSON}/{APPOINTMENTS_CSV} under {data_dir}")
    return load_doctor(doctor_path), load_appointments(appointments_path)


def parse_now(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now().replace(second=0, microsecond=0)
    moment = parse_instant(value)
    if moment is None:
        raise ValueError(f"Invalid timestamp: {value!r}")
    return moment
