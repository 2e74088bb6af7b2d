from __future__ import annotations

import json
from datetime import date, datetime

import pytest

from clinicq.config import EngineConfig
from clinicq.data_generation import (
    doctor_from_dict,
    doctor_to_dict,
    generate_day,
    generate_doctor,
    load_appointments,
    load_data,
    parse_now,
    save_data,
)
from clinicq.models import BreakPeriod, Doctor, Session, SessionExtension
from clinicq.tokens import is_valid_token

MONDAY = date(2026, 10, 19)
CFG = EngineConfig()


def _doctor() -> Doctor:
    return Doctor(
        doctor_id="d1",
        name="Dr. Test",
        clinic_id="c1",
        availability={"Monday": [Session("09:00 AM", "10:00 AM"), Session("05:00 PM", "06:00 PM")]},
        extensions={MONDAY: [SessionExtension(1, "06:30 PM", "06:00 PM")]},
        leave_slots={MONDAY: ["2026-10-19T09:15:00"]},
        break_periods={MONDAY: [BreakPeriod("2026-10-19T17:30:00", "2026-10-19T17:45:00", 1)]},
        average_consulting_time=15,
        advance_booking_days=10,
    )


def test_doctor_survives_a_json_round_trip() -> None:
    doctor = _doctor()

    assert doctor_from_dict(json.loads(json.dumps(doctor_to_dict(doctor)))) == doctor


def test_generated_doctor_is_reproducible() -> None:
    first = generate_doctor(7)

    assert first == generate_doctor(7)
    assert "Sunday" not in first.availability
    assert first.availability


def test_generated_day_books_advance_share_and_walk_in_tail() -> None:
    doctor = _doctor()

    appointments = generate_day(doctor, MONDAY, CFG, seed=1, fill_rate=1.0, walk_in_rate=1.0)

    assert all(is_valid_token(a.token_number) for a in appointments)
    assert len({a.appointment_id for a in appointments}) == len(appointments)
    # Morning: 4 slots, 1 reserved. Evening (extended to 18:30): 6 slots, 1 reserved.
    walk_ins = [a for a in appointments if a.is_walk_in]
    assert [a.time for a in walk_ins] == ["09:45 AM", "06:15 PM"]
    assert len(appointments) - len(walk_ins) == 8
    assert appointments[0].token_number == "A1-001"
    assert walk_ins[1].token_number == "W2-002"


def test_generated_day_without_sessions_is_empty() -> None:
    assert generate_day(_doctor(), date(2026, 10, 20), CFG) == []


def test_snapshot_round_trip_on_disk(tmp_path) -> None:
    doctor = _doctor()
    appointments = generate_day(doctor, MONDAY, CFG, seed=3)
    appointments[0].doctor_delay_minutes = 12
    appointments[0].cancelled_by_break = True

    save_data(doctor, appointments, tmp_path)
    loaded_doctor, loaded = load_data(tmp_path)

    assert loaded_doctor == doctor
    assert loaded == appointments


def test_blank_and_bad_rows_load_fail_closed(tmp_path) -> None:
    path = tmp_path / "appointments.csv"
    path.write_text(
        "appointment_id,doctor_id,date,time,token_number,status,cut_off_time\n"
        "a1,d1,2026-10-19,09:00 AM,A1,Pending,\n"
        "a2,d1,someday,09:15 AM,A2,Pending,\n",
        encoding="utf-8",
    )

    (appt,) = load_appointments(path)

    assert appt.appointment_id == "a1"
    assert appt.cut_off_time is None
    assert appt.session_index is None
    assert appt.doctor_delay_minutes == 0


def test_missing_data_dir_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_data(tmp_path)


def test_parse_now() -> None:
    assert parse_now("2026-10-19T09:30:00Z") == datetime(2026, 10, 19, 9, 30)
    assert parse_now(None).second == 0
    with pytest.raises(ValueError):
        parse_now("tea time")
