from __future__ import annotations

from datetime import date, datetime, time

from clinicq.config import EngineConfig
from clinicq.models import AppointmentRecord, Doctor, Session
from clinicq.presence import has_active_appointments, should_check_out, stale_completions, within_any_session

MONDAY = date(2026, 10, 19)
CFG = EngineConfig()


def _at(hhmm: str, day: date = MONDAY) -> datetime:
    hours, minutes = (int(part) for part in hhmm.split(":"))
    return datetime.combine(day, time(hours, minutes))


def _doctor(status: str = "In") -> Doctor:
    return Doctor(
        doctor_id="d1",
        name="Dr. Test",
        availability={"Monday": [Session("09:00 AM", "11:00 AM")]},
        consultation_status=status,
    )


def _appt(ident: str, clock: str, status: str) -> AppointmentRecord:
    return AppointmentRecord(
        appointment_id=ident,
        doctor_id="d1",
        date=MONDAY,
        time=clock,
        token_number="A1-001",
        status=status,
    )


def test_confirmed_visits_are_completed_after_two_hours() -> None:
    appointments = [_appt("x1", "09:00 AM", "Confirmed"), _appt("x2", "09:00 AM", "Pending")]

    assert stale_completions(appointments, _at("11:00"), CFG) == []
    (transition,) = stale_completions(appointments, _at("11:01"), CFG)
    assert transition.appointment_id == "x1"
    assert transition.new_status == "Completed"


def test_session_window_opens_early_for_check_in() -> None:
    doctor = _doctor()

    assert not within_any_session(doctor, _at("08:29"), CFG)
    assert within_any_session(doctor, _at("08:30"), CFG)
    assert within_any_session(doctor, _at("11:00"), CFG)
    assert not within_any_session(doctor, _at("11:01"), CFG)


def test_stale_confirmed_visits_do_not_count_as_active() -> None:
    stale = [_appt("x1", "09:00 AM", "Confirmed")]

    assert not has_active_appointments(stale, _at("11:30"), CFG)
    assert has_active_appointments(stale, _at("10:30"), CFG)


def test_doctor_is_checked_out_after_the_day_with_an_empty_queue() -> None:
    assert should_check_out(_doctor(), [_appt("x1", "10:00 AM", "Completed")], _at("11:10"), CFG)


def test_doctor_stays_in_while_work_remains() -> None:
    doctor = _doctor()

    assert not should_check_out(doctor, [_appt("x1", "10:45 AM", "Skipped")], _at("11:10"), CFG)
    assert not should_check_out(doctor, [], _at("10:30"), CFG)
    assert not should_check_out(_doctor("Out"), [], _at("11:10"), CFG)
