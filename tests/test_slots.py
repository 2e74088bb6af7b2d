from __future__ import annotations

from datetime import date, datetime, time

from clinicq.config import EngineConfig
from clinicq.models import Doctor, Session, SessionExtension
from clinicq.slots import (
    active_session,
    build_slot_grid,
    effective_session_end,
    is_near_closing,
    last_session_end,
)

MONDAY = date(2026, 10, 19)
CFG = EngineConfig()


def _at(hhmm: str, day: date = MONDAY) -> datetime:
    hours, minutes = (int(part) for part in hhmm.split(":"))
    return datetime.combine(day, time(hours, minutes))


def _doctor(*sessions, **kwargs) -> Doctor:
    sessions = sessions or (("09:00 AM", "10:00 AM"),)
    return Doctor(
        doctor_id="d1",
        name="Dr. Test",
        clinic_id="c1",
        availability={"Monday": [Session(start, end) for start, end in sessions]},
        **kwargs,
    )


def test_one_hour_session_yields_four_slots() -> None:
    grid = build_slot_grid(_doctor(), MONDAY, CFG)

    assert [slot.time for slot in grid] == [_at("09:00"), _at("09:15"), _at("09:30"), _at("09:45")]
    assert [slot.index for slot in grid] == [0, 1, 2, 3]


def test_extension_by_one_step_adds_exactly_one_slot() -> None:
    doctor = _doctor(extensions={MONDAY: [SessionExtension(0, "10:15 AM")]})

    grid = build_slot_grid(doctor, MONDAY, CFG)

    assert len(grid) == 5
    assert grid[-1].time == _at("10:00")


def test_extension_not_later_than_base_end_is_ignored() -> None:
    doctor = _doctor(extensions={MONDAY: [SessionExtension(0, "09:30 AM")]})

    assert len(build_slot_grid(doctor, MONDAY, CFG)) == 4


def test_latest_extension_for_a_session_wins() -> None:
    doctor = _doctor(
        extensions={MONDAY: [SessionExtension(0, "11:00 AM"), SessionExtension(0, "10:30 AM")]}
    )

    assert effective_session_end(doctor, MONDAY, 0) == _at("10:30")


def test_extension_only_applies_to_its_own_date() -> None:
    doctor = _doctor(extensions={date(2026, 10, 26): [SessionExtension(0, "11:00 AM")]})

    assert len(build_slot_grid(doctor, MONDAY, CFG)) == 4


def test_slot_index_runs_on_across_sessions() -> None:
    doctor = _doctor(("09:00 AM", "09:30 AM"), ("11:00", "11:45"))

    grid = build_slot_grid(doctor, MONDAY, CFG)

    assert [(s.index, s.session_index) for s in grid] == [(0, 0), (1, 0), (2, 1), (3, 1), (4, 1)]
    assert grid[2].time == _at("11:00")


def test_malformed_session_contributes_no_slots() -> None:
    doctor = _doctor(("garbage", "10:00 AM"), ("11:00 AM", ""), ("02:00 PM", "02:30 PM"))

    grid = build_slot_grid(doctor, MONDAY, CFG)

    assert [slot.time for slot in grid] == [_at("14:00"), _at("14:15")]
    assert {slot.session_index for slot in grid} == {2}


def test_day_without_sessions_has_no_slots() -> None:
    assert build_slot_grid(_doctor(), date(2026, 10, 18), CFG) == []


def test_weekday_lookup_ignores_case() -> None:
    doctor = Doctor(doctor_id="d1", name="Dr. Test", availability={"monday": [Session("09:00", "09:30")]})

    assert len(build_slot_grid(doctor, MONDAY, CFG)) == 2


def test_average_consulting_time_sets_slot_step() -> None:
    doctor = _doctor(average_consulting_time=10)

    assert len(build_slot_grid(doctor, MONDAY, CFG)) == 6


def test_active_session_opens_before_start_and_closes_before_end() -> None:
    doctor = _doctor(("09:00 AM", "10:00 AM"), ("05:00 PM", "06:00 PM"))

    assert active_session(doctor, _at("08:35"), CFG).index == 0
    assert active_session(doctor, _at("09:45"), CFG).index == 0
    # Past the walk-in close of the morning: the evening session is next.
    assert active_session(doctor, _at("09:50"), CFG).index == 1
    assert active_session(doctor, _at("18:30"), CFG) is None


def test_near_closing_uses_extended_last_session_end() -> None:
    doctor = _doctor(extensions={MONDAY: [SessionExtension(0, "10:30 AM")]})

    assert last_session_end(doctor, MONDAY) == _at("10:30")
    assert not is_near_closing(doctor, _at("09:50"), CFG)
    assert is_near_closing(doctor, _at("10:20"), CFG)
    assert not is_near_closing(doctor, _at("10:30"), CFG)
