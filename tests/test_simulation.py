from __future__ import annotations

from datetime import date

import pytest

from clinicq.config import STATUSES, EngineConfig
from clinicq.data_generation import generate_day
from clinicq.models import Doctor, Session
from clinicq.simulation import DaySimulation

MONDAY = date(2026, 10, 19)
CFG = EngineConfig()


def _doctor() -> Doctor:
    return Doctor(
        doctor_id="d1",
        name="Dr. Test",
        clinic_id="c1",
        availability={"Monday": [Session("09:00 AM", "10:00 AM")]},
    )


def _run(**kwargs):
    doctor = _doctor()
    appointments = generate_day(doctor, MONDAY, CFG, seed=5, fill_rate=1.0, walk_in_rate=1.0)
    return DaySimulation(CFG, doctor, appointments, MONDAY, seed=5, **kwargs).run()


def test_replay_produces_final_states_and_timeline() -> None:
    df, timeline, metrics = _run(no_show_rate=0.0)

    assert len(df) == 4
    assert set(df["status"]) <= set(STATUSES)
    assert {"arrived_at", "skipped"} <= set(df.columns)
    assert df["arrived_at"].notna().all()
    assert timeline.iloc[0]["doctor_status"] == "Out"
    assert set(metrics) == {
        "appointments",
        "completed",
        "no_show_rate",
        "skip_rate",
        "max_delay_minutes",
        "mean_delay_minutes",
    }


def test_late_check_in_shows_up_as_delay() -> None:
    _, timeline, metrics = _run(doctor_late_minutes=20)

    assert metrics["max_delay_minutes"] == 19.0
    assert (timeline["delay_minutes"] >= 0).all()


def test_replay_is_reproducible() -> None:
    first = _run(no_show_rate=0.3)[2]
    second = _run(no_show_rate=0.3)[2]

    assert first == second


def test_day_without_sessions_is_rejected() -> None:
    with pytest.raises(ValueError, match="no sessions"):
        DaySimulation(CFG, _doctor(), [], date(2026, 10, 20)).run()
