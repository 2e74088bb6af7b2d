from __future__ import annotations

from datetime import date

import pytest
from typer.testing import CliRunner

from clinicq.cli import app
from clinicq.config import EngineConfig
from clinicq.data_generation import generate_day, save_data
from clinicq.models import Doctor, Session

MONDAY = date(2026, 10, 19)
runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    doctor = Doctor(
        doctor_id="d1",
        name="Dr. Test",
        clinic_id="c1",
        availability={day: [Session("09:00 AM", "10:00 AM")] for day in ("Monday", "Tuesday")},
    )
    appointments = generate_day(doctor, MONDAY, EngineConfig(), seed=1, fill_rate=1.0, walk_in_rate=0.0)
    save_data(doctor, appointments, tmp_path)
    return tmp_path


def test_generate_writes_snapshot(tmp_path) -> None:
    result = runner.invoke(app, ["generate", "--out-dir", str(tmp_path), "--day", "2026-10-19", "--seed", "3"])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "doctor.json").exists()
    assert (tmp_path / "appointments.csv").exists()


def test_slots_lists_the_grid(data_dir) -> None:
    result = runner.invoke(app, ["slots", "--doctor", str(data_dir / "doctor.json"), "--day", "2026-10-19"])

    assert result.exit_code == 0, result.output
    assert "09:45 AM" in result.output


def test_slots_rejects_a_bad_day(data_dir) -> None:
    result = runner.invoke(app, ["slots", "--doctor", str(data_dir / "doctor.json"), "--day", "someday"])

    assert result.exit_code == 2


def test_next_slot_rolls_over_to_the_next_day(data_dir) -> None:
    result = runner.invoke(
        app,
        [
            "next-slot",
            "--doctor",
            str(data_dir / "doctor.json"),
            "--appointments",
            str(data_dir / "appointments.csv"),
            "--now",
            "2026-10-19T08:00:00",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "20 Oct 2026 09:00 AM" in result.output


def test_queue_shows_due_transitions(data_dir) -> None:
    result = runner.invoke(
        app,
        [
            "queue",
            "--doctor",
            str(data_dir / "doctor.json"),
            "--appointments",
            str(data_dir / "appointments.csv"),
            "--now",
            "2026-10-19T09:10:00",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "A1-001" in result.output
    assert "Skipped" in result.output


def test_simulate_writes_csv(data_dir) -> None:
    out = data_dir / "final.csv"

    result = runner.invoke(
        app, ["simulate", "--data-dir", str(data_dir), "--day", "2026-10-19", "--csv-out", str(out)]
    )

    assert result.exit_code == 0, result.output
    assert "Day KPIs" in result.output
    assert out.exists()


@pytest.mark.parametrize("command", ["next-slot", "queue", "walk-in"])
def test_bad_now_is_a_usage_error(data_dir, command) -> None:
    result = runner.invoke(
        app,
        [
            command,
            "--doctor",
            str(data_dir / "doctor.json"),
            "--appointments",
            str(data_dir / "appointments.csv"),
            "--now",
            "garbage",
        ],
    )

    assert result.exit_code == 2


def test_walk_in_prints_the_token_and_estimate(data_dir) -> None:
    result = runner.invoke(
        app, ["walk-in", "--doctor", str(data_dir / "doctor.json"), "--now", "2026-10-19T09:05:00"]
    )

    assert result.exit_code == 0, result.output
    assert "W1-005 at 09:15 AM" in result.output
