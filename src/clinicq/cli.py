from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .capacity import Scheduler
from .config import EngineConfig
from .data_generation import (
    DEFAULT_DATA_DIR,
    generate_day,
    generate_doctor,
    load_appointments,
    load_data,
    load_doctor,
    parse_now,
    save_data,
)
from .delay import plan_delay_writes
from .models import AppointmentRecord
from .queueing import due_transitions, order_queue
from .simulation import DaySimulation
from .walkin import walk_in_decision
from .slots import build_slot_grid
from .timeparse import format_clock, parse_day

console = Console()
app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _configure(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show engine debug logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _day_option(value: Optional[str], fallback: date) -> date:
    if value is None:
        return fallback
    day = parse_day(value)
    if day is None:
        raise typer.BadParameter(f"Invalid date: {value!r}")
    return day


def _now_option(value: Optional[str]) -> datetime:
    try:
        return parse_now(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _load_snapshot(appointments: Optional[Path]) -> List[AppointmentRecord]:
    return load_appointments(appointments) if appointments else []


@app.command("generate")
def generate(
    out_dir: Path = typer.Option(DEFAULT_DATA_DIR, help="Directory to write doctor.json and appointments.csv."),
    day: Optional[str] = typer.Option(None, help="Date to populate (YYYY-MM-DD); defaults to today."),
    seed: int = typer.Option(42, help="Random seed."),
    fill_rate: float = typer.Option(0.8, help="Share of advance slots to book."),
) -> None:
    cfg = EngineConfig()
    target = _day_option(day, date.today())
    doctor = generate_doctor(seed)
    appointments = generate_day(doctor, target, cfg, seed=seed, fill_rate=fill_rate)
    save_data(doctor, appointments, out_dir)
    console.log(f"Saved {doctor.name} and {len(appointments)} appointments for {target} to {out_dir}")


@app.command("slots")
def slots(
    doctor_file: Path = typer.Option(..., "--doctor", help="Doctor JSON file."),
    day: Optional[str] = typer.Option(None, help="Date (YYYY-MM-DD); defaults to today."),
) -> None:
    doctor = load_doctor(doctor_file)
    target = _day_option(day, date.today())
    grid = build_slot_grid(doctor, target, EngineConfig())
    if not grid:
        console.print(f"No availability for {doctor.name} on {target}", style="yellow")
        raise typer.Exit(code=0)
    table = Table(title=f"{doctor.name}: {target:%A %d %B %Y}", header_style="bold magenta")
    table.add_column("Index", justify="right")
    table.add_column("Time")
    table.add_column("Session", justify="right")
    for slot in grid:
        table.add_row(str(slot.index), format_clock(slot.time), str(slot.session_index))
    console.print(table)


@app.command("next-slot")
def next_slot(
    doctor_file: Path = typer.Option(..., "--doctor", help="Doctor JSON file."),
    appointments: Optional[Path] = typer.Option(None, help="Appointments CSV snapshot."),
    now: Optional[str] = typer.Option(None, help="Current time (ISO); defaults to the system clock."),
    buffer_minutes: int = typer.Option(30, help="Same-day booking buffer in minutes."),
    reserve_percent: int = typer.Option(15, help="Share of future capacity reserved for walk-ins."),
    lookahead_days: int = typer.Option(15, help="Days to search when the doctor sets no limit."),
) -> None:
    cfg = EngineConfig(
        booking_buffer_minutes=buffer_minutes,
        walk_in_reserve_percent=reserve_percent,
        lookahead_days=lookahead_days,
    )
    doctor = load_doctor(doctor_file)
    snapshot = _load_snapshot(appointments)
    moment = _now_option(now)
    decision = Scheduler(cfg).next_available(
        doctor, moment, lambda d: [a for a in snapshot if a.date == d and a.doctor_id == doctor.doctor_id]
    )
    if decision is None:
        console.print("No availability within the booking window", style="yellow")
        return
    console.print(
        f"[bold]{decision.day:%d %b %Y}[/bold] {format_clock(decision.slot_time)} "
        f"(session {decision.session_index}, slot {decision.slot_index}); "
        f"report by {format_clock(decision.reporting_time)}"
    )


@app.command("queue")
def queue(
    doctor_file: Path = typer.Option(..., "--doctor", help="Doctor JSON file."),
    appointments: Path = typer.Option(..., help="Appointments CSV snapshot."),
    now: Optional[str] = typer.Option(None, help="Current time (ISO); defaults to the system clock."),
) -> None:
    cfg = EngineConfig()
    doctor = load_doctor(doctor_file)
    moment = _now_option(now)
    todays = [a for a in load_appointments(appointments) if a.doctor_id == doctor.doctor_id and a.date == moment.date()]
    record, writes = plan_delay_writes(doctor, todays, moment, cfg)
    transitions = {t.appointment_id: t for t in due_transitions(todays, moment, cfg)}

    console.log(
        f"Delay {record.delay_minutes}m from {record.effective_start and format_clock(record.effective_start)}"
        f"{' (in break)' if record.in_break else ''}; {len(writes)} threshold update(s) pending"
    )
    table = Table(title=f"Queue {moment:%d %b %Y %H:%M}", header_style="bold magenta")
    for column in ("Token", "Time", "Status", "Cut-off", "No-show", "Due"):
        table.add_column(column)
    for appt in order_queue(todays):
        due = transitions.get(appt.appointment_id)
        table.add_row(
            appt.token_number,
            appt.time,
            appt.status,
            format_clock(appt.cut_off_time) if appt.cut_off_time else "-",
            format_clock(appt.no_show_time) if appt.no_show_time else "-",
            due.new_status if due else "",
        )
    console.print(table)


@app.command("walk-in")
def walk_in(
    doctor_file: Path = typer.Option(..., "--doctor", help="Doctor JSON file."),
    appointments: Optional[Path] = typer.Option(None, help="Appointments CSV snapshot."),
    now: Optional[str] = typer.Option(None, help="Current time (ISO); defaults to the system clock."),
) -> None:
    cfg = EngineConfig()
    doctor = load_doctor(doctor_file)
    moment = _now_option(now)
    decision = walk_in_decision(doctor, moment, _load_snapshot(appointments), cfg)
    if decision is None:
        console.print("No walk-in slot available", style="yellow")
        return
    console.print(
        f"[bold]{decision.token_number}[/bold] at {format_clock(decision.slot_time)} "
        f"(session {decision.session_index}); estimated {format_clock(decision.estimated_time)}, "
        f"{decision.patients_ahead} ahead"
    )


@app.command("simulate")
def simulate(
    data_dir: Optional[Path] = typer.Option(
        None, help="Directory containing doctor.json and appointments.csv; generated when missing."
    ),
    day: Optional[str] = typer.Option(None, help="Date to replay (YYYY-MM-DD)."),
    seed: int = typer.Option(42, help="Random seed."),
    late_minutes: int = typer.Option(20, help="How late the doctor checks in to each session."),
    no_show_rate: float = typer.Option(0.1, help="Probability a patient never arrives."),
    plot: bool = typer.Option(False, help="Show matplotlib overview."),
    csv_out: Optional[Path] = typer.Option(None, help="Path to save final appointment states."),
    png_out: Optional[Path] = typer.Option(None, help="Path to save plot instead of showing."),
) -> None:
    cfg = EngineConfig()
    data_dir = data_dir or DEFAULT_DATA_DIR
    if (data_dir / "doctor.json").exists() and (data_dir / "appointments.csv").exists():
        doctor, appointments = load_data(data_dir)
        fallback = appointments[0].date if appointments else date.today()
    else:
        doctor = generate_doctor(seed)
        fallback = date.today()
        appointments = []
    target = _day_option(day, fallback)
    if not appointments:
        appointments = generate_day(doctor, target, cfg, seed=seed)

    sim = DaySimulation(
        cfg, doctor, appointments, target, seed=seed, doctor_late_minutes=late_minutes, no_show_rate=no_show_rate
    )
    console.log("Replaying clinic day...", style="bold")
    try:
        df, timeline, metrics = sim.run()
    except ValueError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1)

    _print_metrics(metrics)
    if csv_out:
        df.to_csv(csv_out, index=False)
        console.log(f"Saved appointments to {csv_out}")

    if plot or png_out:
        from .visualize import plot_day

        plot_day(df, timeline, outfile=png_out)


def _print_metrics(metrics: dict) -> None:
    table = Table(title="Day KPIs", show_header=True, header_style="bold magenta")
    table.add_column("Metric")
    table.add_column("Value")
    for key, val in metrics.items():
        table.add_row(key, f"{val:0.3f}" if isinstance(val, float) else str(val))
    console.print(table)
