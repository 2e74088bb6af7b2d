"""
Slot grid: expand a doctor's weekly sessions and daily extensions into the
chronological sequence of candidate appointment slots for one date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from .config import EngineConfig
from .models import Doctor, Slot
from .timeparse import parse_clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionWindow:
    index: int
    start: datetime
    end: datetime  # effective, extension applied


def effective_session_end(doctor: Doctor, day: date, session_index: int) -> Optional[datetime]:
    sessions = doctor.sessions_for(day)
    if not 0 <= session_index < len(sessions):
        return None
    end = parse_clock(sessions[session_index].end, day)
    if end is None:
        return None
    ext = doctor.extension_for(day, session_index)
    if ext is not None:
        extended = parse_clock(ext.new_end_time, day)
        if extended is not None and extended > end:
            return extended
    return end


def session_windows(doctor: Doctor, day: date) -> List[SessionWindow]:
    windows: List[SessionWindow] = []
    for index, session in enumerate(doctor.sessions_for(day)):
        start = parse_clock(session.start, day)
        end = effective_session_end(doctor, day, index)
        if start is None or end is None:
            logger.warning(
                "Skipping malformed session %d for doctor %s on %s", index, doctor.doctor_id, day
            )
            continue
        windows.append(SessionWindow(index=index, start=start, end=end))
    return windows


def build_slot_grid(doctor: Doctor, day: date, cfg: EngineConfig) -> List[Slot]:
    """Slots for every session of ``day``; the index runs on across sessions."""
    step = timedelta(minutes=doctor.slot_minutes(cfg))
    slots: List[Slot] = []
    index = 0
    for window in session_windows(doctor, day):
        current = window.start
        while current < window.end:
            slots.append(Slot(index=index, time=current, session_index=window.index))
            index += 1
            current += step
    return slots


def last_session_end(doctor: Doctor, day: date) -> Optional[datetime]:
    windows = session_windows(doctor, day)
    if not windows:
        return None
    return windows[-1].end


def active_session(doctor: Doctor, now: datetime, cfg: EngineConfig) -> Optional[SessionWindow]:
    """Session whose walk-in window holds ``now``, else the next one to start today."""
    windows = session_windows(doctor, now.date())
    for window in windows:
        opens = window.start - timedelta(minutes=cfg.walk_in_lead_minutes)
        closes = window.end - timedelta(minutes=cfg.walk_in_close_minutes)
        if opens <= now <= closes:
            return window
    for window in windows:
        if window.start > now:
            return window
    return None


def is_near_closing(doctor: Doctor, now: datetime, cfg: EngineConfig) -> bool:
    end = last_session_end(doctor, now.date())
    if end is None:
        return False
    return end - timedelta(minutes=cfg.walk_in_close_minutes) < now < end
