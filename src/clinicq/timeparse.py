"""
Fail-closed parsing of wall-clock times, dates and timestamps.

Every helper returns ``None`` for input it cannot read so that one bad record
never aborts a whole day's computation.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Union

logger = logging.getLogger(__name__)

CLOCK_FORMATS = ("%I:%M %p", "%I:%M%p", "%H:%M", "%H:%M:%S")
DATE_FORMATS = ("%Y-%m-%d", "%d %B %Y", "%d %b %Y")


def parse_clock(value: Optional[str], day: date) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().upper()
    for fmt in CLOCK_FORMATS:
        try:
            clock = datetime.strptime(text, fmt).time()
        except ValueError:
            continue
        return datetime.combine(day, clock)
    logger.warning("Unparsable time %r on %s", value, day)
    return None


def parse_instant(value: Union[str, datetime, None], day: Optional[date] = None) -> Optional[datetime]:
    """Read an ISO timestamp, or a bare wall-clock time when ``day`` is given."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass
    if day is not None:
        return parse_clock(text, day)
    logger.warning("Unparsable timestamp %r", value)
    return None


def parse_day(value: Union[str, date, None]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    logger.warning("Unparsable date %r", value)
    return None


def format_clock(moment: datetime) -> str:
    return moment.strftime("%I:%M %p")


def whole_minutes(start: datetime, end: datetime) -> int:
    return int((end - start) // timedelta(minutes=1))
