# amc_portal/task_status.py
"""
Timeliness rules for maintenance tasks.

The colour shown next to a task is never stored: it is derived from the
task's status, benchmark time and completion time whenever a task is read,
so the request handlers and the hourly sweep cannot disagree about it.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

VALID_CATEGORIES = ["daily", "weekly", "monthly"]
VALID_STATUSES = ["pending", "in-progress", "completed", "overdue"]
UPDATE_STATUSES = ["pending", "in-progress", "completed"]
VALID_PRIORITIES = ["low", "medium", "high"]

RED = "red"
ORANGE = "orange"
GREEN = "green"
COLORS = [RED, ORANGE, GREEN]

DUE_SOON_WINDOW = timedelta(hours=24)
LATE_TOLERANCE = timedelta(hours=24)

Timestamp = Union[str, datetime, None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for empty input and raises
    ValueError for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: Timestamp) -> Optional[str]:
    """Normalise a timestamp to the storage format (UTC, seconds precision)."""
    dt = parse_timestamp(value)
    if dt is None:
        return None
    return dt.replace(microsecond=0).isoformat()


def utc_now_iso() -> str:
    return utc_now().isoformat()


def compute_color_status(
    status: str,
    benchmark_time: Timestamp,
    actual_time: Timestamp = None,
    now: Optional[datetime] = None,
) -> str:
    now = parse_timestamp(now) if now is not None else utc_now()
    benchmark = parse_timestamp(benchmark_time)
    if benchmark is None:
        return GREEN

    if status == "completed":
        finished = parse_timestamp(actual_time) or now
        late_by = finished - benchmark
        if late_by > LATE_TOLERANCE:
            return RED
        if late_by > timedelta(0):
            return ORANGE
        return GREEN

    if benchmark <= now:
        return RED
    if benchmark - now <= DUE_SOON_WINDOW:
        return ORANGE
    return GREEN


def is_overdue(status: str, benchmark_time: Timestamp, now: Optional[datetime] = None) -> bool:
    if status == "completed":
        return False
    benchmark = parse_timestamp(benchmark_time)
    now = parse_timestamp(now) if now is not None else utc_now()
    return benchmark is not None and benchmark <= now
