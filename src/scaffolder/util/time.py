from __future__ import annotations

from datetime import datetime


def local_now() -> datetime:
    return datetime.now().astimezone()


def iso(moment: datetime) -> str:
    """Format an aware datetime as ISO 8601 with second precision."""
    return moment.isoformat(timespec="seconds")


def duration_sec(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds(), 3)
