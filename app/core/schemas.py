"""Schema helpers shared by the timetable and exam modules."""

from datetime import datetime, time
from typing import Iterable, List, Union

from app.core.enums import WEEKDAY_ORDER


def parse_time_24(v: Union[str, time]) -> time:
    """Parse 24-hour time string (HH:MM or HH:MM:SS) to time."""
    if isinstance(v, time):
        return v
    if isinstance(v, str):
        v = v.strip()
        if len(v) == 5:  # HH:MM
            return datetime.strptime(v, "%H:%M").time()
        return datetime.strptime(v, "%H:%M:%S").time()
    raise ValueError("time must be a 24-hour string (e.g. 09:00, 09:45) or time")


def format_time_24(t: time) -> str:
    """Output as 24-hour string HH:MM (e.g. 09:00, 09:45)."""
    return t.strftime("%H:%M")


def normalize_weekdays(days: Iterable[str]) -> List[str]:
    """Upper-case, de-duplicate and sort weekday names Monday-first. Unknown names raise ValueError."""
    seen = set()
    for d in days:
        name = str(getattr(d, "value", d)).strip().upper()
        if name not in WEEKDAY_ORDER:
            raise ValueError(f"Unknown weekday: {d}")
        seen.add(name)
    return [d for d in WEEKDAY_ORDER if d in seen]
