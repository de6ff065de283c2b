"""
Period timing generation and list editing for timetable templates.

All functions are pure: they take a list of PeriodTimingData and return a new list whose
period_number values are 1..N in list order.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence

from .schemas import PeriodTimingData

SHORT_BREAK_AFTER = 2
SHORT_BREAK_MINUTES = 15
SHORT_BREAK_NAME = "Short Break"
LUNCH_BREAK_AFTER = 4
LUNCH_BREAK_MINUTES = 45
LUNCH_BREAK_NAME = "Lunch Break"
DEFAULT_DAY_START = time(9, 0)


def _advance(t: time, minutes: int) -> time:
    moved = datetime.combine(date.min, t) + timedelta(minutes=minutes)
    if moved.date() != date.min:
        raise ValueError("Period timings cannot run past midnight")
    return moved.time()


def renumber_periods(periods: Sequence[PeriodTimingData]) -> List[PeriodTimingData]:
    return [p.model_copy(update={"period_number": i}) for i, p in enumerate(periods, start=1)]


def generate_default_timings(
    periods_per_day: int,
    period_duration: int,
    start_hour: int = 9,
    start_minute: int = 0,
) -> List[PeriodTimingData]:
    """
    Walk forward from the start time emitting teaching periods of period_duration minutes.
    A 15 minute Short Break follows teaching period 2 and a 45 minute Lunch Break follows
    teaching period 4, but only when more teaching periods come after them.
    Breaks do not count toward periods_per_day.
    """
    if periods_per_day < 1:
        raise ValueError("periods_per_day must be at least 1")
    if period_duration < 1:
        raise ValueError("period_duration must be at least 1 minute")

    timings: List[PeriodTimingData] = []
    current = time(start_hour, start_minute)
    teaching = 0
    while teaching < periods_per_day:
        end = _advance(current, period_duration)
        teaching += 1
        timings.append(
            PeriodTimingData(name=f"Period {teaching}", start_time=current, end_time=end, is_break=False)
        )
        current = end
        if teaching >= periods_per_day:
            break
        if teaching == SHORT_BREAK_AFTER:
            end = _advance(current, SHORT_BREAK_MINUTES)
            timings.append(PeriodTimingData(name=SHORT_BREAK_NAME, start_time=current, end_time=end, is_break=True))
            current = end
        elif teaching == LUNCH_BREAK_AFTER:
            end = _advance(current, LUNCH_BREAK_MINUTES)
            timings.append(PeriodTimingData(name=LUNCH_BREAK_NAME, start_time=current, end_time=end, is_break=True))
            current = end

    return renumber_periods(timings)


def append_period(
    periods: Sequence[PeriodTimingData],
    is_break: bool,
    period_duration: int,
    break_duration: int = SHORT_BREAK_MINUTES,
    name: Optional[str] = None,
    day_start: time = DEFAULT_DAY_START,
) -> List[PeriodTimingData]:
    """Append a period (or break) starting where the last row ends."""
    start = periods[-1].end_time if periods else day_start
    end = _advance(start, break_duration if is_break else period_duration)
    if name is None:
        teaching = sum(1 for p in periods if not p.is_break)
        name = "Break" if is_break else f"Period {teaching + 1}"
    added = PeriodTimingData(name=name, start_time=start, end_time=end, is_break=is_break)
    return renumber_periods([*periods, added])


def remove_period(periods: Sequence[PeriodTimingData], period_number: int) -> List[PeriodTimingData]:
    if not any(p.period_number == period_number for p in periods):
        raise ValueError(f"Period {period_number} does not exist")
    if len(periods) == 1:
        raise ValueError("A template needs at least one period")
    return renumber_periods([p for p in periods if p.period_number != period_number])


def move_period(periods: Sequence[PeriodTimingData], period_number: int, direction: str) -> List[PeriodTimingData]:
    """Swap a period with its neighbour. Moving the first row up or the last row down is a no-op."""
    if direction not in ("up", "down"):
        raise ValueError("direction must be 'up' or 'down'")
    updated = list(periods)
    index = next((i for i, p in enumerate(updated) if p.period_number == period_number), None)
    if index is None:
        raise ValueError(f"Period {period_number} does not exist")
    target = index - 1 if direction == "up" else index + 1
    if 0 <= target < len(updated):
        updated[index], updated[target] = updated[target], updated[index]
    return renumber_periods(updated)
