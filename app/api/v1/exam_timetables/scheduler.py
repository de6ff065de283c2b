"""
Exam date list and slot rules.

A subject is examined at most once per exam timetable, and two papers on the same date may
not overlap. Intervals are half-open, so 09:00-12:00 and 12:00-15:00 can share a day.
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from app.core.enums import WEEKDAY_ORDER, ExamSlotErrorCode
from app.core.schemas import format_time_24

from .schemas import ExamDate, ExamSlotIssue, ScheduledExam


def weekday_name(d: date) -> str:
    return WEEKDAY_ORDER[d.weekday()]


def is_off_day(d: date, off_days: Iterable[str]) -> bool:
    return weekday_name(d) in set(off_days)


def exam_dates(start_date: date, end_date: date, off_days: Iterable[str]) -> List[ExamDate]:
    """Every date from start_date to end_date inclusive; off days are flagged is_holiday."""
    off = set(off_days)
    dates: List[ExamDate] = []
    current = start_date
    while current <= end_date:
        day = weekday_name(current)
        dates.append(ExamDate(exam_date=current, day_of_week=day, is_holiday=day in off))
        current += timedelta(days=1)
    return dates


def _overlaps(a: ScheduledExam, b: ScheduledExam) -> bool:
    return a.start_time < b.end_time and b.start_time < a.end_time


def validate_exam_slot(
    existing: Sequence[ScheduledExam],
    candidate: ScheduledExam,
    exclude_id: Optional[UUID] = None,
) -> Optional[ExamSlotIssue]:
    """First rule the candidate breaks against the existing slots, or None."""
    others = [s for s in existing if exclude_id is None or s.id != exclude_id]

    for s in others:
        if s.subject_id == candidate.subject_id:
            return ExamSlotIssue(
                code=ExamSlotErrorCode.DUPLICATE_SUBJECT,
                message=f"{s.subject_name} is already scheduled on {s.exam_date.isoformat()}",
                details={"slot_id": str(s.id) if s.id else None, "exam_date": s.exam_date.isoformat()},
            )

    for s in others:
        if s.exam_date == candidate.exam_date and _overlaps(s, candidate):
            time_range = f"{format_time_24(s.start_time)}-{format_time_24(s.end_time)}"
            return ExamSlotIssue(
                code=ExamSlotErrorCode.TIME_OVERLAP,
                message=f"Time overlaps with {s.subject_name} ({time_range}) on {s.exam_date.isoformat()}",
                details={
                    "slot_id": str(s.id) if s.id else None,
                    "subject_name": s.subject_name,
                    "start_time": format_time_24(s.start_time),
                    "end_time": format_time_24(s.end_time),
                },
            )
    return None


def sort_exam_slots(slots):
    """Stable sort by (exam_date, start_time); slot_order becomes 1..N. Works on ORM rows in place."""
    ordered = sorted(slots, key=lambda s: (s.exam_date, s.start_time))
    for i, s in enumerate(ordered, start=1):
        s.slot_order = i
    return ordered
