"""Unit tests for exam date listing and the exam slot rules."""

import uuid
from datetime import date, time
from types import SimpleNamespace

from app.api.v1.exam_timetables.scheduler import exam_dates, sort_exam_slots, validate_exam_slot
from app.api.v1.exam_timetables.schemas import ScheduledExam
from app.core.enums import ExamSlotErrorCode

MATH = uuid.uuid4()
SCIENCE = uuid.uuid4()
ENGLISH = uuid.uuid4()


def _exam(subject_id, name, day, start, end, slot_id=None) -> ScheduledExam:
    return ScheduledExam(
        id=slot_id,
        subject_id=subject_id,
        subject_name=name,
        exam_date=day,
        start_time=start,
        end_time=end,
    )


def test_exam_dates_flags_off_days() -> None:
    # 2026-03-02 is a Monday
    dates = exam_dates(date(2026, 3, 2), date(2026, 3, 8), ["SUNDAY"])
    assert len(dates) == 7
    assert dates[0].day_of_week == "MONDAY"
    assert [d.is_holiday for d in dates] == [False] * 6 + [True]
    assert dates[-1].exam_date == date(2026, 3, 8)


def test_exam_dates_single_day_and_custom_off_days() -> None:
    dates = exam_dates(date(2026, 3, 6), date(2026, 3, 6), ["FRIDAY"])
    assert len(dates) == 1
    assert dates[0].is_holiday


def test_duplicate_subject_rejected_on_any_date() -> None:
    existing = [_exam(MATH, "Mathematics", date(2026, 3, 2), time(9, 0), time(12, 0), uuid.uuid4())]
    candidate = _exam(MATH, "Mathematics", date(2026, 3, 4), time(9, 0), time(12, 0))
    issue = validate_exam_slot(existing, candidate)
    assert issue is not None
    assert issue.code == ExamSlotErrorCode.DUPLICATE_SUBJECT
    assert "2026-03-02" in issue.message


def test_same_day_overlap_rejected() -> None:
    existing = [_exam(MATH, "Mathematics", date(2026, 3, 2), time(9, 0), time(12, 0), uuid.uuid4())]
    candidate = _exam(SCIENCE, "Science", date(2026, 3, 2), time(11, 0), time(13, 0))
    issue = validate_exam_slot(existing, candidate)
    assert issue is not None
    assert issue.code == ExamSlotErrorCode.TIME_OVERLAP
    assert "Mathematics" in issue.message
    assert "09:00-12:00" in issue.message


def test_touching_intervals_do_not_overlap() -> None:
    existing = [_exam(MATH, "Mathematics", date(2026, 3, 2), time(9, 0), time(12, 0), uuid.uuid4())]
    candidate = _exam(SCIENCE, "Science", date(2026, 3, 2), time(12, 0), time(15, 0))
    assert validate_exam_slot(existing, candidate) is None


def test_different_days_do_not_overlap() -> None:
    existing = [_exam(MATH, "Mathematics", date(2026, 3, 2), time(9, 0), time(12, 0), uuid.uuid4())]
    candidate = _exam(SCIENCE, "Science", date(2026, 3, 3), time(9, 0), time(12, 0))
    assert validate_exam_slot(existing, candidate) is None


def test_duplicate_reported_before_overlap() -> None:
    existing = [
        _exam(SCIENCE, "Science", date(2026, 3, 2), time(9, 0), time(12, 0), uuid.uuid4()),
        _exam(MATH, "Mathematics", date(2026, 3, 5), time(9, 0), time(12, 0), uuid.uuid4()),
    ]
    candidate = _exam(MATH, "Mathematics", date(2026, 3, 2), time(10, 0), time(11, 0))
    assert validate_exam_slot(existing, candidate).code == ExamSlotErrorCode.DUPLICATE_SUBJECT


def test_editing_a_slot_excludes_itself() -> None:
    slot_id = uuid.uuid4()
    existing = [_exam(MATH, "Mathematics", date(2026, 3, 2), time(9, 0), time(12, 0), slot_id)]
    moved = _exam(MATH, "Mathematics", date(2026, 3, 2), time(10, 0), time(13, 0), slot_id)
    assert validate_exam_slot(existing, moved, exclude_id=slot_id) is None


def test_sort_reassigns_slot_order() -> None:
    slots = [
        SimpleNamespace(name="english", exam_date=date(2026, 3, 4), start_time=time(9, 0), slot_order=1),
        SimpleNamespace(name="science", exam_date=date(2026, 3, 2), start_time=time(13, 0), slot_order=2),
        SimpleNamespace(name="math", exam_date=date(2026, 3, 2), start_time=time(9, 0), slot_order=3),
    ]
    ordered = sort_exam_slots(slots)
    assert [s.name for s in ordered] == ["math", "science", "english"]
    assert [s.slot_order for s in ordered] == [1, 2, 3]
