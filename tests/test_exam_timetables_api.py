import uuid
from datetime import date, time, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.exam_timetables import service as exam_service
from app.core.models import ExamSlot

BASE = "/api/v1/exams/timetable"


def _next_monday(weeks_ahead: int = 2) -> date:
    d = date.today() + timedelta(weeks=weeks_ahead)
    return d - timedelta(days=d.weekday())


def _exam(subject, day: date, start: str = "09:00", end: str = "12:00", **extra) -> dict:
    payload = {
        "subject_id": str(subject.id),
        "exam_date": day.isoformat(),
        "start_time": start,
        "end_time": end,
    }
    payload.update(extra)
    return payload


@pytest.fixture()
def monday() -> date:
    return _next_monday()


@pytest.fixture()
def create_exam_timetable(client: AsyncClient, headers, school, monday):
    async def _create(slots=None, **overrides):
        payload = {
            "academic_year_id": str(school.year.id),
            "academic_unit_id": str(school.class_a.id),
            "exam_name": "Mid Term",
            "start_date": monday.isoformat(),
            "end_date": (monday + timedelta(days=6)).isoformat(),
            "slots": slots or [],
        }
        payload.update(overrides)
        return await client.post(BASE, json=payload, headers=headers)

    return _create


@pytest.mark.asyncio
async def test_create_with_exams_orders_slots(school, monday, create_exam_timetable) -> None:
    math, science = school.subjects["math"], school.subjects["science"]
    response = await create_exam_timetable(
        slots=[
            _exam(science, monday + timedelta(days=2)),
            _exam(math, monday, supervisor_id=str(school.teachers[0].id), room="Hall A"),
        ]
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["status"] == "DRAFT"
    assert data["weekly_off_days"] == ["SUNDAY"]
    assert data["slot_count"] == 2
    assert [(s["slot_order"], s["subject"]["code"]) for s in data["slots"]] == [(1, "MATH"), (2, "SCI")]
    assert data["slots"][0]["start_time"] == "09:00"
    assert data["slots"][0]["supervisor"]["full_name"] == "Anita Rao"
    assert data["slots"][0]["max_marks"] == 100
    assert data["slots"][0]["min_marks"] == 33


@pytest.mark.asyncio
async def test_invalid_exam_rejects_whole_request(
    client: AsyncClient, headers, school, monday, create_exam_timetable
) -> None:
    math = school.subjects["math"]
    response = await create_exam_timetable(
        slots=[_exam(math, monday), _exam(math, monday + timedelta(days=1))]
    )
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "DUPLICATE_SUBJECT"
    assert detail["message"] == f"Exam 2: Mathematics is already scheduled on {monday.isoformat()}"

    response = await client.get(BASE, headers=headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_same_day_overlap(client: AsyncClient, headers, school, monday, create_exam_timetable) -> None:
    created = await create_exam_timetable(slots=[_exam(school.subjects["math"], monday)])
    exam_id = created.json()["id"]

    response = await client.post(
        f"{BASE}/{exam_id}/slots",
        json=_exam(school.subjects["science"], monday, "11:00", "13:00"),
        headers=headers,
    )
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "TIME_OVERLAP"
    assert detail["message"] == f"Time overlaps with Mathematics (09:00-12:00) on {monday.isoformat()}"

    # Back-to-back papers are fine
    response = await client.post(
        f"{BASE}/{exam_id}/slots",
        json=_exam(school.subjects["science"], monday, "12:00", "15:00"),
        headers=headers,
    )
    assert response.status_code == 201
    assert response.json()["slot_count"] == 2


@pytest.mark.asyncio
async def test_exam_date_must_be_in_window_and_not_off_day(
    client: AsyncClient, headers, school, monday, create_exam_timetable
) -> None:
    created = await create_exam_timetable(weekly_off_days=["saturday", "sunday"])
    assert created.status_code == 201
    exam_id = created.json()["id"]
    math = school.subjects["math"]

    response = await client.post(f"{BASE}/{exam_id}/slots", json=_exam(math, monday + timedelta(days=7)), headers=headers)
    assert response.status_code == 400
    response = await client.post(f"{BASE}/{exam_id}/slots", json=_exam(math, monday + timedelta(days=5)), headers=headers)
    assert response.status_code == 400
    response = await client.post(
        f"{BASE}/{exam_id}/slots", json=_exam(math, monday, "12:00", "09:00"), headers=headers
    )
    assert response.status_code == 400
    response = await client.post(
        f"{BASE}/{exam_id}/slots", json=_exam(math, monday, max_marks=50, min_marks=60), headers=headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_exam_dates_flag_holidays(client: AsyncClient, headers, monday, create_exam_timetable) -> None:
    created = await create_exam_timetable()
    response = await client.get(f"{BASE}/{created.json()['id']}/dates", headers=headers)
    assert response.status_code == 200
    dates = response.json()
    assert len(dates) == 7
    assert dates[0] == {"exam_date": monday.isoformat(), "day_of_week": "MONDAY", "is_holiday": False}
    assert [d["day_of_week"] for d in dates if d["is_holiday"]] == ["SUNDAY"]


@pytest.mark.asyncio
async def test_edit_exam_ignores_itself(client: AsyncClient, headers, school, monday, create_exam_timetable) -> None:
    math, science = school.subjects["math"], school.subjects["science"]
    created = await create_exam_timetable(
        slots=[_exam(math, monday), _exam(science, monday + timedelta(days=1))]
    )
    exam_id = created.json()["id"]
    math_slot = created.json()["slots"][0]["id"]

    response = await client.put(
        f"{BASE}/{exam_id}/slots/{math_slot}",
        json=_exam(math, monday + timedelta(days=3), "10:00", "13:00"),
        headers=headers,
    )
    assert response.status_code == 200, response.text
    slots = response.json()["slots"]
    assert [s["subject"]["code"] for s in slots] == ["SCI", "MATH"]
    assert slots[1]["slot_order"] == 2

    response = await client.put(
        f"{BASE}/{exam_id}/slots/{math_slot}",
        json=_exam(science, monday + timedelta(days=3)),
        headers=headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DUPLICATE_SUBJECT"

    response = await client.delete(f"{BASE}/{exam_id}/slots/{math_slot}", headers=headers)
    assert response.status_code == 200
    assert [s["slot_order"] for s in response.json()["slots"]] == [1]


@pytest.mark.asyncio
async def test_header_change_cannot_strand_exams(
    client: AsyncClient, headers, school, monday, create_exam_timetable
) -> None:
    created = await create_exam_timetable(slots=[_exam(school.subjects["math"], monday + timedelta(days=4))])
    exam_id = created.json()["id"]

    response = await client.put(
        f"{BASE}/{exam_id}", json={"end_date": (monday + timedelta(days=2)).isoformat()}, headers=headers
    )
    assert response.status_code == 400
    response = await client.put(f"{BASE}/{exam_id}", json={"weekly_off_days": ["FRIDAY"]}, headers=headers)
    assert response.status_code == 400

    response = await client.put(f"{BASE}/{exam_id}", json={"exam_name": "Half Yearly"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["exam_name"] == "Half Yearly"


@pytest.mark.asyncio
async def test_publish_locks_exams(client: AsyncClient, headers, school, monday, create_exam_timetable) -> None:
    created = await create_exam_timetable()
    exam_id = created.json()["id"]

    response = await client.post(f"{BASE}/{exam_id}/publish", headers=headers)
    assert response.status_code == 400

    await client.post(f"{BASE}/{exam_id}/slots", json=_exam(school.subjects["math"], monday), headers=headers)
    response = await client.post(f"{BASE}/{exam_id}/publish", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "PUBLISHED"
    assert response.json()["published_at"] is not None

    response = await client.post(
        f"{BASE}/{exam_id}/slots", json=_exam(school.subjects["science"], monday + timedelta(days=1)), headers=headers
    )
    assert response.status_code == 409
    response = await client.post(f"{BASE}/{exam_id}/publish", headers=headers)
    assert response.status_code == 400

    response = await client.get(BASE, params={"status": "PUBLISHED"}, headers=headers)
    assert [(e["id"], e["slot_count"]) for e in response.json()] == [(exam_id, 1)]


@pytest.mark.asyncio
async def test_create_published_requires_exams(school, monday, create_exam_timetable) -> None:
    response = await create_exam_timetable(status="PUBLISHED")
    assert response.status_code == 400

    response = await create_exam_timetable(status="PUBLISHED", slots=[_exam(school.subjects["math"], monday)])
    assert response.status_code == 201
    assert response.json()["status"] == "PUBLISHED"


@pytest.mark.asyncio
async def test_delete_only_before_exams_start(client: AsyncClient, headers, create_exam_timetable) -> None:
    future = await create_exam_timetable()
    response = await client.delete(f"{BASE}/{future.json()['id']}", headers=headers)
    assert response.status_code == 204
    response = await client.get(f"{BASE}/{future.json()['id']}", headers=headers)
    assert response.status_code == 404

    today = date.today()
    started = await create_exam_timetable(
        start_date=today.isoformat(), end_date=(today + timedelta(days=3)).isoformat()
    )
    assert started.status_code == 201
    response = await client.delete(f"{BASE}/{started.json()['id']}", headers=headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_section_must_belong_to_class(school, create_exam_timetable) -> None:
    response = await create_exam_timetable(section_id=str(school.class_b.id))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_published_header_is_locked(
    client: AsyncClient, headers, school, monday, create_exam_timetable
) -> None:
    created = await create_exam_timetable(status="PUBLISHED", slots=[_exam(school.subjects["math"], monday)])
    exam_id = created.json()["id"]

    response = await client.put(f"{BASE}/{exam_id}", json={"exam_name": "Renamed"}, headers=headers)
    assert response.status_code == 409
    response = await client.get(f"{BASE}/{exam_id}", headers=headers)
    assert response.json()["exam_name"] == "Mid Term"


@pytest.mark.asyncio
async def test_subject_unique_per_exam_timetable(
    school, monday, db_session: AsyncSession, create_exam_timetable
) -> None:
    created = await create_exam_timetable(slots=[_exam(school.subjects["math"], monday)])
    db_session.add(
        ExamSlot(
            exam_timetable_id=uuid.UUID(created.json()["id"]),
            exam_date=monday + timedelta(days=2),
            start_time=time(9, 0),
            end_time=time(12, 0),
            subject_id=school.subjects["math"].id,
        )
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_duplicate_subject_from_concurrent_request_is_409(
    client: AsyncClient, headers, school, monday, create_exam_timetable, monkeypatch
) -> None:
    math = school.subjects["math"]
    created = await create_exam_timetable(slots=[_exam(math, monday)])
    exam_id = created.json()["id"]
    second = _exam(math, monday + timedelta(days=2))

    # The other request's exam was committed after this one passed its checks
    monkeypatch.setattr(exam_service, "validate_exam_slot", lambda existing, candidate, exclude_id=None: None)
    response = await client.post(f"{BASE}/{exam_id}/slots", json=second, headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DUPLICATE_SUBJECT"

    response = await client.get(f"{BASE}/{exam_id}", headers=headers)
    assert response.json()["slot_count"] == 1
