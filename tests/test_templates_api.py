import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_template_generates_timings(client: AsyncClient, headers, create_template) -> None:
    template = await create_template("Weekday", periods_per_day=8, period_duration=45)

    assert template["periods_per_day"] == 8
    timings = template["period_timings"]
    assert len(timings) == 10
    assert timings[0]["start_time"] == "09:00"
    assert timings[0]["end_time"] == "09:45"
    assert [t["name"] for t in timings if t["is_break"]] == ["Short Break", "Lunch Break"]
    assert template["_count"] == {"timetables": 0, "timetable_slots": 0}

    response = await client.get("/api/v1/timetable/templates", headers=headers)
    assert response.status_code == 200
    assert [t["name"] for t in response.json()] == ["Weekday"]


@pytest.mark.asyncio
async def test_generate_timings_preview(client: AsyncClient, headers) -> None:
    response = await client.post(
        "/api/v1/timetable/templates/generate-timings",
        json={"periods_per_day": 5, "period_duration": 40, "start_time": "08:00"},
        headers=headers,
    )
    assert response.status_code == 200
    timings = response.json()
    assert [t["period_number"] for t in timings] == [1, 2, 3, 4, 5, 6, 7]
    assert timings[0]["start_time"] == "08:00"
    assert timings[-1]["end_time"] == "12:20"


@pytest.mark.asyncio
async def test_explicit_timings_and_defaults(client: AsyncClient, headers) -> None:
    payload = {
        "name": "Half Day",
        "period_timings": [
            {"name": "Assembly", "start_time": "08:00", "end_time": "08:15", "is_break": True},
            {"name": "Period 1", "start_time": "08:15", "end_time": "09:00"},
            {"name": "Period 2", "start_time": "09:00", "end_time": "09:45"},
        ],
    }
    response = await client.post("/api/v1/timetable/templates", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["periods_per_day"] == 2
    assert [t["period_number"] for t in data["period_timings"]] == [1, 2, 3]
    assert data["working_days"] == ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY"]


@pytest.mark.asyncio
async def test_invalid_timing_range_rejected(client: AsyncClient, headers) -> None:
    payload = {
        "name": "Broken",
        "period_timings": [{"name": "Period 1", "start_time": "10:00", "end_time": "09:00"}],
    }
    response = await client.post("/api/v1/timetable/templates", json=payload, headers=headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_name_conflicts(client: AsyncClient, headers, create_template) -> None:
    await create_template("Weekday")
    response = await client.post(
        "/api/v1/timetable/templates",
        json={"name": "Weekday", "periods_per_day": 6, "period_duration": 40},
        headers=headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_only_one_default_template(client: AsyncClient, headers, create_template) -> None:
    first = await create_template("First", is_default=True)
    second = await create_template("Second", is_default=True)

    response = await client.get(f"/api/v1/timetable/templates/{first['id']}", headers=headers)
    assert response.json()["is_default"] is False
    response = await client.get(f"/api/v1/timetable/templates/{second['id']}", headers=headers)
    assert response.json()["is_default"] is True


@pytest.mark.asyncio
async def test_delete_template_rejected_while_referenced(
    client: AsyncClient, headers, create_template, create_timetable
) -> None:
    template = await create_template()
    timetable = await create_timetable(template["id"])

    response = await client.delete(f"/api/v1/timetable/templates/{template['id']}", headers=headers)
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["_count"]["timetables"] == 1

    response = await client.delete(f"/api/v1/timetable/{timetable['id']}", headers=headers)
    assert response.status_code == 204
    response = await client.delete(f"/api/v1/timetable/templates/{template['id']}", headers=headers)
    assert response.status_code == 204
    response = await client.get(f"/api/v1/timetable/templates/{template['id']}", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_regenerate_requires_confirmation(client: AsyncClient, headers, create_template) -> None:
    template = await create_template()
    url = f"/api/v1/timetable/templates/{template['id']}/regenerate"

    response = await client.post(url, json={"periods_per_day": 6}, headers=headers)
    assert response.status_code == 400

    response = await client.post(url, json={"periods_per_day": 6, "confirm": True}, headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["periods_per_day"] == 6
    assert len(data["period_timings"]) == 8


@pytest.mark.asyncio
async def test_period_edits(client: AsyncClient, headers, create_template) -> None:
    template = await create_template()
    base = f"/api/v1/timetable/templates/{template['id']}"

    response = await client.post(f"{base}/periods", json={"is_break": False}, headers=headers)
    assert response.status_code == 200
    timings = response.json()["period_timings"]
    assert len(timings) == 6
    assert timings[-1]["name"] == "Period 5"
    assert timings[-1]["start_time"] == timings[-2]["end_time"]

    response = await client.post(f"{base}/periods/3/move", params={"direction": "down"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["period_timings"][3]["name"] == "Short Break"

    response = await client.delete(f"{base}/periods/4", headers=headers)
    assert response.status_code == 200
    timings = response.json()["period_timings"]
    assert [t["period_number"] for t in timings] == [1, 2, 3, 4, 5]
    assert not any(t["is_break"] for t in timings)


@pytest.mark.asyncio
async def test_working_day_change_cannot_orphan_slots(
    client: AsyncClient, headers, school, create_template, create_timetable, assign
) -> None:
    template = await create_template()
    timetable = await create_timetable(template["id"])
    response = await assign(timetable["id"], "FRIDAY", 1, subject_id=school.subjects["math"].id)
    assert response.status_code == 200, response.text

    response = await client.patch(
        f"/api/v1/timetable/templates/{template['id']}",
        json={"working_days": ["MONDAY", "TUESDAY"]},
        headers=headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"]["orphaned_cells"] == [{"day_of_week": "FRIDAY", "period_number": 1}]

    response = await client.patch(
        f"/api/v1/timetable/templates/{template['id']}",
        json={"working_days": ["friday", "monday"], "description": "Short week"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["working_days"] == ["MONDAY", "FRIDAY"]


@pytest.mark.asyncio
async def test_read_only_role_cannot_create(client: AsyncClient, make_headers) -> None:
    viewer = make_headers(role="TEACHER", permissions={"timetable": {"read": True}})
    response = await client.get("/api/v1/timetable/templates", headers=viewer)
    assert response.status_code == 200

    response = await client.post(
        "/api/v1/timetable/templates",
        json={"name": "Nope", "periods_per_day": 4, "period_duration": 45},
        headers=viewer,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_closed_academic_year_is_read_only(client: AsyncClient, make_headers) -> None:
    closed = make_headers(academic_year_status="CLOSED")
    response = await client.post(
        "/api/v1/timetable/templates",
        json={"name": "Late", "periods_per_day": 4, "period_duration": 45},
        headers=closed,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_requires_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/timetable/templates")
    assert response.status_code == 401
