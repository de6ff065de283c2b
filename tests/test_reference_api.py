import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import AcademicUnit, Subject, Tenant


@pytest.mark.asyncio
async def test_reference_lists(client: AsyncClient, headers, school) -> None:
    response = await client.get("/api/v1/academic-years", headers=headers)
    assert response.status_code == 200
    assert [(y["name"], y["status"]) for y in response.json()] == [("2025-2026", "ACTIVE")]

    response = await client.get("/api/v1/subjects", headers=headers)
    assert [s["code"] for s in response.json()] == ["MATH", "SCI", "ENG", "ART"]

    response = await client.get("/api/v1/teachers", headers=headers)
    assert [t["full_name"] for t in response.json()] == ["Anita Rao", "Bilal Khan", "Chen Li"]


@pytest.mark.asyncio
async def test_sections_carry_parent_name(
    client: AsyncClient, headers, school, db_session: AsyncSession
) -> None:
    section = AcademicUnit(
        tenant_id=school.tenant.id,
        academic_year_id=school.year.id,
        parent_id=school.class_a.id,
        name="A",
        unit_type="SECTION",
    )
    db_session.add(section)
    await db_session.commit()

    response = await client.get(
        "/api/v1/academic-units", params={"parent_id": str(school.class_a.id)}, headers=headers
    )
    assert response.status_code == 200
    assert [u["display_name"] for u in response.json()] == ["Class 10A - A"]


@pytest.mark.asyncio
async def test_other_tenants_are_invisible(
    client: AsyncClient, headers, school, db_session: AsyncSession
) -> None:
    other = Tenant(organization_name="Riverside Academy", status="ACTIVE")
    db_session.add(other)
    await db_session.flush()
    db_session.add(Subject(tenant_id=other.id, name="Music", code="MUS"))
    await db_session.commit()

    response = await client.get("/api/v1/subjects", headers=headers)
    assert "MUS" not in [s["code"] for s in response.json()]


@pytest.mark.asyncio
async def test_reference_needs_permission(client: AsyncClient, make_headers) -> None:
    response = await client.get("/api/v1/teachers", headers=make_headers(role="TEACHER"))
    assert response.status_code == 403

    allowed = make_headers(role="TEACHER", permissions={"reference": {"read": True}})
    response = await client.get("/api/v1/teachers", headers=allowed)
    assert response.status_code == 200
