import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from dataclasses import dataclass
from datetime import date
from typing import AsyncGenerator, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.security import create_access_token
from app.core.models import AcademicUnit, AcademicYear, Subject, Teacher, Tenant
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test, with the core/school schemas attached."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _attach_schemas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("ATTACH DATABASE ':memory:' AS core")
        cursor.execute("ATTACH DATABASE ':memory:' AS school")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@dataclass
class School:
    tenant: Tenant
    year: AcademicYear
    class_a: AcademicUnit
    class_b: AcademicUnit
    subjects: Dict[str, Subject]
    teachers: List[Teacher]


@pytest.fixture()
async def school(db_session: AsyncSession) -> School:
    """One tenant with an active year, two classes, four subjects and three teachers."""
    tenant = Tenant(organization_name="Greenfield School", status="ACTIVE")
    db_session.add(tenant)
    await db_session.flush()

    year = AcademicYear(
        tenant_id=tenant.id,
        name="2025-2026",
        start_date=date(2025, 4, 1),
        end_date=date(2026, 3, 31),
        is_current=True,
        status="ACTIVE",
    )
    db_session.add(year)
    await db_session.flush()

    class_a = AcademicUnit(tenant_id=tenant.id, academic_year_id=year.id, name="Class 10A", unit_type="CLASS", display_order=1)
    class_b = AcademicUnit(tenant_id=tenant.id, academic_year_id=year.id, name="Class 10B", unit_type="CLASS", display_order=2)
    db_session.add_all([class_a, class_b])

    subjects = {
        "math": Subject(tenant_id=tenant.id, name="Mathematics", code="MATH", periods_per_week=6, display_order=1),
        "science": Subject(tenant_id=tenant.id, name="Science", code="SCI", periods_per_week=5, display_order=2),
        "english": Subject(tenant_id=tenant.id, name="English", code="ENG", periods_per_week=1, display_order=3),
        "art": Subject(tenant_id=tenant.id, name="Art", code="ART", display_order=4),
    }
    db_session.add_all(subjects.values())

    teachers = [
        Teacher(tenant_id=tenant.id, full_name="Anita Rao", employee_code="T001", max_periods_per_day=6, max_periods_per_week=30),
        Teacher(tenant_id=tenant.id, full_name="Bilal Khan", employee_code="T002", max_periods_per_day=1, max_periods_per_week=30),
        Teacher(tenant_id=tenant.id, full_name="Chen Li", employee_code="T003"),
    ]
    db_session.add_all(teachers)
    await db_session.commit()

    return School(
        tenant=tenant,
        year=year,
        class_a=class_a,
        class_b=class_b,
        subjects=subjects,
        teachers=teachers,
    )


def auth_headers(school: School, role: str = "ADMIN", permissions=None, academic_year_status: str = "ACTIVE") -> Dict[str, str]:
    token = create_access_token(
        subject={
            "user_id": "7f1c1d2e-3b4a-4c5d-8e9f-0a1b2c3d4e5f",
            "tenant_id": school.tenant.id,
            "role": role,
            "permissions": permissions or {},
            "academic_year_id": school.year.id,
            "academic_year_status": academic_year_status,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers(school: School) -> Dict[str, str]:
    return auth_headers(school)


@pytest.fixture()
def make_headers(school: School):
    def _make(**kwargs) -> Dict[str, str]:
        return auth_headers(school, **kwargs)

    return _make


@pytest.fixture()
def create_template(client: AsyncClient, headers: Dict[str, str]):
    """POST a template; default day is P1, P2, Short Break, P3, P4 on Monday to Friday."""

    async def _create(name: str = "Regular Day", **overrides) -> dict:
        payload = {
            "name": name,
            "periods_per_day": 4,
            "period_duration": 45,
            "working_days": ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"],
        }
        payload.update(overrides)
        response = await client.post("/api/v1/timetable/templates", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture()
def create_timetable(client: AsyncClient, headers: Dict[str, str], school: School):
    async def _create(template_id: str, unit: AcademicUnit = None) -> dict:
        payload = {"template_id": template_id, "academic_unit_id": str((unit or school.class_a).id)}
        response = await client.post("/api/v1/timetable", json=payload, headers=headers)
        assert response.status_code in (200, 201), response.text
        return response.json()

    return _create


@pytest.fixture()
def assign(client: AsyncClient, headers: Dict[str, str]):
    """POST /timetable/slots and return the raw response."""

    async def _assign(timetable_id: str, day: str, period: int, **fields):
        payload = {"timetable_id": timetable_id, "day_of_week": day, "period_number": period}
        for key, value in fields.items():
            payload[key] = str(value) if key.endswith("_id") and value is not None else value
        return await client.post("/api/v1/timetable/slots", json=payload, headers=headers)

    return _assign
