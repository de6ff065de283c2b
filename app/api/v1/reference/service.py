from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.core.models import AcademicUnit, AcademicYear, Subject, Teacher

from .schemas import AcademicUnitItem, AcademicYearItem, SubjectItem, TeacherItem


async def list_academic_years(db: AsyncSession, tenant_id: UUID) -> List[AcademicYearItem]:
    result = await db.execute(
        select(AcademicYear).where(AcademicYear.tenant_id == tenant_id).order_by(AcademicYear.start_date.desc())
    )
    return [AcademicYearItem.model_validate(ay) for ay in result.scalars().all()]


async def list_academic_units(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: Optional[UUID] = None,
    parent_id: Optional[UUID] = None,
    active_only: bool = True,
) -> List[AcademicUnitItem]:
    stmt = select(AcademicUnit).where(AcademicUnit.tenant_id == tenant_id)
    if academic_year_id is not None:
        stmt = stmt.where(AcademicUnit.academic_year_id == academic_year_id)
    if parent_id is not None:
        stmt = stmt.where(AcademicUnit.parent_id == parent_id)
    if active_only:
        stmt = stmt.where(AcademicUnit.is_active.is_(True))
    stmt = stmt.order_by(AcademicUnit.display_order, AcademicUnit.name)
    result = await db.execute(stmt)
    return [AcademicUnitItem.model_validate(u) for u in result.unique().scalars().all()]


async def list_subjects(db: AsyncSession, tenant_id: UUID, active_only: bool = True) -> List[SubjectItem]:
    stmt = select(Subject).where(Subject.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(Subject.is_active.is_(True))
    result = await db.execute(stmt.order_by(Subject.display_order, Subject.name))
    return [SubjectItem.model_validate(s) for s in result.scalars().all()]


async def list_teachers(db: AsyncSession, tenant_id: UUID, active_only: bool = True) -> List[TeacherItem]:
    stmt = select(Teacher).where(Teacher.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(Teacher.is_active.is_(True))
    result = await db.execute(stmt.order_by(Teacher.full_name))
    return [TeacherItem.model_validate(t) for t in result.scalars().all()]


# --- Foreign-key resolution used by the timetable engines ---


async def get_academic_unit(db: AsyncSession, tenant_id: UUID, unit_id: UUID) -> AcademicUnit:
    unit = await db.get(AcademicUnit, unit_id)
    if not unit or unit.tenant_id != tenant_id or not unit.is_active:
        raise ServiceError("Invalid class/section", status.HTTP_400_BAD_REQUEST)
    return unit


async def get_active_academic_year(db: AsyncSession, tenant_id: UUID, academic_year_id: UUID) -> AcademicYear:
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay or ay.tenant_id != tenant_id:
        raise ServiceError("Invalid academic year", status.HTTP_400_BAD_REQUEST)
    if ay.status != "ACTIVE":
        raise ServiceError("Cannot modify schedules of a CLOSED academic year", status.HTTP_400_BAD_REQUEST)
    return ay


async def get_subject(db: AsyncSession, tenant_id: UUID, subject_id: UUID) -> Subject:
    subj = await db.get(Subject, subject_id)
    if not subj or subj.tenant_id != tenant_id or not subj.is_active:
        raise ServiceError("Invalid subject", status.HTTP_400_BAD_REQUEST)
    return subj


async def get_teacher(db: AsyncSession, tenant_id: UUID, teacher_id: UUID) -> Teacher:
    teacher = await db.get(Teacher, teacher_id)
    if not teacher or teacher.tenant_id != tenant_id or not teacher.is_active:
        raise ServiceError("Invalid teacher", status.HTTP_400_BAD_REQUEST)
    return teacher


async def lock_academic_year(db: AsyncSession, academic_year_id: UUID) -> Optional[AcademicYear]:
    """Row lock on the academic year; serialises timetable writes of that year until commit/rollback."""
    result = await db.execute(
        select(AcademicYear).where(AcademicYear.id == academic_year_id).with_for_update()
    )
    return result.scalar_one_or_none()
