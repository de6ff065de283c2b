"""
Teacher double-booking and workload checks.

A teacher is busy at (day, period) when a slot in another academic unit's DRAFT or PUBLISHED
timetable of the same academic year already holds them there. Workload counts the teacher's
slots in those timetables plus the timetable being edited, minus the cell being overwritten.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import ConflictType, TimetableStatus
from app.core.models import Teacher, Timetable, TimetableSlot

from .schemas import AvailableTeacher, Conflict, TeacherLimits, TeacherLoad

SCHEDULED_STATUSES = (TimetableStatus.DRAFT.value, TimetableStatus.PUBLISHED.value)


def _peer_scope(tenant_id: UUID, academic_year_id: UUID, exclude_unit_id: Optional[UUID]):
    scope = and_(
        Timetable.tenant_id == tenant_id,
        Timetable.academic_year_id == academic_year_id,
        Timetable.status.in_(SCHEDULED_STATUSES),
    )
    if exclude_unit_id is not None:
        scope = and_(scope, Timetable.academic_unit_id != exclude_unit_id)
    return scope


def _load_scope(
    tenant_id: UUID,
    academic_year_id: UUID,
    timetable: Optional[Timetable],
    exclude_cell: Optional[Tuple[str, int]],
):
    if timetable is None:
        return _peer_scope(tenant_id, academic_year_id, None)
    own = TimetableSlot.timetable_id == timetable.id
    if exclude_cell is not None:
        day, period = exclude_cell
        own = and_(own, not_(and_(TimetableSlot.day_of_week == day, TimetableSlot.period_number == period)))
    return or_(_peer_scope(tenant_id, academic_year_id, timetable.academic_unit_id), own)


async def busy_slots(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day_of_week: str,
    period_number: int,
    exclude_unit_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
) -> List[TimetableSlot]:
    """Slots already holding a teacher at (day, period) in other units' scheduled timetables."""
    stmt = (
        select(TimetableSlot)
        .join(Timetable, TimetableSlot.timetable_id == Timetable.id)
        .options(
            selectinload(TimetableSlot.subject),
            selectinload(TimetableSlot.teacher),
            selectinload(TimetableSlot.academic_unit),
        )
        .where(
            _peer_scope(tenant_id, academic_year_id, exclude_unit_id),
            TimetableSlot.day_of_week == day_of_week,
            TimetableSlot.period_number == period_number,
            TimetableSlot.teacher_id.is_not(None),
        )
    )
    if teacher_id is not None:
        stmt = stmt.where(TimetableSlot.teacher_id == teacher_id)
    return list((await db.execute(stmt)).scalars().all())


async def teacher_loads(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day_of_week: str,
    timetable: Optional[Timetable] = None,
    exclude_cell: Optional[Tuple[str, int]] = None,
    teacher_ids: Optional[Sequence[UUID]] = None,
) -> Dict[UUID, TeacherLoad]:
    """Periods held per teacher on day_of_week (daily) and across the week (weekly)."""
    stmt = (
        select(TimetableSlot.teacher_id, TimetableSlot.day_of_week, func.count(TimetableSlot.id))
        .join(Timetable, TimetableSlot.timetable_id == Timetable.id)
        .where(
            _load_scope(tenant_id, academic_year_id, timetable, exclude_cell),
            TimetableSlot.teacher_id.is_not(None),
        )
        .group_by(TimetableSlot.teacher_id, TimetableSlot.day_of_week)
    )
    if teacher_ids is not None:
        stmt = stmt.where(TimetableSlot.teacher_id.in_(list(teacher_ids)))
    loads: Dict[UUID, TeacherLoad] = {}
    for tid, day, n in (await db.execute(stmt)).all():
        load = loads.setdefault(tid, TeacherLoad())
        load.weekly += n
        if day == day_of_week:
            load.daily += n
    return loads


def _over_limit(load: TeacherLoad, teacher: Teacher) -> bool:
    if teacher.max_periods_per_day is not None and load.daily >= teacher.max_periods_per_day:
        return True
    if teacher.max_periods_per_week is not None and load.weekly >= teacher.max_periods_per_week:
        return True
    return False


async def find_conflicts(
    db: AsyncSession,
    tenant_id: UUID,
    timetable: Timetable,
    day_of_week: str,
    period_number: int,
    teacher: Teacher,
) -> List[Conflict]:
    """Every conflict of placing teacher at (day, period) of timetable; empty when the placement is clean."""
    conflicts: List[Conflict] = []

    for other in await busy_slots(
        db,
        tenant_id,
        timetable.academic_year_id,
        day_of_week,
        period_number,
        exclude_unit_id=timetable.academic_unit_id,
        teacher_id=teacher.id,
    ):
        class_name = other.academic_unit.display_name
        subject_name = other.subject.name if other.subject else other.slot_type.title()
        conflicts.append(
            Conflict(
                type=ConflictType.TEACHER_BUSY,
                message=f"Teacher is already assigned to {class_name} for {subject_name} at this time",
                details={
                    "timetable_id": str(other.timetable_id),
                    "slot_id": str(other.id),
                    "class_name": class_name,
                    "subject_name": subject_name,
                    "teacher_name": teacher.full_name,
                },
            )
        )

    load = (
        await teacher_loads(
            db,
            tenant_id,
            timetable.academic_year_id,
            day_of_week,
            timetable=timetable,
            exclude_cell=(day_of_week, period_number),
            teacher_ids=[teacher.id],
        )
    ).get(teacher.id, TeacherLoad())
    if teacher.max_periods_per_day is not None and load.daily >= teacher.max_periods_per_day:
        conflicts.append(
            Conflict(
                type=ConflictType.WORKLOAD_EXCEEDED,
                message=(
                    f"{teacher.full_name} already has {load.daily} periods on {day_of_week.title()} "
                    f"(max {teacher.max_periods_per_day})"
                ),
                details={"scope": "daily", "current": load.daily, "max": teacher.max_periods_per_day},
            )
        )
    if teacher.max_periods_per_week is not None and load.weekly >= teacher.max_periods_per_week:
        conflicts.append(
            Conflict(
                type=ConflictType.WORKLOAD_EXCEEDED,
                message=(
                    f"{teacher.full_name} already has {load.weekly} periods this week "
                    f"(max {teacher.max_periods_per_week})"
                ),
                details={"scope": "weekly", "current": load.weekly, "max": teacher.max_periods_per_week},
            )
        )
    return conflicts


async def list_available_teachers(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    day_of_week: str,
    period_number: int,
    timetable: Optional[Timetable] = None,
) -> List[AvailableTeacher]:
    """Active teachers free at (day, period) and under their limits. Advisory; the write re-checks."""
    exclude_unit_id = timetable.academic_unit_id if timetable is not None else None
    busy = {
        s.teacher_id
        for s in await busy_slots(
            db, tenant_id, academic_year_id, day_of_week, period_number, exclude_unit_id=exclude_unit_id
        )
    }
    loads = await teacher_loads(
        db,
        tenant_id,
        academic_year_id,
        day_of_week,
        timetable=timetable,
        exclude_cell=(day_of_week, period_number) if timetable is not None else None,
    )
    teachers = (
        await db.execute(
            select(Teacher)
            .where(Teacher.tenant_id == tenant_id, Teacher.is_active.is_(True))
            .order_by(Teacher.full_name)
        )
    ).scalars().all()

    available: List[AvailableTeacher] = []
    for t in teachers:
        if t.id in busy:
            continue
        load = loads.get(t.id, TeacherLoad())
        if _over_limit(load, t):
            continue
        available.append(
            AvailableTeacher(
                id=t.id,
                full_name=t.full_name,
                employee_code=t.employee_code,
                current_load=load,
                max_load=TeacherLimits(daily=t.max_periods_per_day, weekly=t.max_periods_per_week),
            )
        )
    return available
