import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.api.v1.reference import service as reference_service
from app.api.v1.timetable_slots.schemas import SlotResponse, SubjectBrief
from app.api.v1.timetable_templates import service as template_service
from app.core.enums import WEEKDAY_ORDER, SlotType, TimetableStatus
from app.core.exceptions import ServiceError
from app.core.models import PeriodTiming, Subject, Timetable, TimetableSlot, TimetableTemplate

from .export import build_timetable_workbook
from .grid import build_grid
from .schemas import (
    AcademicUnitBrief,
    ClassTimetableResponse,
    SubjectDistributionItem,
    TeacherScheduleItem,
    TimetableCreate,
    TimetableCreateResult,
    TimetableDetail,
    TimetableSummary,
    TimetableUpdate,
)

logger = logging.getLogger(__name__)

STALE_MESSAGE = "Timetable was modified by another request. Reload and try again."

# Allowed status changes; anything else is rejected
STATUS_TRANSITIONS = {
    TimetableStatus.DRAFT.value: {TimetableStatus.PUBLISHED.value, TimetableStatus.ARCHIVED.value},
    TimetableStatus.PUBLISHED.value: {TimetableStatus.ARCHIVED.value},
    TimetableStatus.ARCHIVED.value: {TimetableStatus.PUBLISHED.value},
}


def day_sort_key(day: str) -> int:
    return WEEKDAY_ORDER.index(day) if day in WEEKDAY_ORDER else len(WEEKDAY_ORDER)


def slot_load_options():
    return (selectinload(TimetableSlot.subject), selectinload(TimetableSlot.teacher))


async def load_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
) -> Optional[Timetable]:
    """Timetable with its template timings and academic unit loaded (tenant-scoped)."""
    stmt = (
        select(Timetable)
        .options(
            selectinload(Timetable.template).selectinload(TimetableTemplate.period_timings),
            selectinload(Timetable.academic_unit),
        )
        .where(Timetable.id == timetable_id, Timetable.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _load_or_404(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> Timetable:
    timetable = await load_timetable(db, tenant_id, timetable_id)
    if not timetable:
        raise ServiceError("Timetable not found", status.HTTP_404_NOT_FOUND)
    return timetable


def check_revision(timetable: Timetable, expected_revision: Optional[int]) -> None:
    if expected_revision is not None and expected_revision != timetable.revision:
        raise ServiceError(
            STALE_MESSAGE,
            status.HTTP_409_CONFLICT,
            details={"current_revision": timetable.revision},
        )


async def _slot_counts(db: AsyncSession, timetable_ids: Sequence[UUID]) -> Dict[UUID, int]:
    if not timetable_ids:
        return {}
    result = await db.execute(
        select(TimetableSlot.timetable_id, func.count(TimetableSlot.id))
        .where(TimetableSlot.timetable_id.in_(timetable_ids))
        .group_by(TimetableSlot.timetable_id)
    )
    return {tid: n for tid, n in result.all()}


def _summary_fields(t: Timetable, slot_count: int) -> dict:
    return dict(
        id=t.id,
        template_id=t.template_id,
        template_name=t.template.name,
        academic_unit=AcademicUnitBrief.model_validate(t.academic_unit),
        academic_year_id=t.academic_year_id,
        version=t.version,
        status=t.status,
        notes=t.notes,
        effective_from=t.effective_from,
        effective_to=t.effective_to,
        published_at=t.published_at,
        published_by=t.published_by,
        revision=t.revision,
        slot_count=slot_count,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


async def list_slot_responses(db: AsyncSession, timetable_id: UUID) -> List[SlotResponse]:
    """Slots of one timetable ordered by (day, period)."""
    result = await db.execute(
        select(TimetableSlot)
        .options(*slot_load_options())
        .where(TimetableSlot.timetable_id == timetable_id)
        .execution_options(populate_existing=True)
    )
    slots = sorted(result.scalars().all(), key=lambda s: (day_sort_key(s.day_of_week), s.period_number))
    return [SlotResponse.model_validate(s) for s in slots]


async def build_detail(db: AsyncSession, timetable: Timetable) -> TimetableDetail:
    template = await template_service.get_template(db, timetable.tenant_id, timetable.template_id)
    slots = await list_slot_responses(db, timetable.id)
    grid = build_grid(template.working_days, template.period_timings, slots)
    return TimetableDetail(
        **_summary_fields(timetable, len(slots)),
        template=template,
        slots=slots,
        grid=grid,
    )


async def _next_version(db: AsyncSession, academic_unit_id: UUID) -> int:
    latest = (
        await db.execute(select(func.max(Timetable.version)).where(Timetable.academic_unit_id == academic_unit_id))
    ).scalar_one_or_none()
    return (latest or 0) + 1


async def create_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    payload: TimetableCreate,
) -> TimetableCreateResult:
    """Create a DRAFT for (template, unit), or return the DRAFT that already exists for that pair."""
    template = await template_service.load_template(db, tenant_id, payload.template_id)
    if not template or not template.is_active:
        raise ServiceError("Invalid template", status.HTTP_400_BAD_REQUEST)
    unit = await reference_service.get_academic_unit(db, tenant_id, payload.academic_unit_id)
    await reference_service.get_active_academic_year(db, tenant_id, unit.academic_year_id)
    # Held until commit: create-or-fetch and version numbering of the year run one at a time
    await reference_service.lock_academic_year(db, unit.academic_year_id)

    existing = (
        await db.execute(
            select(Timetable.id)
            .where(
                Timetable.tenant_id == tenant_id,
                Timetable.template_id == template.id,
                Timetable.academic_unit_id == unit.id,
                Timetable.status == TimetableStatus.DRAFT.value,
            )
            .order_by(Timetable.version.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if existing is not None:
        timetable = await load_timetable(db, tenant_id, existing)
        counts = await _slot_counts(db, [timetable.id])
        return TimetableCreateResult(**_summary_fields(timetable, counts.get(timetable.id, 0)), is_existing=True)

    timetable = Timetable(
        tenant_id=tenant_id,
        template_id=template.id,
        academic_unit_id=unit.id,
        academic_year_id=unit.academic_year_id,
        version=await _next_version(db, unit.id),
        status=TimetableStatus.DRAFT.value,
        notes=(payload.notes or "").strip() or None,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
    )
    db.add(timetable)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Another timetable version was created for this class at the same time. Try again.",
            status.HTTP_409_CONFLICT,
        )
    timetable = await load_timetable(db, tenant_id, timetable.id)
    return TimetableCreateResult(**_summary_fields(timetable, 0), is_existing=False)


async def list_timetables(
    db: AsyncSession,
    tenant_id: UUID,
    academic_unit_id: Optional[UUID] = None,
    template_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    academic_year_id: Optional[UUID] = None,
) -> List[TimetableSummary]:
    stmt = (
        select(Timetable)
        .options(selectinload(Timetable.template), selectinload(Timetable.academic_unit))
        .where(Timetable.tenant_id == tenant_id)
    )
    if academic_unit_id is not None:
        stmt = stmt.where(Timetable.academic_unit_id == academic_unit_id)
    if template_id is not None:
        stmt = stmt.where(Timetable.template_id == template_id)
    if status_filter is not None:
        stmt = stmt.where(Timetable.status == status_filter)
    if academic_year_id is not None:
        stmt = stmt.where(Timetable.academic_year_id == academic_year_id)
    stmt = stmt.order_by(Timetable.created_at.desc(), Timetable.version.desc())
    timetables = (await db.execute(stmt)).scalars().all()
    counts = await _slot_counts(db, [t.id for t in timetables])
    return [TimetableSummary(**_summary_fields(t, counts.get(t.id, 0))) for t in timetables]


async def get_timetable_detail(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> Optional[TimetableDetail]:
    timetable = await load_timetable(db, tenant_id, timetable_id)
    if not timetable:
        return None
    return await build_detail(db, timetable)


async def _archive_other_published(db: AsyncSession, timetable: Timetable) -> List[Timetable]:
    result = await db.execute(
        select(Timetable).where(
            Timetable.tenant_id == timetable.tenant_id,
            Timetable.academic_unit_id == timetable.academic_unit_id,
            Timetable.academic_year_id == timetable.academic_year_id,
            Timetable.status == TimetableStatus.PUBLISHED.value,
            Timetable.id != timetable.id,
        )
    )
    archived = list(result.scalars().all())
    for other in archived:
        other.status = TimetableStatus.ARCHIVED.value
    return archived


async def update_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    payload: TimetableUpdate,
    user_id: UUID,
) -> TimetableDetail:
    timetable = await _load_or_404(db, tenant_id, timetable_id)
    check_revision(timetable, payload.expected_revision)

    fields = payload.model_fields_set
    effective_from = payload.effective_from if "effective_from" in fields else timetable.effective_from
    effective_to = payload.effective_to if "effective_to" in fields else timetable.effective_to
    if effective_from and effective_to and effective_to < effective_from:
        raise ServiceError("effective_to must be on or after effective_from", status.HTTP_400_BAD_REQUEST)

    archived: List[Timetable] = []
    new_status = payload.status.value if payload.status is not None else None
    if new_status == timetable.status:
        new_status = None
    if new_status is not None:
        if new_status not in STATUS_TRANSITIONS.get(timetable.status, set()):
            raise ServiceError(
                f"Cannot change timetable status from {timetable.status} to {new_status}",
                status.HTTP_400_BAD_REQUEST,
            )
        if new_status == TimetableStatus.PUBLISHED.value:
            await reference_service.get_active_academic_year(db, tenant_id, timetable.academic_year_id)
            await reference_service.lock_academic_year(db, timetable.academic_year_id)
            archived = await _archive_other_published(db, timetable)
            timetable.published_at = datetime.utcnow()
            timetable.published_by = user_id
        timetable.status = new_status

    if "notes" in fields:
        timetable.notes = (payload.notes or "").strip() or None
    timetable.effective_from = effective_from
    timetable.effective_to = effective_to

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ServiceError(STALE_MESSAGE, status.HTTP_409_CONFLICT)

    if new_status == TimetableStatus.PUBLISHED.value and archived:
        logger.info(
            "Published timetable %s (v%d); archived %s",
            timetable.id,
            timetable.version,
            ", ".join(f"{t.id} (v{t.version})" for t in archived),
        )
    elif new_status is not None:
        logger.info("Timetable %s status is now %s", timetable.id, timetable.status)

    timetable = await load_timetable(db, tenant_id, timetable_id)
    return await build_detail(db, timetable)


async def delete_timetable(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> bool:
    result = await db.execute(
        select(Timetable)
        .options(selectinload(Timetable.slots))
        .where(Timetable.id == timetable_id, Timetable.tenant_id == tenant_id)
    )
    timetable = result.scalar_one_or_none()
    if not timetable:
        return False
    if timetable.status == TimetableStatus.PUBLISHED.value:
        raise ServiceError(
            "Cannot delete a published timetable. Archive it first.",
            status.HTTP_409_CONFLICT,
        )
    await db.delete(timetable)
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise ServiceError(STALE_MESSAGE, status.HTTP_409_CONFLICT)
    logger.info("Deleted timetable %s (v%d, %d slots)", timetable.id, timetable.version, len(timetable.slots))
    return True


async def get_class_timetable(db: AsyncSession, tenant_id: UUID, academic_unit_id: UUID) -> ClassTimetableResponse:
    """The published timetable of an academic unit, or a message when there is none."""
    unit = await reference_service.get_academic_unit(db, tenant_id, academic_unit_id)
    published_id = (
        await db.execute(
            select(Timetable.id)
            .where(
                Timetable.tenant_id == tenant_id,
                Timetable.academic_unit_id == unit.id,
                Timetable.status == TimetableStatus.PUBLISHED.value,
            )
            .order_by(Timetable.version.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    brief = AcademicUnitBrief.model_validate(unit)
    if published_id is None:
        return ClassTimetableResponse(academic_unit=brief, timetable=None, message="No published timetable for this class")
    timetable = await load_timetable(db, tenant_id, published_id)
    return ClassTimetableResponse(academic_unit=brief, timetable=await build_detail(db, timetable))


async def get_teacher_schedule(
    db: AsyncSession,
    tenant_id: UUID,
    teacher_id: UUID,
    academic_year_id: UUID,
    day_of_week: Optional[str] = None,
) -> List[TeacherScheduleItem]:
    """A teacher's slots across the PUBLISHED timetables of one academic year, in (day, start time) order."""
    await reference_service.get_teacher(db, tenant_id, teacher_id)
    stmt = (
        select(TimetableSlot, PeriodTiming)
        .join(Timetable, TimetableSlot.timetable_id == Timetable.id)
        .outerjoin(
            PeriodTiming,
            and_(
                PeriodTiming.template_id == Timetable.template_id,
                PeriodTiming.period_number == TimetableSlot.period_number,
            ),
        )
        .options(*slot_load_options(), selectinload(TimetableSlot.academic_unit))
        .where(
            TimetableSlot.tenant_id == tenant_id,
            TimetableSlot.teacher_id == teacher_id,
            Timetable.academic_year_id == academic_year_id,
            Timetable.status == TimetableStatus.PUBLISHED.value,
        )
    )
    if day_of_week is not None:
        stmt = stmt.where(TimetableSlot.day_of_week == day_of_week)
    rows: List[Tuple[TimetableSlot, Optional[PeriodTiming]]] = list((await db.execute(stmt)).all())
    rows.sort(key=lambda r: (day_sort_key(r[0].day_of_week), r[0].period_number))
    return [
        TeacherScheduleItem(
            slot=SlotResponse.model_validate(slot),
            timetable_id=slot.timetable_id,
            academic_unit=AcademicUnitBrief.model_validate(slot.academic_unit),
            start_time=period.start_time if period else None,
            end_time=period.end_time if period else None,
            period_name=period.name if period else None,
        )
        for slot, period in rows
    ]


def distribution_status(required: Optional[int], scheduled: int) -> str:
    if required is None:
        return "OK"
    if scheduled < required:
        return "UNDER"
    if scheduled > required:
        return "OVER"
    return "OK"


async def subject_distribution(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
) -> List[SubjectDistributionItem]:
    """Scheduled REGULAR periods per subject against the subject's weekly requirement."""
    await _load_or_404(db, tenant_id, timetable_id)
    count_rows = await db.execute(
        select(TimetableSlot.subject_id, func.count(TimetableSlot.id))
        .where(
            TimetableSlot.timetable_id == timetable_id,
            TimetableSlot.slot_type == SlotType.REGULAR.value,
            TimetableSlot.subject_id.is_not(None),
        )
        .group_by(TimetableSlot.subject_id)
    )
    scheduled = {sid: n for sid, n in count_rows.all()}

    subjects_result = await db.execute(
        select(Subject)
        .where(
            Subject.tenant_id == tenant_id,
            (Subject.is_active.is_(True)) | (Subject.id.in_(list(scheduled.keys()))),
        )
        .order_by(Subject.display_order, Subject.name)
    )
    return [
        SubjectDistributionItem(
            subject=SubjectBrief.model_validate(s),
            required=s.periods_per_week,
            scheduled=scheduled.get(s.id, 0),
            status=distribution_status(s.periods_per_week, scheduled.get(s.id, 0)),
        )
        for s in subjects_result.scalars().all()
    ]


async def export_timetable(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> Tuple[str, bytes]:
    timetable = await _load_or_404(db, tenant_id, timetable_id)
    detail = await build_detail(db, timetable)
    unit_name = "".join(ch if ch.isalnum() else "_" for ch in detail.academic_unit.display_name)
    filename = f"timetable_{unit_name}_v{detail.version}.xlsx"
    return filename, build_timetable_workbook(detail)
