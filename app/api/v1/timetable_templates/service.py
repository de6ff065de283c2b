import logging
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.core.enums import NON_SUBJECT_SLOT_TYPES
from app.core.exceptions import ServiceError
from app.core.models import PeriodTiming, Timetable, TimetableSlot, TimetableTemplate
from app.core.schemas import parse_time_24

from . import timings as timing_ops
from .schemas import (
    AppendPeriodRequest,
    GenerateTimingsRequest,
    PeriodTimingData,
    PeriodTimingResponse,
    RegenerateTimingsRequest,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
    TemplateUsage,
)

logger = logging.getLogger(__name__)


def _timing_data(pt: PeriodTiming) -> PeriodTimingData:
    return PeriodTimingData(
        period_number=pt.period_number,
        name=pt.name,
        start_time=pt.start_time,
        end_time=pt.end_time,
        is_break=pt.is_break,
    )


def _to_response(t: TimetableTemplate, usage: Optional[TemplateUsage] = None) -> TemplateResponse:
    return TemplateResponse(
        id=t.id,
        tenant_id=t.tenant_id,
        name=t.name,
        description=t.description,
        periods_per_day=t.periods_per_day,
        period_duration=t.period_duration,
        working_days=list(t.working_days or []),
        is_default=t.is_default,
        is_active=t.is_active,
        period_timings=[
            PeriodTimingResponse(id=pt.id, **_timing_data(pt).model_dump())
            for pt in sorted(t.period_timings, key=lambda p: p.period_number)
        ],
        usage=usage or TemplateUsage(),
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _generate(periods_per_day: int, period_duration: int, start=None) -> List[PeriodTimingData]:
    start = start or parse_time_24(settings.default_day_start)
    try:
        return timing_ops.generate_default_timings(periods_per_day, period_duration, start.hour, start.minute)
    except ValueError as e:
        raise ServiceError(str(e), status.HTTP_400_BAD_REQUEST)


def generate_timings_preview(payload: GenerateTimingsRequest) -> List[PeriodTimingData]:
    """Default timings for the given parameters; nothing is stored."""
    return _generate(payload.periods_per_day, payload.period_duration, payload.start_time)


async def _usage(db: AsyncSession, template_ids: Sequence[UUID]) -> Dict[UUID, TemplateUsage]:
    usage = {tid: TemplateUsage() for tid in template_ids}
    if not template_ids:
        return usage
    tt_rows = await db.execute(
        select(Timetable.template_id, func.count(Timetable.id))
        .where(Timetable.template_id.in_(template_ids))
        .group_by(Timetable.template_id)
    )
    for tid, n in tt_rows.all():
        usage[tid].timetables = n
    slot_rows = await db.execute(
        select(TimetableSlot.template_id, func.count(TimetableSlot.id))
        .where(TimetableSlot.template_id.in_(template_ids))
        .group_by(TimetableSlot.template_id)
    )
    for tid, n in slot_rows.all():
        usage[tid].timetable_slots = n
    return usage


async def load_template(db: AsyncSession, tenant_id: UUID, template_id: UUID) -> Optional[TimetableTemplate]:
    """Template with its period timings loaded (tenant-scoped)."""
    result = await db.execute(
        select(TimetableTemplate)
        .options(selectinload(TimetableTemplate.period_timings))
        .where(TimetableTemplate.id == template_id, TimetableTemplate.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_or_404(db: AsyncSession, tenant_id: UUID, template_id: UUID) -> TimetableTemplate:
    template = await load_template(db, tenant_id, template_id)
    if not template:
        raise ServiceError("Template not found", status.HTTP_404_NOT_FOUND)
    return template


async def _response(db: AsyncSession, template: TimetableTemplate) -> TemplateResponse:
    usage = await _usage(db, [template.id])
    return _to_response(template, usage[template.id])


async def _ensure_name_free(db: AsyncSession, tenant_id: UUID, name: str, exclude_id: Optional[UUID] = None) -> None:
    stmt = select(TimetableTemplate.id).where(
        TimetableTemplate.tenant_id == tenant_id,
        TimetableTemplate.name == name,
    )
    if exclude_id is not None:
        stmt = stmt.where(TimetableTemplate.id != exclude_id)
    if (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None:
        raise ServiceError("A template with this name already exists", status.HTTP_409_CONFLICT)


async def _clear_default(db: AsyncSession, tenant_id: UUID) -> None:
    await db.execute(
        update(TimetableTemplate)
        .where(TimetableTemplate.tenant_id == tenant_id, TimetableTemplate.is_default.is_(True))
        .values(is_default=False)
    )


async def _ensure_no_orphaned_slots(
    db: AsyncSession,
    template_id: UUID,
    working_days: Sequence[str],
    periods: Sequence[PeriodTimingData],
) -> None:
    """Reject a day-structure change that would strand existing slots on missing days, periods or breaks."""
    result = await db.execute(
        select(TimetableSlot.day_of_week, TimetableSlot.period_number, TimetableSlot.slot_type)
        .where(TimetableSlot.template_id == template_id)
        .distinct()
    )
    by_number = {p.period_number: p for p in periods}
    orphans: List[Tuple[str, int]] = []
    for day, number, slot_type in result.all():
        period = by_number.get(number)
        if (
            day not in working_days
            or period is None
            or (period.is_break and slot_type not in NON_SUBJECT_SLOT_TYPES)
        ):
            orphans.append((day, number))
    if orphans:
        orphans.sort()
        raise ServiceError(
            "Change would orphan existing timetable slots",
            status.HTTP_409_CONFLICT,
            details={"orphaned_cells": [{"day_of_week": d, "period_number": n} for d, n in orphans]},
        )


def _set_timings(template: TimetableTemplate, periods: Sequence[PeriodTimingData]) -> None:
    template.period_timings = [
        PeriodTiming(
            period_number=p.period_number,
            name=p.name,
            start_time=p.start_time,
            end_time=p.end_time,
            is_break=p.is_break,
        )
        for p in periods
    ]
    template.periods_per_day = sum(1 for p in periods if not p.is_break)


async def _commit(db: AsyncSession, template: TimetableTemplate) -> TemplateResponse:
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Template could not be saved (name conflict)", status.HTTP_409_CONFLICT)
    fresh = await load_template(db, template.tenant_id, template.id)
    return await _response(db, fresh)


async def list_templates(db: AsyncSession, tenant_id: UUID, active_only: bool = False) -> List[TemplateResponse]:
    stmt = (
        select(TimetableTemplate)
        .options(selectinload(TimetableTemplate.period_timings))
        .where(TimetableTemplate.tenant_id == tenant_id)
    )
    if active_only:
        stmt = stmt.where(TimetableTemplate.is_active.is_(True))
    stmt = stmt.order_by(TimetableTemplate.created_at.desc())
    templates = (await db.execute(stmt)).scalars().all()
    usage = await _usage(db, [t.id for t in templates])
    return [_to_response(t, usage[t.id]) for t in templates]


async def get_template(db: AsyncSession, tenant_id: UUID, template_id: UUID) -> Optional[TemplateResponse]:
    template = await load_template(db, tenant_id, template_id)
    return await _response(db, template) if template else None


async def create_template(db: AsyncSession, tenant_id: UUID, payload: TemplateCreate) -> TemplateResponse:
    name = payload.name.strip()
    await _ensure_name_free(db, tenant_id, name)

    period_duration = payload.period_duration or settings.default_period_duration
    if payload.period_timings:
        periods = timing_ops.renumber_periods(payload.period_timings)
    else:
        periods = _generate(
            payload.periods_per_day or settings.default_periods_per_day,
            period_duration,
            payload.start_time,
        )

    if payload.is_default:
        await _clear_default(db, tenant_id)

    template = TimetableTemplate(
        tenant_id=tenant_id,
        name=name,
        description=(payload.description or "").strip() or None,
        period_duration=period_duration,
        working_days=payload.working_days or list(settings.default_working_days),
        is_default=payload.is_default,
        is_active=payload.is_active,
    )
    _set_timings(template, periods)
    db.add(template)
    return await _commit(db, template)


async def update_template(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    payload: TemplateUpdate,
) -> TemplateResponse:
    template = await _load_or_404(db, tenant_id, template_id)

    if payload.name is not None and payload.name.strip() != template.name:
        await _ensure_name_free(db, tenant_id, payload.name.strip(), exclude_id=template.id)
        template.name = payload.name.strip()
    if payload.description is not None:
        template.description = payload.description.strip() or None
    if payload.period_duration is not None:
        template.period_duration = payload.period_duration
    if payload.is_active is not None:
        template.is_active = payload.is_active
    if payload.is_default is True:
        await _clear_default(db, tenant_id)
        template.is_default = True
    elif payload.is_default is False:
        template.is_default = False

    if payload.working_days is not None or payload.period_timings is not None:
        working_days = payload.working_days if payload.working_days is not None else list(template.working_days)
        if payload.period_timings is not None:
            periods = timing_ops.renumber_periods(payload.period_timings)
        else:
            periods = [_timing_data(pt) for pt in template.period_timings]
        await _ensure_no_orphaned_slots(db, template.id, working_days, periods)
        template.working_days = working_days
        if payload.period_timings is not None:
            _set_timings(template, periods)
    elif payload.periods_per_day is not None:
        # Without new timings the count only matters for a later regenerate
        template.periods_per_day = payload.periods_per_day

    return await _commit(db, template)


async def regenerate_timings(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    payload: RegenerateTimingsRequest,
) -> TemplateResponse:
    """Discard the template's timings and rebuild them from periods_per_day / period_duration."""
    if not payload.confirm:
        raise ServiceError(
            "Regenerating discards all edited period timings; resubmit with confirm=true",
            status.HTTP_400_BAD_REQUEST,
        )
    template = await _load_or_404(db, tenant_id, template_id)
    period_duration = payload.period_duration or template.period_duration
    periods = _generate(payload.periods_per_day or template.periods_per_day, period_duration, payload.start_time)
    await _ensure_no_orphaned_slots(db, template.id, list(template.working_days), periods)
    template.period_duration = period_duration
    _set_timings(template, periods)
    logger.info("Regenerated timings of template %s (%d rows)", template.id, len(periods))
    return await _commit(db, template)


async def _edit_periods(db: AsyncSession, template: TimetableTemplate, edit) -> TemplateResponse:
    current = [_timing_data(pt) for pt in sorted(template.period_timings, key=lambda p: p.period_number)]
    try:
        periods = edit(current)
    except ValueError as e:
        raise ServiceError(str(e), status.HTTP_400_BAD_REQUEST)
    await _ensure_no_orphaned_slots(db, template.id, list(template.working_days), periods)
    _set_timings(template, periods)
    return await _commit(db, template)


async def append_template_period(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    payload: AppendPeriodRequest,
) -> TemplateResponse:
    template = await _load_or_404(db, tenant_id, template_id)
    if payload.duration is not None:
        duration = payload.duration
    else:
        duration = timing_ops.SHORT_BREAK_MINUTES if payload.is_break else template.period_duration
    day_start = parse_time_24(settings.default_day_start)
    return await _edit_periods(
        db,
        template,
        lambda periods: timing_ops.append_period(
            periods,
            payload.is_break,
            period_duration=duration,
            break_duration=duration,
            name=payload.name,
            day_start=day_start,
        ),
    )


async def remove_template_period(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    period_number: int,
) -> TemplateResponse:
    template = await _load_or_404(db, tenant_id, template_id)
    return await _edit_periods(db, template, lambda periods: timing_ops.remove_period(periods, period_number))


async def move_template_period(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    period_number: int,
    direction: str,
) -> TemplateResponse:
    template = await _load_or_404(db, tenant_id, template_id)
    return await _edit_periods(
        db, template, lambda periods: timing_ops.move_period(periods, period_number, direction)
    )


async def delete_template(db: AsyncSession, tenant_id: UUID, template_id: UUID) -> bool:
    template = await load_template(db, tenant_id, template_id)
    if not template:
        return False
    usage = (await _usage(db, [template.id]))[template.id]
    if usage.timetables > 0 or usage.timetable_slots > 0:
        raise ServiceError(
            "Cannot delete template that has timetables. Delete the timetables first.",
            status.HTTP_409_CONFLICT,
            details={"_count": usage.model_dump()},
        )
    await db.delete(template)
    await db.commit()
    logger.info("Deleted timetable template %s (%s)", template.id, template.name)
    return True
