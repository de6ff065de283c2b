import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.api.v1.reference import service as reference_service
from app.api.v1.timetable_templates import service as template_service
from app.api.v1.timetables import service as timetable_service
from app.core.enums import NON_SUBJECT_SLOT_TYPES, TimetableStatus
from app.core.exceptions import ServiceError, SlotConflictError
from app.core.models import Timetable, TimetableSlot

from .conflicts import find_conflicts, list_available_teachers
from .schemas import (
    AvailableTeacher,
    SlotAssign,
    SlotAssignResult,
    SlotRemoveResult,
    SlotResponse,
    TimetableSlotsResponse,
)

logger = logging.getLogger(__name__)

CELL_TAKEN_MESSAGE = "This period was assigned by another request at the same time. Reload and try again."


def _ensure_editable(timetable: Timetable) -> None:
    """Only DRAFT timetables accept slot changes; there is no override for this."""
    if timetable.status != TimetableStatus.DRAFT.value:
        raise ServiceError(
            f"Timetable is {timetable.status}; create a new draft version to make changes",
            status.HTTP_409_CONFLICT,
        )


async def _load_editable(
    db: AsyncSession,
    tenant_id: UUID,
    timetable_id: UUID,
    expected_revision: Optional[int] = None,
) -> Timetable:
    timetable = await timetable_service.load_timetable(db, tenant_id, timetable_id)
    if not timetable:
        raise ServiceError("Timetable not found", status.HTTP_404_NOT_FOUND)
    _ensure_editable(timetable)
    timetable_service.check_revision(timetable, expected_revision)
    return timetable


async def _get_cell(db: AsyncSession, timetable_id: UUID, day_of_week: str, period_number: int) -> Optional[TimetableSlot]:
    result = await db.execute(
        select(TimetableSlot).where(
            TimetableSlot.timetable_id == timetable_id,
            TimetableSlot.day_of_week == day_of_week,
            TimetableSlot.period_number == period_number,
        )
    )
    return result.scalar_one_or_none()


async def _slot_response(db: AsyncSession, slot_id: UUID) -> SlotResponse:
    result = await db.execute(
        select(TimetableSlot)
        .options(*timetable_service.slot_load_options())
        .where(TimetableSlot.id == slot_id)
        .execution_options(populate_existing=True)
    )
    return SlotResponse.model_validate(result.scalar_one())


async def _commit_slot_change(db: AsyncSession, timetable: Timetable) -> None:
    # Any change to the timetable row bumps its revision (version counter)
    timetable.updated_at = datetime.utcnow()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(CELL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT)
    except StaleDataError:
        await db.rollback()
        raise ServiceError(timetable_service.STALE_MESSAGE, status.HTTP_409_CONFLICT)


async def assign_slot(db: AsyncSession, tenant_id: UUID, payload: SlotAssign) -> SlotAssignResult:
    """
    Validate and upsert the cell (timetable, day, period).

    Structural problems (wrong day, unknown period, subject on a break, bad ids) are rejected
    outright. Teacher conflicts are returned as a SlotConflictError unless override_warnings
    is set, in which case the write goes through and the conflicts are reported back.
    """
    timetable = await _load_editable(db, tenant_id, payload.timetable_id, payload.expected_revision)
    template = timetable.template

    if payload.day_of_week not in (template.working_days or []):
        raise ServiceError(
            f"{payload.day_of_week} is not a working day of template {template.name}",
            status.HTTP_400_BAD_REQUEST,
        )
    period = next((p for p in template.period_timings if p.period_number == payload.period_number), None)
    if period is None:
        raise ServiceError(
            f"Period {payload.period_number} does not exist in template {template.name}",
            status.HTTP_400_BAD_REQUEST,
        )
    slot_type = payload.slot_type.value
    if period.is_break and (
        slot_type not in NON_SUBJECT_SLOT_TYPES or payload.subject_id is not None or payload.teacher_id is not None
    ):
        raise ServiceError(
            f"{period.name} is a break; only BREAK or ASSEMBLY without subject or teacher can be placed there",
            status.HTTP_400_BAD_REQUEST,
        )

    if payload.subject_id is not None:
        await reference_service.get_subject(db, tenant_id, payload.subject_id)
    teacher = None
    if payload.teacher_id is not None:
        teacher = await reference_service.get_teacher(db, tenant_id, payload.teacher_id)

    # Held until commit/rollback: no other slot write of this academic year interleaves
    await reference_service.lock_academic_year(db, timetable.academic_year_id)

    conflicts = []
    if teacher is not None:
        conflicts = await find_conflicts(
            db, tenant_id, timetable, payload.day_of_week, payload.period_number, teacher
        )
    if conflicts and not payload.override_warnings:
        raise SlotConflictError([c.model_dump(mode="json") for c in conflicts])

    slot = await _get_cell(db, timetable.id, payload.day_of_week, payload.period_number)
    if slot is None:
        slot = TimetableSlot(
            tenant_id=tenant_id,
            timetable_id=timetable.id,
            template_id=timetable.template_id,
            academic_unit_id=timetable.academic_unit_id,
            day_of_week=payload.day_of_week,
            period_number=payload.period_number,
        )
        db.add(slot)
    slot.slot_type = slot_type
    slot.subject_id = payload.subject_id
    slot.teacher_id = payload.teacher_id
    slot.room = (payload.room or "").strip() or None
    slot.notes = (payload.notes or "").strip() or None

    await _commit_slot_change(db, timetable)

    if conflicts:
        logger.warning(
            "Slot %s %s P%d of timetable %s saved with %d overridden conflict(s): %s",
            slot.id,
            payload.day_of_week,
            payload.period_number,
            timetable.id,
            len(conflicts),
            "; ".join(c.message for c in conflicts),
        )

    return SlotAssignResult(
        slot=await _slot_response(db, slot.id),
        revision=timetable.revision,
        overridden_conflicts=conflicts,
    )


async def remove_slot(
    db: AsyncSession,
    tenant_id: UUID,
    slot_id: UUID,
    expected_revision: Optional[int] = None,
) -> SlotRemoveResult:
    """Delete a slot; its cell renders as empty again."""
    slot = (
        await db.execute(
            select(TimetableSlot).where(TimetableSlot.id == slot_id, TimetableSlot.tenant_id == tenant_id)
        )
    ).scalar_one_or_none()
    if not slot:
        raise ServiceError("Slot not found", status.HTTP_404_NOT_FOUND)
    timetable = await _load_editable(db, tenant_id, slot.timetable_id, expected_revision)
    await db.delete(slot)
    await _commit_slot_change(db, timetable)
    return SlotRemoveResult(id=slot_id, timetable_id=timetable.id, revision=timetable.revision)


async def list_slots(db: AsyncSession, tenant_id: UUID, timetable_id: UUID) -> TimetableSlotsResponse:
    timetable = await timetable_service.load_timetable(db, tenant_id, timetable_id)
    if not timetable:
        raise ServiceError("Timetable not found", status.HTTP_404_NOT_FOUND)
    template = await template_service.get_template(db, tenant_id, timetable.template_id)
    return TimetableSlotsResponse(
        timetable_id=timetable.id,
        status=timetable.status,
        revision=timetable.revision,
        template=template,
        slots=await timetable_service.list_slot_responses(db, timetable.id),
    )


async def available_teachers(
    db: AsyncSession,
    tenant_id: UUID,
    day_of_week: str,
    period_number: int,
    academic_year_id: Optional[UUID] = None,
    timetable_id: Optional[UUID] = None,
) -> List[AvailableTeacher]:
    timetable = None
    if timetable_id is not None:
        timetable = await timetable_service.load_timetable(db, tenant_id, timetable_id)
        if not timetable:
            raise ServiceError("Timetable not found", status.HTTP_404_NOT_FOUND)
        academic_year_id = timetable.academic_year_id
    if academic_year_id is None:
        raise ServiceError("academic_year_id or timetable_id is required", status.HTTP_400_BAD_REQUEST)
    return await list_available_teachers(
        db, tenant_id, academic_year_id, day_of_week, period_number, timetable=timetable
    )
