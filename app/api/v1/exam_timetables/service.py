import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.reference import service as reference_service
from app.core.config import settings
from app.core.enums import ExamSlotErrorCode, ExamTimetableStatus
from app.core.exceptions import ExamSlotError, ServiceError
from app.core.models import ExamSlot, ExamTimetable, Subject
from app.core.schemas import normalize_weekdays

from .scheduler import exam_dates, is_off_day, sort_exam_slots, validate_exam_slot
from .schemas import (
    ExamDate,
    ExamSlotData,
    ExamSlotResponse,
    ExamTimetableCreate,
    ExamTimetableResponse,
    ExamTimetableSummary,
    ExamTimetableUpdate,
    ScheduledExam,
)

logger = logging.getLogger(__name__)


def _summary_fields(et: ExamTimetable, slot_count: int) -> dict:
    return dict(
        id=et.id,
        academic_year_id=et.academic_year_id,
        academic_unit_id=et.academic_unit_id,
        section_id=et.section_id,
        exam_name=et.exam_name,
        description=et.description,
        start_date=et.start_date,
        end_date=et.end_date,
        weekly_off_days=list(et.weekly_off_days or []),
        status=et.status,
        created_by=et.created_by,
        published_at=et.published_at,
        published_by=et.published_by,
        slot_count=slot_count,
        created_at=et.created_at,
        updated_at=et.updated_at,
    )


def _to_response(et: ExamTimetable) -> ExamTimetableResponse:
    slots = sorted(et.slots, key=lambda s: s.slot_order)
    return ExamTimetableResponse(
        **_summary_fields(et, len(slots)),
        slots=[ExamSlotResponse.model_validate(s) for s in slots],
    )


async def _load(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    lock: bool = False,
) -> Optional[ExamTimetable]:
    stmt = (
        select(ExamTimetable)
        .options(
            selectinload(ExamTimetable.slots).selectinload(ExamSlot.subject),
            selectinload(ExamTimetable.slots).selectinload(ExamSlot.supervisor),
        )
        .where(ExamTimetable.id == exam_timetable_id, ExamTimetable.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        # Held until commit: slot checks and the write of one exam timetable run one at a time
        stmt = stmt.with_for_update(of=ExamTimetable)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _load_or_404(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    lock: bool = False,
) -> ExamTimetable:
    et = await _load(db, tenant_id, exam_timetable_id, lock=lock)
    if not et:
        raise ServiceError("Exam timetable not found", status.HTTP_404_NOT_FOUND)
    return et


def _ensure_draft(et: ExamTimetable) -> None:
    if et.status != ExamTimetableStatus.DRAFT.value:
        raise ServiceError(
            "Exam timetable is published and can no longer be changed",
            status.HTTP_409_CONFLICT,
        )


def _scheduled(slot: ExamSlot) -> ScheduledExam:
    return ScheduledExam(
        id=slot.id,
        subject_id=slot.subject_id,
        subject_name=slot.subject.name if slot.subject else str(slot.subject_id),
        exam_date=slot.exam_date,
        start_time=slot.start_time,
        end_time=slot.end_time,
    )


async def _check_slot(
    db: AsyncSession,
    tenant_id: UUID,
    start_date: date,
    end_date: date,
    off_days: Sequence[str],
    data: ExamSlotData,
    slot_id: Optional[UUID] = None,
) -> ScheduledExam:
    """Field-level checks (400). Returns the slot in the shape the overlap rules compare."""
    if data.end_time <= data.start_time:
        raise ServiceError("end_time must be after start_time", status.HTTP_400_BAD_REQUEST)
    if data.max_marks <= 0:
        raise ServiceError("max_marks must be greater than 0", status.HTTP_400_BAD_REQUEST)
    if data.min_marks < 0 or data.min_marks > data.max_marks:
        raise ServiceError("min_marks must be between 0 and max_marks", status.HTTP_400_BAD_REQUEST)
    if data.exam_date < start_date or data.exam_date > end_date:
        raise ServiceError(
            f"Exam date {data.exam_date.isoformat()} is outside {start_date.isoformat()} - {end_date.isoformat()}",
            status.HTTP_400_BAD_REQUEST,
        )
    if is_off_day(data.exam_date, off_days):
        raise ServiceError(
            f"Exam date {data.exam_date.isoformat()} falls on a weekly off day",
            status.HTTP_400_BAD_REQUEST,
        )
    subject: Subject = await reference_service.get_subject(db, tenant_id, data.subject_id)
    if data.supervisor_id is not None:
        await reference_service.get_teacher(db, tenant_id, data.supervisor_id)
    return ScheduledExam(
        id=slot_id,
        subject_id=subject.id,
        subject_name=subject.name,
        exam_date=data.exam_date,
        start_time=data.start_time,
        end_time=data.end_time,
    )


def _raise_if_invalid(existing: Sequence[ScheduledExam], candidate: ScheduledExam, exclude_id: Optional[UUID] = None) -> None:
    issue = validate_exam_slot(existing, candidate, exclude_id=exclude_id)
    if issue is not None:
        raise ExamSlotError(issue.code.value, issue.message, issue.details)


async def _commit_slot_change(db: AsyncSession, data: ExamSlotData) -> None:
    try:
        await db.commit()
    except IntegrityError:
        # uq_exam_slot_timetable_subject: the same subject was added by a concurrent request
        await db.rollback()
        raise ExamSlotError(
            ExamSlotErrorCode.DUPLICATE_SUBJECT.value,
            "This subject is already scheduled in this exam timetable",
            {"subject_id": str(data.subject_id)},
        )


def _apply_slot(slot: ExamSlot, data: ExamSlotData) -> None:
    slot.exam_date = data.exam_date
    slot.start_time = data.start_time
    slot.end_time = data.end_time
    slot.subject_id = data.subject_id
    slot.max_marks = data.max_marks
    slot.min_marks = data.min_marks
    slot.supervisor_id = data.supervisor_id
    slot.room = (data.room or "").strip() or None
    slot.instructions = (data.instructions or "").strip() or None


async def _check_scope(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: UUID,
    academic_unit_id: UUID,
    section_id: Optional[UUID],
) -> None:
    await reference_service.get_active_academic_year(db, tenant_id, academic_year_id)
    unit = await reference_service.get_academic_unit(db, tenant_id, academic_unit_id)
    if unit.academic_year_id != academic_year_id:
        raise ServiceError("Class does not belong to this academic year", status.HTTP_400_BAD_REQUEST)
    if section_id is not None:
        section = await reference_service.get_academic_unit(db, tenant_id, section_id)
        if section.parent_id != unit.id:
            raise ServiceError("Invalid section for this class", status.HTTP_400_BAD_REQUEST)


def _check_date_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ServiceError("end_date must be on or after start_date", status.HTTP_400_BAD_REQUEST)


def _publish(et: ExamTimetable, user_id: UUID) -> None:
    if not et.slots:
        raise ServiceError("Add at least one exam before publishing", status.HTTP_400_BAD_REQUEST)
    et.status = ExamTimetableStatus.PUBLISHED.value
    et.published_at = datetime.utcnow()
    et.published_by = user_id


async def create_exam_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    payload: ExamTimetableCreate,
    user_id: UUID,
) -> ExamTimetableResponse:
    """
    Create the header and every submitted exam in one go.
    Each exam is checked against the ones submitted before it; the first failure rejects the request.
    """
    await _check_scope(db, tenant_id, payload.academic_year_id, payload.academic_unit_id, payload.section_id)
    _check_date_range(payload.start_date, payload.end_date)
    off_days = payload.weekly_off_days if payload.weekly_off_days is not None else normalize_weekdays(
        settings.exam_off_days
    )

    accepted: List[ScheduledExam] = []
    for index, data in enumerate(payload.slots, start=1):
        try:
            candidate = await _check_slot(db, tenant_id, payload.start_date, payload.end_date, off_days, data)
            _raise_if_invalid(accepted, candidate)
        except ServiceError as e:
            e.message = f"Exam {index}: {e.message}"
            raise
        accepted.append(candidate)

    et = ExamTimetable(
        tenant_id=tenant_id,
        academic_year_id=payload.academic_year_id,
        academic_unit_id=payload.academic_unit_id,
        section_id=payload.section_id,
        exam_name=payload.exam_name.strip(),
        description=(payload.description or "").strip() or None,
        start_date=payload.start_date,
        end_date=payload.end_date,
        weekly_off_days=off_days,
        status=ExamTimetableStatus.DRAFT.value,
        created_by=user_id,
    )
    for data in payload.slots:
        slot = ExamSlot()
        _apply_slot(slot, data)
        et.slots.append(slot)
    sort_exam_slots(et.slots)
    if payload.status == ExamTimetableStatus.PUBLISHED:
        _publish(et, user_id)

    db.add(et)
    await db.commit()
    if et.status == ExamTimetableStatus.PUBLISHED.value:
        logger.info("Exam timetable %s (%s) created as published with %d exams", et.id, et.exam_name, len(et.slots))
    return _to_response(await _load(db, tenant_id, et.id))


async def list_exam_timetables(
    db: AsyncSession,
    tenant_id: UUID,
    academic_year_id: Optional[UUID] = None,
    academic_unit_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
) -> List[ExamTimetableSummary]:
    stmt = select(ExamTimetable).where(ExamTimetable.tenant_id == tenant_id)
    if academic_year_id is not None:
        stmt = stmt.where(ExamTimetable.academic_year_id == academic_year_id)
    if academic_unit_id is not None:
        stmt = stmt.where(ExamTimetable.academic_unit_id == academic_unit_id)
    if status_filter is not None:
        stmt = stmt.where(ExamTimetable.status == status_filter)
    stmt = stmt.order_by(ExamTimetable.start_date.desc(), ExamTimetable.created_at.desc())
    rows = (await db.execute(stmt)).scalars().all()

    counts: Dict[UUID, int] = {}
    if rows:
        count_rows = await db.execute(
            select(ExamSlot.exam_timetable_id, func.count(ExamSlot.id))
            .where(ExamSlot.exam_timetable_id.in_([r.id for r in rows]))
            .group_by(ExamSlot.exam_timetable_id)
        )
        counts = {eid: n for eid, n in count_rows.all()}
    return [ExamTimetableSummary(**_summary_fields(r, counts.get(r.id, 0))) for r in rows]


async def get_exam_timetable(db: AsyncSession, tenant_id: UUID, exam_timetable_id: UUID) -> Optional[ExamTimetableResponse]:
    et = await _load(db, tenant_id, exam_timetable_id)
    return _to_response(et) if et else None


async def update_exam_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    payload: ExamTimetableUpdate,
) -> ExamTimetableResponse:
    et = await _load_or_404(db, tenant_id, exam_timetable_id, lock=True)
    _ensure_draft(et)

    start_date = payload.start_date or et.start_date
    end_date = payload.end_date or et.end_date
    off_days = payload.weekly_off_days if payload.weekly_off_days is not None else list(et.weekly_off_days or [])
    _check_date_range(start_date, end_date)
    for slot in et.slots:
        if slot.exam_date < start_date or slot.exam_date > end_date or is_off_day(slot.exam_date, off_days):
            subject_name = slot.subject.name if slot.subject else str(slot.subject_id)
            raise ServiceError(
                f"{subject_name} on {slot.exam_date.isoformat()} would no longer be a valid exam date",
                status.HTTP_400_BAD_REQUEST,
            )

    if "section_id" in payload.model_fields_set:
        await _check_scope(db, tenant_id, et.academic_year_id, et.academic_unit_id, payload.section_id)
        et.section_id = payload.section_id
    if payload.exam_name is not None:
        et.exam_name = payload.exam_name.strip()
    if payload.description is not None:
        et.description = payload.description.strip() or None
    et.start_date = start_date
    et.end_date = end_date
    et.weekly_off_days = off_days

    await db.commit()
    return _to_response(await _load(db, tenant_id, et.id))


async def get_exam_dates(db: AsyncSession, tenant_id: UUID, exam_timetable_id: UUID) -> List[ExamDate]:
    et = await _load_or_404(db, tenant_id, exam_timetable_id)
    return exam_dates(et.start_date, et.end_date, et.weekly_off_days or [])


async def schedule_exam(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    data: ExamSlotData,
) -> ExamTimetableResponse:
    """Add one exam to a DRAFT exam timetable; slots are re-ordered by date and time."""
    et = await _load_or_404(db, tenant_id, exam_timetable_id, lock=True)
    _ensure_draft(et)
    candidate = await _check_slot(db, tenant_id, et.start_date, et.end_date, et.weekly_off_days or [], data)
    _raise_if_invalid([_scheduled(s) for s in et.slots], candidate)

    slot = ExamSlot()
    _apply_slot(slot, data)
    et.slots.append(slot)
    sort_exam_slots(et.slots)
    await _commit_slot_change(db, data)
    return _to_response(await _load(db, tenant_id, et.id))


async def update_exam_slot(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    slot_id: UUID,
    data: ExamSlotData,
) -> ExamTimetableResponse:
    et = await _load_or_404(db, tenant_id, exam_timetable_id, lock=True)
    _ensure_draft(et)
    slot = next((s for s in et.slots if s.id == slot_id), None)
    if slot is None:
        raise ServiceError("Exam slot not found", status.HTTP_404_NOT_FOUND)
    candidate = await _check_slot(
        db, tenant_id, et.start_date, et.end_date, et.weekly_off_days or [], data, slot_id=slot.id
    )
    _raise_if_invalid([_scheduled(s) for s in et.slots], candidate, exclude_id=slot.id)

    _apply_slot(slot, data)
    sort_exam_slots(et.slots)
    await _commit_slot_change(db, data)
    return _to_response(await _load(db, tenant_id, et.id))


async def delete_exam_slot(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    slot_id: UUID,
) -> ExamTimetableResponse:
    et = await _load_or_404(db, tenant_id, exam_timetable_id, lock=True)
    _ensure_draft(et)
    slot = next((s for s in et.slots if s.id == slot_id), None)
    if slot is None:
        raise ServiceError("Exam slot not found", status.HTTP_404_NOT_FOUND)
    et.slots.remove(slot)
    sort_exam_slots(et.slots)
    await db.commit()
    return _to_response(await _load(db, tenant_id, et.id))


async def publish_exam_timetable(
    db: AsyncSession,
    tenant_id: UUID,
    exam_timetable_id: UUID,
    user_id: UUID,
) -> ExamTimetableResponse:
    et = await _load_or_404(db, tenant_id, exam_timetable_id, lock=True)
    if et.status == ExamTimetableStatus.PUBLISHED.value:
        raise ServiceError("Exam timetable is already published", status.HTTP_400_BAD_REQUEST)
    _publish(et, user_id)
    await db.commit()
    logger.info("Published exam timetable %s (%s) with %d exams", et.id, et.exam_name, len(et.slots))
    return _to_response(await _load(db, tenant_id, et.id))


async def delete_exam_timetable(db: AsyncSession, tenant_id: UUID, exam_timetable_id: UUID) -> bool:
    et = await _load(db, tenant_id, exam_timetable_id)
    if not et:
        return False
    if et.start_date <= date.today():
        raise ServiceError(
            "Cannot delete an exam timetable once the exams have started",
            status.HTTP_400_BAD_REQUEST,
        )
    await db.delete(et)
    await db.commit()
    logger.info("Deleted exam timetable %s (%s)", et.id, et.exam_name)
    return True
