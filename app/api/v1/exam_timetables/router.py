"""Exam timetables: dated exam papers for one class, validated for duplicate subjects and overlaps."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import ExamTimetableStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    ExamDate,
    ExamSlotData,
    ExamTimetableCreate,
    ExamTimetableResponse,
    ExamTimetableSummary,
    ExamTimetableUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/exams/timetable", tags=["exam-timetables"])


@router.post(
    "",
    response_model=ExamTimetableResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("exams", "create")), Depends(require_writable_academic_year)],
)
async def create_exam_timetable(
    payload: ExamTimetableCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create an exam timetable with its exams. Nothing is saved if any exam is invalid."""
    try:
        return await service.create_exam_timetable(db, current_user.tenant_id, payload, current_user.id)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "",
    response_model=List[ExamTimetableSummary],
    dependencies=[Depends(check_permission("exams", "read"))],
)
async def list_exam_timetables(
    academic_year_id: Optional[UUID] = Query(None),
    academic_unit_id: Optional[UUID] = Query(None),
    status_filter: Optional[ExamTimetableStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_exam_timetables(
        db,
        current_user.tenant_id,
        academic_year_id=academic_year_id,
        academic_unit_id=academic_unit_id,
        status_filter=status_filter.value if status_filter else None,
    )


@router.get(
    "/{exam_timetable_id}",
    response_model=ExamTimetableResponse,
    dependencies=[Depends(check_permission("exams", "read"))],
)
async def get_exam_timetable(
    exam_timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    obj = await service.get_exam_timetable(db, current_user.tenant_id, exam_timetable_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exam timetable not found")
    return obj


@router.put(
    "/{exam_timetable_id}",
    response_model=ExamTimetableResponse,
    dependencies=[Depends(check_permission("exams", "update")), Depends(require_writable_academic_year)],
)
async def update_exam_timetable(
    exam_timetable_id: UUID,
    payload: ExamTimetableUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_exam_timetable(db, current_user.tenant_id, exam_timetable_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "/{exam_timetable_id}/dates",
    response_model=List[ExamDate],
    dependencies=[Depends(check_permission("exams", "read"))],
)
async def get_exam_dates(
    exam_timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Every date of the exam window; weekly off days are flagged is_holiday."""
    try:
        return await service.get_exam_dates(db, current_user.tenant_id, exam_timetable_id)
    except ServiceError as e:
        raise e.to_http()


@router.post(
    "/{exam_timetable_id}/slots",
    response_model=ExamTimetableResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("exams", "update")), Depends(require_writable_academic_year)],
)
async def schedule_exam(
    exam_timetable_id: UUID,
    payload: ExamSlotData,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.schedule_exam(db, current_user.tenant_id, exam_timetable_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.put(
    "/{exam_timetable_id}/slots/{slot_id}",
    response_model=ExamTimetableResponse,
    dependencies=[Depends(check_permission("exams", "update")), Depends(require_writable_academic_year)],
)
async def update_exam_slot(
    exam_timetable_id: UUID,
    slot_id: UUID,
    payload: ExamSlotData,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_exam_slot(db, current_user.tenant_id, exam_timetable_id, slot_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.delete(
    "/{exam_timetable_id}/slots/{slot_id}",
    response_model=ExamTimetableResponse,
    dependencies=[Depends(check_permission("exams", "update")), Depends(require_writable_academic_year)],
)
async def delete_exam_slot(
    exam_timetable_id: UUID,
    slot_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.delete_exam_slot(db, current_user.tenant_id, exam_timetable_id, slot_id)
    except ServiceError as e:
        raise e.to_http()


@router.post(
    "/{exam_timetable_id}/publish",
    response_model=ExamTimetableResponse,
    dependencies=[Depends(check_permission("exams", "update")), Depends(require_writable_academic_year)],
)
async def publish_exam_timetable(
    exam_timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.publish_exam_timetable(db, current_user.tenant_id, exam_timetable_id, current_user.id)
    except ServiceError as e:
        raise e.to_http()


@router.delete(
    "/{exam_timetable_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("exams", "delete")), Depends(require_writable_academic_year)],
)
async def delete_exam_timetable(
    exam_timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        deleted = await service.delete_exam_timetable(db, current_user.tenant_id, exam_timetable_id)
    except ServiceError as e:
        raise e.to_http()
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exam timetable not found")
