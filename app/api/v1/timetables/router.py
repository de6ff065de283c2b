"""Versioned weekly timetables per academic unit: lifecycle, grid views and export."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import DayOfWeek, TimetableStatus
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    ClassTimetableResponse,
    SubjectDistributionItem,
    TeacherScheduleItem,
    TimetableCreate,
    TimetableCreateResult,
    TimetableDetail,
    TimetableSummary,
    TimetableUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/timetable", tags=["timetables"])


@router.post(
    "",
    response_model=TimetableCreateResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def create_timetable(
    payload: TimetableCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Create a DRAFT version. If a DRAFT already exists for this template and class it is returned (200)."""
    try:
        result = await service.create_timetable(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise e.to_http()
    if result.is_existing:
        response.status_code = status.HTTP_200_OK
    return result


@router.get(
    "",
    response_model=List[TimetableSummary],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_timetables(
    academic_unit_id: Optional[UUID] = Query(None),
    template_id: Optional[UUID] = Query(None),
    status_filter: Optional[TimetableStatus] = Query(None, alias="status"),
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_timetables(
        db,
        current_user.tenant_id,
        academic_unit_id=academic_unit_id,
        template_id=template_id,
        status_filter=status_filter.value if status_filter else None,
        academic_year_id=academic_year_id,
    )


@router.get(
    "/class/{academic_unit_id}",
    response_model=ClassTimetableResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_class_timetable(
    academic_unit_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Currently published timetable of a class or section."""
    try:
        return await service.get_class_timetable(db, current_user.tenant_id, academic_unit_id)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "/teacher/{teacher_id}/schedule",
    response_model=List[TeacherScheduleItem],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_teacher_schedule(
    teacher_id: UUID,
    academic_year_id: Optional[UUID] = Query(None, description="Defaults to the session's academic year"),
    day_of_week: Optional[DayOfWeek] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    year_id = academic_year_id or current_user.academic_year_id
    if year_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="academic_year_id is required")
    try:
        return await service.get_teacher_schedule(
            db,
            current_user.tenant_id,
            teacher_id,
            year_id,
            day_of_week=day_of_week.value if day_of_week else None,
        )
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "/{timetable_id}",
    response_model=TimetableDetail,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    obj = await service.get_timetable_detail(db, current_user.tenant_id, timetable_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")
    return obj


@router.patch(
    "/{timetable_id}",
    response_model=TimetableDetail,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def update_timetable(
    timetable_id: UUID,
    payload: TimetableUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Edit notes / effective dates or change status. Publishing archives the class's previous published version."""
    try:
        return await service.update_timetable(db, current_user.tenant_id, timetable_id, payload, current_user.id)
    except ServiceError as e:
        raise e.to_http()


@router.delete(
    "/{timetable_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable", "delete")), Depends(require_writable_academic_year)],
)
async def delete_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        deleted = await service.delete_timetable(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise e.to_http()
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")


@router.get(
    "/{timetable_id}/subject-distribution",
    response_model=List[SubjectDistributionItem],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_subject_distribution(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.subject_distribution(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "/{timetable_id}/export",
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def export_timetable(
    timetable_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Download the timetable grid as an Excel workbook."""
    try:
        filename, content = await service.export_timetable(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise e.to_http()
    return Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
