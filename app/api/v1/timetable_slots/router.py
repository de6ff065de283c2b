"""Timetable cells: upsert with conflict detection, removal, listing and teacher availability."""

from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import DayOfWeek
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import AvailableTeacher, SlotAssign, SlotAssignResult, SlotRemoveResult, TimetableSlotsResponse
from . import service

router = APIRouter(prefix="/api/v1/timetable/slots", tags=["timetable-slots"])


@router.post(
    "",
    response_model=SlotAssignResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def assign_slot(
    payload: SlotAssign,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Create or overwrite the slot at (timetable_id, day_of_week, period_number).
    On teacher conflicts returns 409 with requires_confirmation=true and the conflict list;
    resubmit with override_warnings=true to save anyway.
    """
    try:
        return await service.assign_slot(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.delete(
    "",
    response_model=SlotRemoveResult,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def remove_slot(
    id: UUID = Query(..., description="Slot id"),
    expected_revision: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.remove_slot(db, current_user.tenant_id, id, expected_revision)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "",
    response_model=Union[TimetableSlotsResponse, List[AvailableTeacher]],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_slots(
    timetable_id: Optional[UUID] = Query(None),
    get_available_teachers: bool = Query(False),
    day_of_week: Optional[DayOfWeek] = Query(None),
    period_number: Optional[int] = Query(None, ge=1),
    academic_year_id: Optional[UUID] = Query(None, description="Defaults to the session's academic year"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Slots of a timetable (timetable_id), or with get_available_teachers=true the active teachers
    free at (day_of_week, period_number) with their current load.
    """
    try:
        if get_available_teachers:
            if day_of_week is None or period_number is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="day_of_week and period_number are required",
                )
            return await service.available_teachers(
                db,
                current_user.tenant_id,
                day_of_week.value,
                period_number,
                academic_year_id=academic_year_id or current_user.academic_year_id,
                timetable_id=timetable_id,
            )
        if timetable_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="timetable_id is required")
        return await service.list_slots(db, current_user.tenant_id, timetable_id)
    except ServiceError as e:
        raise e.to_http()
