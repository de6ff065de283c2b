"""Timetable templates: reusable day structures (period timings + working days)."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, require_writable_academic_year
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AppendPeriodRequest,
    GenerateTimingsRequest,
    PeriodTimingData,
    RegenerateTimingsRequest,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/timetable/templates", tags=["timetable-templates"])


@router.post(
    "/generate-timings",
    response_model=List[PeriodTimingData],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def generate_timings(payload: GenerateTimingsRequest):
    """Preview the default period/break timings for the given parameters (nothing is saved)."""
    try:
        return service.generate_timings_preview(payload)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "",
    response_model=List[TemplateResponse],
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def list_templates(
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_templates(db, current_user.tenant_id, active_only=active_only)


@router.post(
    "",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("timetable", "create")), Depends(require_writable_academic_year)],
)
async def create_template(
    payload: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_template(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.get(
    "/{template_id}",
    response_model=TemplateResponse,
    dependencies=[Depends(check_permission("timetable", "read"))],
)
async def get_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    obj = await service.get_template(db, current_user.tenant_id, template_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return obj


@router.patch(
    "/{template_id}",
    response_model=TemplateResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def update_template(
    template_id: UUID,
    payload: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_template(db, current_user.tenant_id, template_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.post(
    "/{template_id}/regenerate",
    response_model=TemplateResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def regenerate_template_timings(
    template_id: UUID,
    payload: RegenerateTimingsRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Destructive: rebuilds timings from periods_per_day / period_duration. Requires confirm=true."""
    try:
        return await service.regenerate_timings(db, current_user.tenant_id, template_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.post(
    "/{template_id}/periods",
    response_model=TemplateResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def append_period(
    template_id: UUID,
    payload: AppendPeriodRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.append_template_period(db, current_user.tenant_id, template_id, payload)
    except ServiceError as e:
        raise e.to_http()


@router.delete(
    "/{template_id}/periods/{period_number}",
    response_model=TemplateResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def remove_period(
    template_id: UUID,
    period_number: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.remove_template_period(db, current_user.tenant_id, template_id, period_number)
    except ServiceError as e:
        raise e.to_http()


@router.post(
    "/{template_id}/periods/{period_number}/move",
    response_model=TemplateResponse,
    dependencies=[Depends(check_permission("timetable", "update")), Depends(require_writable_academic_year)],
)
async def move_period(
    template_id: UUID,
    period_number: int,
    direction: str = Query(..., pattern="^(up|down)$"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.move_template_period(db, current_user.tenant_id, template_id, period_number, direction)
    except ServiceError as e:
        raise e.to_http()


@router.delete(
    "/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("timetable", "delete")), Depends(require_writable_academic_year)],
)
async def delete_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        deleted = await service.delete_template(db, current_user.tenant_id, template_id)
    except ServiceError as e:
        raise e.to_http()
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
