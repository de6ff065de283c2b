"""Reference data API: academic years, academic units, subjects, teachers (read-only)."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.db.session import get_db

from .schemas import AcademicUnitItem, AcademicYearItem, SubjectItem, TeacherItem
from . import service

router = APIRouter(prefix="/api/v1", tags=["reference"])


@router.get(
    "/academic-years",
    response_model=List[AcademicYearItem],
    dependencies=[Depends(check_permission("reference", "read"))],
)
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_academic_years(db, current_user.tenant_id)


@router.get(
    "/academic-units",
    response_model=List[AcademicUnitItem],
    dependencies=[Depends(check_permission("reference", "read"))],
)
async def list_academic_units(
    academic_year_id: Optional[UUID] = Query(None),
    parent_id: Optional[UUID] = Query(None),
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_academic_units(
        db,
        current_user.tenant_id,
        academic_year_id=academic_year_id or current_user.academic_year_id,
        parent_id=parent_id,
        active_only=active_only,
    )


@router.get(
    "/subjects",
    response_model=List[SubjectItem],
    dependencies=[Depends(check_permission("reference", "read"))],
)
async def list_subjects(
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_subjects(db, current_user.tenant_id, active_only=active_only)


@router.get(
    "/teachers",
    response_model=List[TeacherItem],
    dependencies=[Depends(check_permission("reference", "read"))],
)
async def list_teachers(
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.list_teachers(db, current_user.tenant_id, active_only=active_only)
