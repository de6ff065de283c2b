"""Read-only reference data the timetable engines validate foreign keys against."""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class AcademicYearItem(BaseModel):
    id: UUID
    name: str
    start_date: date
    end_date: date
    is_current: bool
    status: str

    class Config:
        from_attributes = True


class AcademicUnitItem(BaseModel):
    id: UUID
    academic_year_id: UUID
    parent_id: Optional[UUID] = None
    name: str
    display_name: str
    unit_type: str
    display_order: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True


class SubjectItem(BaseModel):
    id: UUID
    name: str
    code: str
    color: Optional[str] = None
    periods_per_week: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True


class TeacherItem(BaseModel):
    id: UUID
    full_name: str
    employee_code: Optional[str] = None
    max_periods_per_day: Optional[int] = None
    max_periods_per_week: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True
