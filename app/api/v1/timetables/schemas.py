from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, model_validator

from app.api.v1.timetable_slots.schemas import SlotResponse, SubjectBrief
from app.api.v1.timetable_templates.schemas import TemplateResponse
from app.core.enums import TimetableStatus
from app.core.schemas import format_time_24


class TimetableCreate(BaseModel):
    template_id: UUID
    academic_unit_id: UUID
    notes: Optional[str] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    @model_validator(mode="after")
    def check_effective_range(self) -> "TimetableCreate":
        if self.effective_from and self.effective_to and self.effective_to < self.effective_from:
            raise ValueError("effective_to must be on or after effective_from")
        return self


class TimetableUpdate(BaseModel):
    status: Optional[TimetableStatus] = None
    notes: Optional[str] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    expected_revision: Optional[int] = Field(None, ge=1)


class AcademicUnitBrief(BaseModel):
    id: UUID
    name: str
    display_name: str
    unit_type: str

    class Config:
        from_attributes = True


class TimetableSummary(BaseModel):
    id: UUID
    template_id: UUID
    template_name: str
    academic_unit: AcademicUnitBrief
    academic_year_id: UUID
    version: int
    status: str
    notes: Optional[str] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    published_at: Optional[datetime] = None
    published_by: Optional[UUID] = None
    revision: int
    slot_count: int = 0
    created_at: datetime
    updated_at: datetime


class TimetableCreateResult(TimetableSummary):
    is_existing: bool = False


class GridCell(BaseModel):
    period_number: int
    name: str
    start_time: time
    end_time: time
    is_break: bool
    slot: Optional[SlotResponse] = None
    is_empty: bool

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        return format_time_24(t)


class GridRow(BaseModel):
    day_of_week: str
    cells: List[GridCell]


class TimetableGrid(BaseModel):
    days: List[GridRow]
    orphans: List[SlotResponse] = Field(default_factory=list)


class TimetableDetail(TimetableSummary):
    template: TemplateResponse
    slots: List[SlotResponse]
    grid: TimetableGrid


class ClassTimetableResponse(BaseModel):
    academic_unit: AcademicUnitBrief
    timetable: Optional[TimetableDetail] = None
    message: Optional[str] = None


class TeacherScheduleItem(BaseModel):
    slot: SlotResponse
    timetable_id: UUID
    academic_unit: AcademicUnitBrief
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    period_name: Optional[str] = None

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: Optional[time]) -> Optional[str]:
        return format_time_24(t) if t else None


class SubjectDistributionItem(BaseModel):
    subject: SubjectBrief
    required: Optional[int] = None
    scheduled: int
    status: str  # OK | UNDER | OVER
