from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.api.v1.timetable_templates.schemas import TemplateResponse
from app.core.enums import ConflictType, SlotType
from app.core.schemas import normalize_weekdays


class SubjectBrief(BaseModel):
    id: UUID
    name: str
    code: str
    color: Optional[str] = None

    class Config:
        from_attributes = True


class TeacherBrief(BaseModel):
    id: UUID
    full_name: str
    employee_code: Optional[str] = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    id: UUID
    timetable_id: UUID
    academic_unit_id: UUID
    day_of_week: str
    period_number: int
    slot_type: str
    subject_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None
    room: Optional[str] = None
    notes: Optional[str] = None
    subject: Optional[SubjectBrief] = None
    teacher: Optional[TeacherBrief] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SlotAssign(BaseModel):
    """Upsert of the cell (timetable_id, day_of_week, period_number). Every field is written."""

    timetable_id: UUID
    day_of_week: str
    period_number: int = Field(..., ge=1)
    slot_type: SlotType = SlotType.REGULAR
    subject_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None
    room: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    override_warnings: bool = False
    expected_revision: Optional[int] = Field(None, ge=1, description="Reject the write if the timetable changed since")

    @field_validator("day_of_week", mode="before")
    @classmethod
    def parse_day(cls, v):
        return normalize_weekdays([v])[0]


class Conflict(BaseModel):
    type: ConflictType
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class SlotAssignResult(BaseModel):
    slot: SlotResponse
    revision: int
    overridden_conflicts: List[Conflict] = Field(default_factory=list)


class SlotRemoveResult(BaseModel):
    id: UUID
    timetable_id: UUID
    revision: int


class TeacherLoad(BaseModel):
    daily: int = 0
    weekly: int = 0


class TeacherLimits(BaseModel):
    daily: Optional[int] = None
    weekly: Optional[int] = None


class AvailableTeacher(BaseModel):
    id: UUID
    full_name: str
    employee_code: Optional[str] = None
    current_load: TeacherLoad
    max_load: TeacherLimits


class TimetableSlotsResponse(BaseModel):
    timetable_id: UUID
    status: str
    revision: int
    template: TemplateResponse
    slots: List[SlotResponse]
