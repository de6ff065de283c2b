from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

from app.api.v1.timetable_slots.schemas import SubjectBrief, TeacherBrief
from app.core.enums import ExamSlotErrorCode, ExamTimetableStatus
from app.core.schemas import format_time_24, normalize_weekdays, parse_time_24


class ExamSlotData(BaseModel):
    exam_date: date
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 12:00")
    subject_id: UUID
    max_marks: int = 100
    min_marks: int = 33
    supervisor_id: Optional[UUID] = None
    room: Optional[str] = Field(None, max_length=50)
    instructions: Optional[str] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return parse_time_24(v)


class ExamSlotResponse(BaseModel):
    id: UUID
    slot_order: int
    exam_date: date
    start_time: time
    end_time: time
    subject_id: UUID
    subject: Optional[SubjectBrief] = None
    max_marks: int
    min_marks: int
    supervisor_id: Optional[UUID] = None
    supervisor: Optional[TeacherBrief] = None
    room: Optional[str] = None
    instructions: Optional[str] = None

    class Config:
        from_attributes = True

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        return format_time_24(t)


class _OffDaysMixin(BaseModel):
    @field_validator("weekly_off_days", mode="before", check_fields=False)
    @classmethod
    def parse_off_days(cls, v):
        return None if v is None else normalize_weekdays(v)


class ExamTimetableCreate(_OffDaysMixin):
    academic_year_id: UUID
    academic_unit_id: UUID
    section_id: Optional[UUID] = None
    exam_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: date
    end_date: date
    weekly_off_days: Optional[List[str]] = Field(None, description="Defaults to EXAM_OFF_DAYS")
    status: ExamTimetableStatus = ExamTimetableStatus.DRAFT
    slots: List[ExamSlotData] = Field(default_factory=list)


class ExamTimetableUpdate(_OffDaysMixin):
    exam_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    section_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    weekly_off_days: Optional[List[str]] = None


class ExamTimetableSummary(BaseModel):
    id: UUID
    academic_year_id: UUID
    academic_unit_id: UUID
    section_id: Optional[UUID] = None
    exam_name: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    weekly_off_days: List[str]
    status: str
    created_by: Optional[UUID] = None
    published_at: Optional[datetime] = None
    published_by: Optional[UUID] = None
    slot_count: int = 0
    created_at: datetime
    updated_at: datetime


class ExamTimetableResponse(ExamTimetableSummary):
    slots: List[ExamSlotResponse]


class ExamDate(BaseModel):
    exam_date: date
    day_of_week: str
    is_holiday: bool


class ScheduledExam(BaseModel):
    """The fields the slot rules compare: one existing or candidate exam paper."""

    id: Optional[UUID] = None
    subject_id: UUID
    subject_name: str
    exam_date: date
    start_time: time
    end_time: time


class ExamSlotIssue(BaseModel):
    code: ExamSlotErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
