from datetime import datetime, time
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from app.core.schemas import format_time_24, normalize_weekdays, parse_time_24


class PeriodTimingData(BaseModel):
    """One row of a day's schedule. period_number is reassigned 1..N in list order on save."""

    period_number: int = Field(0, ge=0)
    name: str = Field(..., min_length=1, max_length=100)
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:45")
    is_break: bool = False

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return parse_time_24(v)

    @model_validator(mode="after")
    def check_range(self) -> "PeriodTimingData":
        if self.end_time <= self.start_time:
            raise ValueError(f"{self.name}: end_time must be after start_time")
        return self

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        return format_time_24(t)


class PeriodTimingResponse(PeriodTimingData):
    id: Optional[UUID] = None


class _WorkingDaysMixin(BaseModel):
    @field_validator("working_days", mode="before", check_fields=False)
    @classmethod
    def parse_working_days(cls, v):
        if v is None:
            return None
        days = normalize_weekdays(v)
        if not days:
            raise ValueError("working_days must contain at least one day")
        return days


class GenerateTimingsRequest(BaseModel):
    periods_per_day: int = Field(..., ge=1, le=16)
    period_duration: int = Field(..., ge=10, le=180, description="Minutes per teaching period")
    start_time: Optional[Union[str, time]] = Field(None, description="Day start, 24-hour format; default 09:00")

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_start(cls, v):
        return None if v is None else parse_time_24(v)


class TemplateCreate(_WorkingDaysMixin):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    periods_per_day: Optional[int] = Field(None, ge=1, le=16)
    period_duration: Optional[int] = Field(None, ge=10, le=180)
    working_days: Optional[List[str]] = None
    start_time: Optional[Union[str, time]] = Field(None, description="Used when period_timings are generated")
    period_timings: Optional[List[PeriodTimingData]] = Field(
        None, description="Explicit timings; generated from periods_per_day/period_duration when omitted"
    )
    is_default: bool = False
    is_active: bool = True

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_start(cls, v):
        return None if v is None else parse_time_24(v)

    @field_validator("period_timings")
    @classmethod
    def non_empty_timings(cls, v):
        if v is not None and not v:
            raise ValueError("period_timings cannot be empty")
        return v


class TemplateUpdate(_WorkingDaysMixin):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    periods_per_day: Optional[int] = Field(None, ge=1, le=16)
    period_duration: Optional[int] = Field(None, ge=10, le=180)
    working_days: Optional[List[str]] = None
    period_timings: Optional[List[PeriodTimingData]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("period_timings")
    @classmethod
    def non_empty_timings(cls, v):
        if v is not None and not v:
            raise ValueError("period_timings cannot be empty")
        return v


class RegenerateTimingsRequest(BaseModel):
    """Discards the current timings. confirm must be true."""

    periods_per_day: Optional[int] = Field(None, ge=1, le=16)
    period_duration: Optional[int] = Field(None, ge=10, le=180)
    start_time: Optional[Union[str, time]] = None
    confirm: bool = False

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_start(cls, v):
        return None if v is None else parse_time_24(v)


class AppendPeriodRequest(BaseModel):
    is_break: bool = False
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    duration: Optional[int] = Field(None, ge=5, le=180, description="Minutes; template period_duration (or 15 for a break) by default")


class TemplateUsage(BaseModel):
    timetables: int = 0
    timetable_slots: int = 0


class TemplateResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    description: Optional[str] = None
    periods_per_day: int
    period_duration: int
    working_days: List[str]
    is_default: bool
    is_active: bool
    period_timings: List[PeriodTimingResponse]
    usage: TemplateUsage = Field(default_factory=TemplateUsage, serialization_alias="_count")
    created_at: datetime
    updated_at: datetime
