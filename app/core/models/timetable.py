"""
Weekly timetables.

TimetableTemplate owns the day structure (ordered PeriodTiming rows and working days).
Timetable is one versioned schedule for one academic unit, built from one template.
TimetableSlot is the cell at (day_of_week, period_number) inside one timetable.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class TimetableTemplate(Base):
    __tablename__ = "timetable_templates"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_timetable_template_tenant_name"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    periods_per_day = Column(Integer, nullable=False, default=8)
    period_duration = Column(Integer, nullable=False, default=45)  # minutes
    working_days = Column(JSON, nullable=False, default=list)  # ["MONDAY", ...]
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # No unique (template_id, period_number): timings are replaced wholesale and renumbered in code
    period_timings = relationship(
        "PeriodTiming",
        back_populates="template",
        order_by="PeriodTiming.period_number",
        cascade="all, delete-orphan",
    )


class PeriodTiming(Base):
    __tablename__ = "period_timings"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetable_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_number = Column(Integer, nullable=False)  # 1..N, display order
    name = Column(String(100), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_break = Column(Boolean, nullable=False, default=False)

    template = relationship("TimetableTemplate", back_populates="period_timings")


class Timetable(Base):
    """One version of the weekly schedule of an academic unit. At most one PUBLISHED per (unit, year)."""

    __tablename__ = "timetables"
    __table_args__ = (
        UniqueConstraint("academic_unit_id", "version", name="uq_timetable_unit_version"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetable_templates.id", ondelete="RESTRICT"),
        nullable=False,
    )
    academic_unit_id = Column(UUID(as_uuid=True), ForeignKey("core.academic_units.id"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    version = Column(Integer, nullable=False, default=1)  # per academic unit
    status = Column(String(20), nullable=False, default="DRAFT")  # DRAFT | PUBLISHED | ARCHIVED
    notes = Column(Text, nullable=True)
    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    published_by = Column(UUID(as_uuid=True), nullable=True)
    # Optimistic concurrency counter, bumped on every timetable or slot change
    revision = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    template = relationship("TimetableTemplate")
    academic_unit = relationship("AcademicUnit")
    slots = relationship("TimetableSlot", back_populates="timetable", cascade="all, delete-orphan")


class TimetableSlot(Base):
    __tablename__ = "timetable_slots"
    __table_args__ = (
        UniqueConstraint("timetable_id", "day_of_week", "period_number", name="uq_timetable_slot_cell"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    timetable_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetables.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Denormalised from the timetable; template delete checks count these
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.timetable_templates.id", ondelete="RESTRICT"),
        nullable=False,
    )
    academic_unit_id = Column(UUID(as_uuid=True), ForeignKey("core.academic_units.id"), nullable=False)
    day_of_week = Column(String(10), nullable=False)  # MONDAY .. SUNDAY
    period_number = Column(Integer, nullable=False)
    slot_type = Column(String(20), nullable=False, default="REGULAR")
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school.subjects.id", ondelete="SET NULL"), nullable=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("school.teachers.id", ondelete="SET NULL"), nullable=True)
    room = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    timetable = relationship("Timetable", back_populates="slots")
    academic_unit = relationship("AcademicUnit")
    subject = relationship("Subject")
    teacher = relationship("Teacher")
