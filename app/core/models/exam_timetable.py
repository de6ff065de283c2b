"""Exam timetables: a date range for one class (optionally one section) and its timed exam slots."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Text, Time, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class ExamTimetable(Base):
    __tablename__ = "exam_timetables"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    academic_unit_id = Column(UUID(as_uuid=True), ForeignKey("core.academic_units.id"), nullable=False)
    section_id = Column(UUID(as_uuid=True), ForeignKey("core.academic_units.id"), nullable=True)
    exam_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    weekly_off_days = Column(JSON, nullable=False, default=list)  # ["SUNDAY"]
    status = Column(String(20), nullable=False, default="DRAFT")  # DRAFT | PUBLISHED
    created_by = Column(UUID(as_uuid=True), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    published_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    academic_unit = relationship("AcademicUnit", foreign_keys=[academic_unit_id])
    section = relationship("AcademicUnit", foreign_keys=[section_id])
    slots = relationship(
        "ExamSlot",
        back_populates="exam_timetable",
        order_by="ExamSlot.slot_order",
        cascade="all, delete-orphan",
    )


class ExamSlot(Base):
    """One exam paper. A subject appears at most once per exam timetable."""

    __tablename__ = "exam_slots"
    __table_args__ = (
        UniqueConstraint("exam_timetable_id", "subject_id", name="uq_exam_slot_timetable_subject"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_timetable_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.exam_timetables.id", ondelete="CASCADE"),
        nullable=False,
    )
    slot_order = Column(Integer, nullable=False, default=1)  # 1..N by (exam_date, start_time)
    exam_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school.subjects.id", ondelete="RESTRICT"), nullable=False)
    max_marks = Column(Integer, nullable=False, default=100)
    min_marks = Column(Integer, nullable=False, default=33)
    supervisor_id = Column(UUID(as_uuid=True), ForeignKey("school.teachers.id", ondelete="SET NULL"), nullable=True)
    room = Column(String(50), nullable=True)
    instructions = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    exam_timetable = relationship("ExamTimetable", back_populates="slots")
    subject = relationship("Subject")
    supervisor = relationship("Teacher")
