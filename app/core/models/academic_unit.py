"""Tenant-scoped academic units: a class, grade, batch or semester, optionally split into child sections."""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class AcademicUnit(Base):
    """A section is an AcademicUnit whose parent is its class (e.g. Class 10 -> A)."""

    __tablename__ = "academic_units"
    __table_args__ = (
        UniqueConstraint("academic_year_id", "parent_id", "name", name="uq_academic_unit_year_parent_name"),
        {"schema": "core"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("core.academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    parent_id = Column(UUID(as_uuid=True), ForeignKey("core.academic_units.id"), nullable=True)
    name = Column(String(100), nullable=False)
    unit_type = Column(String(20), nullable=False, default="CLASS")  # CLASS | GRADE | BATCH | SEMESTER | SECTION
    display_order = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    academic_year = relationship("AcademicYear", foreign_keys=[academic_year_id])
    parent = relationship("AcademicUnit", remote_side=[id], lazy="joined")

    @property
    def display_name(self) -> str:
        if self.parent is not None:
            return f"{self.parent.name} - {self.name}"
        return self.name
