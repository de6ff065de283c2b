from app.core.models.tenant import Tenant
from app.core.models.academic_year import AcademicYear
from app.core.models.academic_unit import AcademicUnit
from app.core.models.subject import Subject
from app.core.models.teacher import Teacher
from app.core.models.timetable import PeriodTiming, Timetable, TimetableSlot, TimetableTemplate
from app.core.models.exam_timetable import ExamSlot, ExamTimetable

__all__ = [
    "AcademicUnit",
    "AcademicYear",
    "ExamSlot",
    "ExamTimetable",
    "PeriodTiming",
    "Subject",
    "Teacher",
    "Tenant",
    "Timetable",
    "TimetableSlot",
    "TimetableTemplate",
]
