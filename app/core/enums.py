from enum import Enum


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


# Monday-first, matches date.weekday()
WEEKDAY_ORDER = [d.value for d in DayOfWeek]


class AcademicUnitType(str, Enum):
    CLASS = "CLASS"
    GRADE = "GRADE"
    BATCH = "BATCH"
    SEMESTER = "SEMESTER"
    SECTION = "SECTION"


class SlotType(str, Enum):
    REGULAR = "REGULAR"
    BREAK = "BREAK"
    FREE = "FREE"
    ASSEMBLY = "ASSEMBLY"
    ACTIVITY = "ACTIVITY"
    LAB = "LAB"
    COMBINED = "COMBINED"
    SPECIAL = "SPECIAL"


# Slot types that carry no subject and may sit on a break period
NON_SUBJECT_SLOT_TYPES = {SlotType.BREAK.value, SlotType.ASSEMBLY.value}


class TimetableStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class ExamTimetableStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class ConflictType(str, Enum):
    TEACHER_BUSY = "TEACHER_BUSY"
    WORKLOAD_EXCEEDED = "WORKLOAD_EXCEEDED"


class ExamSlotErrorCode(str, Enum):
    DUPLICATE_SUBJECT = "DUPLICATE_SUBJECT"
    TIME_OVERLAP = "TIME_OVERLAP"
