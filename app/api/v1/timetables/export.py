import io

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from .schemas import TimetableDetail

SHEET_NAME = "Timetable"


def _cell_text(cell) -> str:
    if cell.is_break and cell.slot is None:
        return cell.name
    slot = cell.slot
    if slot is None or cell.is_empty:
        return ""
    parts = [slot.subject.name if slot.subject else slot.slot_type.title()]
    if slot.teacher:
        parts.append(slot.teacher.full_name)
    if slot.room:
        parts.append(f"Room {slot.room}")
    return "\n".join(parts)


def build_timetable_workbook(detail: TimetableDetail) -> bytes:
    """Grid as an xlsx sheet: header row of periods with times, one row per working day."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAME

    ws.append([f"{detail.academic_unit.display_name} - {detail.template_name} (v{detail.version}, {detail.status})"])
    ws["A1"].font = Font(bold=True)

    periods = sorted(detail.template.period_timings, key=lambda p: p.period_number)
    ws.append(["Day"] + [f"{p.name}\n{p.start_time:%H:%M}-{p.end_time:%H:%M}" for p in periods])
    for row in detail.grid.days:
        ws.append([row.day_of_week.title()] + [_cell_text(c) for c in row.cells])

    for row in ws.iter_rows(min_row=2):
        for c in row:
            c.alignment = Alignment(wrap_text=True, vertical="top")
    for c in ws[2]:
        c.font = Font(bold=True)

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()
