"""Day x period grid of a timetable, as rendered by clients and the xlsx export."""

from typing import Dict, List, Sequence, Tuple

from app.api.v1.timetable_slots.schemas import SlotResponse
from app.core.enums import WEEKDAY_ORDER, SlotType

from .schemas import GridCell, GridRow, TimetableGrid


def is_empty_slot(slot) -> bool:
    return slot is None or (slot.slot_type == SlotType.REGULAR.value and slot.subject_id is None)


def build_grid(working_days: Sequence[str], period_timings, slots: Sequence[SlotResponse]) -> TimetableGrid:
    """
    One row per working day (Monday first), one cell per period timing in period_number order.
    Slots whose day or period is no longer part of the template are returned as orphans.
    """
    periods = sorted(period_timings, key=lambda p: p.period_number)
    days = [d for d in WEEKDAY_ORDER if d in set(working_days)]
    by_cell: Dict[Tuple[str, int], SlotResponse] = {(s.day_of_week, s.period_number): s for s in slots}

    rows: List[GridRow] = []
    for day in days:
        cells = []
        for p in periods:
            slot = by_cell.pop((day, p.period_number), None)
            cells.append(
                GridCell(
                    period_number=p.period_number,
                    name=p.name,
                    start_time=p.start_time,
                    end_time=p.end_time,
                    is_break=p.is_break,
                    slot=slot,
                    is_empty=is_empty_slot(slot),
                )
            )
        rows.append(GridRow(day_of_week=day, cells=cells))

    orphans = sorted(
        by_cell.values(),
        key=lambda s: (WEEKDAY_ORDER.index(s.day_of_week) if s.day_of_week in WEEKDAY_ORDER else 7, s.period_number),
    )
    return TimetableGrid(days=rows, orphans=orphans)
