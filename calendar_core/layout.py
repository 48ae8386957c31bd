"""
Overlap layout for the day and week time grids.

Timed appointments are split into per-day segments, packed greedily into
non-overlapping columns per day, and converted to pixel/percent geometry.
All-day appointments skip the packing and are listed per day in their own
lane.
"""

from datetime import date, datetime
from dataclasses import dataclass, field
from typing import Optional

from .appointments import NormalizedAppointment
from .config import HourSlotsConfig, LayoutConfig
from .date_range import TimeWindow, ViewType


@dataclass
class LayoutSlot:
    """Placement of one appointment segment inside a day column."""
    appointment_id: str
    start: datetime
    end: datetime
    column_index: int = 0
    total_columns: int = 1
    is_full_width: bool = False
    top_px: float = 0.0
    height_px: float = 0.0
    left_percent: float = 0.0
    width_percent: float = 100.0

    def to_dict(self) -> dict:
        return {
            "appointment_id": self.appointment_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "column_index": self.column_index,
            "total_columns": self.total_columns,
            "is_full_width": self.is_full_width,
            "top_px": self.top_px,
            "height_px": self.height_px,
            "left_percent": self.left_percent,
            "width_percent": self.width_percent,
        }


@dataclass
class DayLayout:
    """Timed slots and all-day lane for one calendar date."""
    date: date
    slots: list[LayoutSlot] = field(default_factory=list)
    all_day: list[str] = field(default_factory=list)  # appointment ids
    columns: list[list[LayoutSlot]] = field(default_factory=list, repr=False)
    full_width: list[LayoutSlot] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "slots": [slot.to_dict() for slot in self.slots],
            "all_day": list(self.all_day),
        }


def intervals_overlap(a_start, a_end, b_start, b_end) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return not (a_start >= b_end or a_end <= b_start)


def _fits_column(column: list[LayoutSlot], slot: LayoutSlot) -> bool:
    for placed in column:
        if intervals_overlap(slot.start, slot.end, placed.start, placed.end):
            return False
    return True


def slot_position(hour_slots: HourSlotsConfig, start: datetime,
                  end: Optional[datetime] = None) -> tuple[float, float]:
    """
    Vertical geometry of an interval inside the visible hour range.

    Returns:
        (top_px, height_px). Intervals entirely outside the range collapse
        to (0, 0); height is never negative.
    """
    start_h, start_m = start.hour, start.minute
    end_h = end.hour if end is not None else None
    end_m = end.minute if end is not None else None

    if (start_h < hour_slots.start and (end_h is None or end_h <= hour_slots.start)) \
            or start_h >= hour_slots.end:
        return 0.0, 0.0

    adj_start_h = max(start_h, hour_slots.start)
    adj_start_m = 0 if start_h < hour_slots.start else start_m

    top = (adj_start_h - hour_slots.start) * hour_slots.height + adj_start_m / 60 * hour_slots.height

    height = 0.0
    if end_h is not None:
        adj_end_h = min(end_h, hour_slots.end)
        adj_end_m = 0 if end_h >= hour_slots.end else end_m
        duration_minutes = (adj_end_h * 60 + adj_end_m) - (adj_start_h * 60 + adj_start_m)
        height = duration_minutes / 60 * hour_slots.height

    return float(top), float(max(height, 0.0))


def current_time_indicator(hour_slots: HourSlotsConfig, now: datetime) -> dict:
    """
    Position of the "now" line in a time grid.

    Before the visible range the line sticks to the top, after it to the
    bottom; otherwise top_px places it.
    """
    label = now.strftime("%H:%M")
    if now.hour < hour_slots.start:
        return {"top_px": 0.0, "at_top": True, "at_bottom": False, "label": label}
    if now.hour >= hour_slots.end:
        return {"top_px": None, "at_top": False, "at_bottom": True, "label": label}
    top, _ = slot_position(hour_slots, now)
    return {"top_px": top, "at_top": False, "at_bottom": False, "label": label}


class OverlapLayoutEngine:
    """
    Packs timed appointment segments into columns and computes geometry.
    """

    def __init__(self, hour_slots: HourSlotsConfig, layout: Optional[LayoutConfig] = None):
        self._hour_slots = hour_slots
        self._layout = layout or LayoutConfig()

    def layout(self, appointments: list[NormalizedAppointment], window: TimeWindow,
               view: ViewType, container_width_px: Optional[float] = None) -> dict[date, DayLayout]:
        """
        Lay out appointments for every date of a day or week window.

        Args:
            appointments: Normalized appointments
            window: The resolved window; only its dates get layouts
            view: ViewType.DAY or ViewType.WEEK
            container_width_px: Width of a day column, used to subtract the
                column gaps from percentage widths; gaps are ignored when None

        Returns:
            A DayLayout for each date in the window, keyed by date.
        """
        days = {d: DayLayout(date=d) for d in window.dates()}

        for appointment in appointments:
            for segment in appointment.extras.display_dates:
                if view == ViewType.WEEK and not segment.visible_in_week:
                    continue
                day = days.get(segment.date)
                if day is None:
                    continue
                if appointment.all_day:
                    day.all_day.append(appointment.id)
                    continue
                day.slots.append(LayoutSlot(
                    appointment_id=appointment.id,
                    start=segment.start,
                    end=segment.end,
                ))

        for day in days.values():
            self._pack(day)
            self._apply_geometry(day, container_width_px)
        return days

    def _pack(self, day: DayLayout) -> None:
        slots = sorted(day.slots, key=lambda s: s.start)
        columns: list[list[LayoutSlot]] = []
        full_width: list[LayoutSlot] = []

        for slot in slots:
            placed = False
            for column in columns:
                if _fits_column(column, slot):
                    column.append(slot)
                    placed = True
                    break
            if placed:
                continue

            overlaps_any = any(
                other is not slot and intervals_overlap(slot.start, slot.end, other.start, other.end)
                for other in slots
            )
            if not overlaps_any and not columns:
                full_width.append(slot)
            else:
                columns.append([slot])

        total = len(columns)
        for index, column in enumerate(columns):
            for slot in column:
                slot.column_index = index
                slot.total_columns = total
        for slot in full_width:
            slot.is_full_width = True
            slot.column_index = 0
            slot.total_columns = 1

        day.columns = columns
        day.full_width = full_width
        day.slots = slots

    def _apply_geometry(self, day: DayLayout, container_width_px: Optional[float]) -> None:
        gap = self._layout.column_gap
        columns = day.columns
        total = len(columns)

        def gap_percent(gap_px: float) -> float:
            if not container_width_px:
                return 0.0
            return gap_px * 100 / container_width_px

        for index, column in enumerate(columns):
            for slot in column:
                reclaim = self._layout.reclaim_trailing_space and all(
                    not intervals_overlap(slot.start, slot.end, other.start, other.end)
                    for later in columns[index + 1:]
                    for other in later
                )
                if reclaim:
                    remaining_gap = (total - index - 1) * gap
                    width = 100 - index * 100 / total - gap_percent(remaining_gap)
                elif total > 1:
                    width = (100 - gap_percent((total - 1) * gap)) / total
                else:
                    width = 100.0
                slot.width_percent = float(width)
                slot.left_percent = float(index * 100 / total) if total > 1 else 0.0
                slot.top_px, slot.height_px = slot_position(self._hour_slots, slot.start, slot.end)

        for slot in day.full_width:
            slot.width_percent = 100.0
            slot.left_percent = 0.0
            slot.top_px, slot.height_px = slot_position(self._hour_slots, slot.start, slot.end)
