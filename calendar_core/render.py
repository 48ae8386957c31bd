"""
Renderer contract and view models.

The core does no drawing. After each rebuild it hands a renderer a plain
view model: geometry per day for the time grids, per-day content for the
month grid, counters for the year, a page of rows for search. Appointments
are referenced by id and listed once in an index.
"""

import json
import sys
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Optional, TextIO

from .appointments import NormalizedAppointment, YearRecord
from .config import Config
from .date_range import TimeWindow, ViewType, iso_week, iso_week_string, resolve
from .layout import DayLayout, current_time_indicator
from .view_state import ViewState
from .year_view import YearAggregator


def title_for(view: ViewType, d: date, config: Config) -> dict:
    """
    Header labels for a view.

    Returns:
        {"title": ...} plus, for the week view, "iso_week" and a "tooltip"
        with the week's date range.
    """
    names = config.localization
    month_name = names.get_month_name(d.month)

    if view == ViewType.DAY:
        return {"title": f"{names.get_day_name(d.weekday())}, {d.day} {month_name} {d.year}"}
    if view == ViewType.WEEK:
        _, week = iso_week(d)
        window = resolve(ViewType.WEEK, d, config.start_week_on_sunday)

        def short(day: date) -> str:
            return f"{day.day} {names.get_month_name(day.month)[:3]} {day.year}"

        return {
            "title": f"W{week} · {month_name} {d.year}",
            "iso_week": iso_week_string(d),
            "tooltip": f"{short(window.start)} - {short(window.end)}",
        }
    if view == ViewType.MONTH:
        return {"title": f"{month_name} {d.year}"}
    return {"title": str(d.year)}


class Renderer(ABC):
    """Receives view models from a calendar instance."""

    @abstractmethod
    def render(self, view_model: dict) -> None:
        pass

    def update_now(self, indicator: dict) -> None:
        """Called by the now-ticker with a fresh current-time indicator."""


class JsonRenderer(Renderer):
    """Writes each view model as JSON to a stream."""

    def __init__(self, stream: Optional[TextIO] = None, indent: int = 2):
        self._stream = stream or sys.stdout
        self._indent = indent

    def render(self, view_model: dict) -> None:
        json.dump(view_model, self._stream, indent=self._indent, default=str)
        self._stream.write("\n")


class ViewModelBuilder:
    """Assembles the view model for the current state of an instance."""

    def __init__(self, config: Config):
        self.config = config
        self._years = YearAggregator()

    def build(self, state: ViewState, appointments: list, total: int,
              layouts: Optional[dict[date, DayLayout]] = None,
              holidays: Optional[list] = None,
              now: Optional[datetime] = None) -> dict[str, Any]:
        view = state.effective_view
        window = resolve(view, state.date, self.config.start_week_on_sunday)
        model: dict[str, Any] = {
            "view": state.view.value,
            "search_mode": state.search_mode,
            "date": state.date.isoformat(),
            "window": {"start": window.start.isoformat(), "end": window.end.isoformat()},
            "title": title_for(state.view, state.date, self.config),
            "appointments": {a.id: a.to_payload() for a in appointments},
            "holidays": [h.to_dict() for h in holidays or []],
            "display": {"title": self.config.title, "rounded": self.config.rounded},
        }

        if state.search_mode:
            model["search"] = self._search_model(state, appointments, total)
        elif view in (ViewType.DAY, ViewType.WEEK):
            model["days"] = [layouts[d].to_dict() for d in sorted(layouts or {})]
            if now is not None:
                model["now_indicator"] = self.now_indicator(window, now)
        elif view == ViewType.MONTH:
            model["month"] = self._month_model(window, state.date, appointments, now)
        elif view == ViewType.YEAR:
            model["year"] = self._year_model(state.date.year, appointments)
        return model

    def now_indicator(self, window: TimeWindow, now: datetime) -> dict:
        indicator = current_time_indicator(self.config.hour_slots, now)
        indicator["date"] = now.date().isoformat() if window.contains(now.date()) else None
        return indicator

    def _search_model(self, state: ViewState, appointments: list, total: int) -> dict:
        pagination = state.pagination
        rows = [a.id for a in appointments]
        if len(rows) > pagination.limit:
            rows = rows[pagination.offset:pagination.offset + pagination.limit]
        return {
            "term": state.search_term,
            "rows": rows,
            "total": total,
            "limit": pagination.limit,
            "offset": pagination.offset,
            "current_page": pagination.current_page,
            "total_pages": pagination.total_pages(total),
        }

    def _month_model(self, window: TimeWindow, anchor: date, appointments: list,
                     now: Optional[datetime]) -> dict:
        today = now.date() if now else None
        cells: dict[date, dict] = {}
        for day in window.dates():
            cells[day] = {
                "date": day.isoformat(),
                "in_month": day.month == anchor.month,
                "is_today": day == today,
                "appointment_ids": [],
            }
        for appointment in appointments:
            if not isinstance(appointment, NormalizedAppointment):
                continue
            for segment in appointment.extras.display_dates:
                if segment.visible_in_month and segment.date in cells:
                    cells[segment.date]["appointment_ids"].append(appointment.id)

        days = list(cells.values())
        return {"weeks": [days[i:i + 7] for i in range(0, len(days), 7)]}

    def _year_model(self, year: int, records: list) -> dict:
        year_records = [r for r in records if isinstance(r, YearRecord)]
        months = {}
        for cell in self._years.cells(year, year_records):
            months.setdefault(cell.date.month, []).append(cell.to_dict())
        return {"months": [{"month": m, "days": days} for m, days in sorted(months.items())]}
