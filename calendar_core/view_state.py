"""
Per-instance navigation state: active view, reference date, search overlay
and pagination cursor.
"""

import math
import sys
from datetime import date, datetime, tzinfo
from dataclasses import dataclass, field
from typing import Optional

from .date_range import ViewType, parse_view, shift_date
from .timezone_utils import today_local


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] VIEW: {msg}", file=sys.stderr)


@dataclass
class Pagination:
    """Search pagination cursor."""
    limit: int = 10
    offset: int = 0

    @property
    def current_page(self) -> int:
        return self.offset // self.limit + 1

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if total > 0 else 0

    def go_to_page(self, page: int) -> None:
        self.offset = max(page - 1, 0) * self.limit

    def to_query(self) -> dict:
        return {"limit": self.limit, "offset": self.offset}


@dataclass
class ViewState:
    """
    Navigation state of one calendar instance.

    Search is an overlay: while search_mode is set, view stays on the last
    calendar view and date navigation is suspended.
    """
    view: ViewType = ViewType.MONTH
    date: date = field(default_factory=today_local)
    search_mode: bool = False
    search_term: str = ""
    pagination: Optional[Pagination] = None
    last_view: Optional[ViewType] = None
    default_limit: int = 10
    debug: bool = field(default=False, repr=False)
    zone: Optional[tzinfo] = field(default=None, repr=False)

    @property
    def effective_view(self) -> ViewType:
        """The view the data window is resolved for."""
        return ViewType.SEARCH if self.search_mode else self.view

    def set_view(self, value) -> bool:
        """
        Switch the active view.

        Unknown names fall back to month with a warning.

        Returns:
            True if the state changed, False if the view was already active.
        """
        view = parse_view(value)
        if view is None:
            if self.debug:
                _debug_print(f"Unknown view {value!r}, using month")
            view = ViewType.MONTH
        if view == self.view:
            return False
        self.last_view = self.view
        self.view = view
        return True

    def navigate(self, step: int) -> Optional[tuple[date, date]]:
        """
        Shift the date one unit of the current view back (-1) or forward (+1).

        Returns:
            (old_date, new_date), or None while in search mode.
        """
        if self.search_mode:
            if self.debug:
                _debug_print("Navigation ignored in search mode")
            return None
        old = self.date
        self.date = shift_date(self.view, old, step)
        return old, self.date

    def set_date(self, d: date) -> bool:
        if self.search_mode:
            if self.debug:
                _debug_print("set_date ignored in search mode")
            return False
        self.date = d
        return True

    def set_today(self, view=None) -> bool:
        """Jump to today, optionally switching view as well."""
        if self.search_mode:
            if self.debug:
                _debug_print("set_today ignored in search mode")
            return False
        if view is not None:
            self.set_view(view)
        self.date = today_local(self.zone)
        return True

    def set_default_limit(self, limit: int) -> None:
        """Change the page size; an active cursor with another size restarts at page one."""
        self.default_limit = limit
        if self.pagination is not None and self.pagination.limit != limit:
            self.pagination = Pagination(limit=limit, offset=0)

    def enter_search(self, term: str) -> None:
        """
        Enter search mode, or change the term while already in it.

        A new term restarts pagination at the first page.
        """
        term = (term or "").strip()
        if not self.search_mode or term != self.search_term or self.pagination is None:
            self.pagination = Pagination(limit=self.default_limit, offset=0)
        self.search_mode = True
        self.search_term = term

    def exit_search(self) -> bool:
        if not self.search_mode:
            return False
        self.search_mode = False
        self.search_term = ""
        self.pagination = Pagination(limit=self.default_limit, offset=0)
        return True
