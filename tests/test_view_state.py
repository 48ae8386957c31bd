"""Unit tests for ViewState and Pagination."""
from datetime import date

from calendar_core.date_range import ViewType
from calendar_core.timezone_utils import get_timezone, today_local
from calendar_core.view_state import Pagination, ViewState


class TestSetView:
    """Test cases for view switching."""

    def test_same_view_is_noop(self):
        state = ViewState(view=ViewType.MONTH, date=date(2024, 3, 14))
        assert state.set_view("month") is False
        assert state.last_view is None

    def test_switch_records_last_view(self):
        state = ViewState(view=ViewType.MONTH, date=date(2024, 3, 14))
        assert state.set_view("week") is True
        assert state.view == ViewType.WEEK
        assert state.last_view == ViewType.MONTH

    def test_unknown_view_falls_back_to_month(self, capsys):
        state = ViewState(view=ViewType.WEEK, date=date(2024, 3, 14), debug=True)
        assert state.set_view("agenda") is True
        assert state.view == ViewType.MONTH
        assert "Unknown view" in capsys.readouterr().err


class TestNavigation:
    """Test cases for date navigation."""

    def test_navigate_month(self):
        state = ViewState(view=ViewType.MONTH, date=date(2024, 1, 31))
        assert state.navigate(1) == (date(2024, 1, 31), date(2024, 2, 1))
        assert state.date == date(2024, 2, 1)

    def test_navigation_ignored_in_search_mode(self):
        state = ViewState(view=ViewType.WEEK, date=date(2024, 3, 14))
        state.enter_search("dentist")
        assert state.navigate(1) is None
        assert state.set_date(date(2024, 5, 1)) is False
        assert state.set_today() is False
        assert state.date == date(2024, 3, 14)

    def test_set_today_with_view(self):
        state = ViewState(view=ViewType.MONTH, date=date(2020, 1, 1))
        assert state.set_today("day") is True
        assert state.view == ViewType.DAY
        assert state.date == today_local()

    def test_set_today_uses_zone(self):
        zone = get_timezone("Pacific/Kiritimati")
        state = ViewState(view=ViewType.MONTH, date=date(2020, 1, 1), zone=zone)
        state.set_today()
        assert state.date == today_local(zone)

    def test_effective_view(self):
        state = ViewState(view=ViewType.WEEK, date=date(2024, 3, 14))
        assert state.effective_view == ViewType.WEEK
        state.enter_search("x")
        assert state.effective_view == ViewType.SEARCH
        assert state.view == ViewType.WEEK


class TestSearch:
    """Test cases for the search overlay."""

    def test_enter_search_starts_at_first_page(self):
        state = ViewState(default_limit=20)
        state.enter_search("team")
        assert state.search_mode is True
        assert state.pagination == Pagination(limit=20, offset=0)

    def test_same_term_keeps_offset(self):
        state = ViewState()
        state.enter_search("team")
        state.pagination.go_to_page(3)
        state.enter_search("team")
        assert state.pagination.offset == 20

    def test_new_term_resets_offset(self):
        state = ViewState()
        state.enter_search("team")
        state.pagination.go_to_page(3)
        state.enter_search("review")
        assert state.pagination.offset == 0
        assert state.search_term == "review"

    def test_new_default_limit_restarts_cursor(self):
        state = ViewState()
        state.enter_search("team")
        state.pagination.go_to_page(3)
        state.set_default_limit(25)
        assert state.pagination == Pagination(limit=25, offset=0)
        state.pagination.go_to_page(2)
        state.set_default_limit(25)
        assert state.pagination.offset == 25

    def test_exit_search_resets_pagination(self):
        state = ViewState()
        assert state.exit_search() is False
        state.enter_search("team")
        state.pagination.go_to_page(2)
        assert state.exit_search() is True
        assert state.search_mode is False
        assert state.search_term == ""
        assert state.pagination.offset == 0


class TestPagination:
    """Test cases for the pagination cursor."""

    def test_pages(self):
        pagination = Pagination(limit=10, offset=20)
        assert pagination.current_page == 3
        assert pagination.total_pages(25) == 3
        assert pagination.total_pages(30) == 3
        assert pagination.total_pages(0) == 0

    def test_go_to_page(self):
        pagination = Pagination(limit=10)
        pagination.go_to_page(4)
        assert pagination.offset == 30
        pagination.go_to_page(0)
        assert pagination.offset == 0
        assert pagination.to_query() == {"limit": 10, "offset": 0}
