"""
bs-calendar core

This package provides the engine behind an embeddable calendar view:
- Configuration (config.py)
- Date windows and navigation (date_range.py, view_state.py)
- Appointment normalization and year aggregation (appointments.py, year_view.py)
- Overlap layout for the time grids (layout.py)
- Fetch coordination over callback and HTTP data sources (fetch.py, data_source.py)
- Instance registry and handle (calendar.py)
"""

from .config import Config, ConfigError
from .date_range import TimeWindow, ViewType, resolve
from .view_state import Pagination, ViewState
from .appointments import AppointmentNormalizer, NormalizedAppointment
from .layout import OverlapLayoutEngine
from .year_view import YearAggregator
from .data_source import DataSourceError, PendingRequest, RequestDispatcher
from .fetch import FetchCoordinator, FetchOutcome
from .holidays import HolidayApiError, OpenHolidaysProvider
from .render import Renderer
from .calendar import CalendarInstance, create_calendar, get_instance

__all__ = [
    'Config',
    'ConfigError',
    'TimeWindow',
    'ViewType',
    'resolve',
    'Pagination',
    'ViewState',
    'AppointmentNormalizer',
    'NormalizedAppointment',
    'OverlapLayoutEngine',
    'YearAggregator',
    'DataSourceError',
    'PendingRequest',
    'RequestDispatcher',
    'FetchCoordinator',
    'FetchOutcome',
    'HolidayApiError',
    'OpenHolidaysProvider',
    'Renderer',
    'CalendarInstance',
    'create_calendar',
    'get_instance',
]
