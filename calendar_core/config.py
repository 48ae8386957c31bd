"""
Configuration for the calendar core.

Every recognized option is a dataclass field with its default. Values are
validated and normalized once, at construction, and can be loaded from a
TOML file.
"""

import tomllib
import os
import sys
from datetime import date, datetime, tzinfo
from pathlib import Path
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Optional

from .timezone_utils import get_timezone, today_local


POSSIBLE_VIEWS = ["day", "week", "month", "year"]


class ConfigError(ValueError):
    """Raised when a configuration value cannot be interpreted."""


def _clamp(value, lo, hi):
    return min(max(value, lo), hi)


def _as_int(value, default: int) -> int:
    """Coerce to int, falling back to default for non-numeric input."""
    if isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


@dataclass
class SearchConfig:
    """Pagination defaults for search mode."""
    limit: int = 10
    offset: int = 0

    def __post_init__(self):
        self.limit = max(_as_int(self.limit, 10), 1)
        self.offset = max(_as_int(self.offset, 0), 0)


@dataclass
class HourSlotsConfig:
    """Visible hour range and pixel height of one hour in day/week views."""
    height: int = 30  # one hour in px
    start: int = 0
    end: int = 24

    def __post_init__(self):
        self.start = _clamp(_as_int(self.start, 0), 0, 24)
        self.end = _clamp(_as_int(self.end, 24), 0, 24)
        self.height = max(_as_int(self.height, 30), 1)

        # At least one visible hour, start before end
        if self.start >= self.end:
            if self.start < 24:
                self.end = self.start + 1
            else:
                self.start, self.end = 23, 24

        self.start = _clamp(self.start, 0, 23)
        self.end = _clamp(self.end, 1, 24)


@dataclass
class LayoutConfig:
    """Geometry options for the overlap layout."""
    column_gap: int = 2  # px between columns
    # Widen an appointment over trailing columns it does not collide with
    reclaim_trailing_space: bool = True


@dataclass
class IconsConfig:
    """Icon tokens handed to the renderer with each appointment."""
    appointment: str = "bi bi-clock"
    appointment_all_day: str = "bi bi-brightness-high"


@dataclass
class HolidaysConfig:
    """Parameters for the built-in holiday provider."""
    country: Optional[str] = None
    language: Optional[str] = None
    federal_state: Optional[str] = None

    def __post_init__(self):
        self.country = self.country.upper() if self.country else None
        self.language = self.language.upper() if self.language else None
        self.federal_state = self.federal_state.upper() if self.federal_state else None


@dataclass
class LocalizationConfig:
    """Configuration for localized day and month names."""
    # Default to English full day names, Monday first
    day_names: list[str] = None
    # Default to English full month names
    month_names: list[str] = None

    def __post_init__(self):
        if not self.day_names:
            self.day_names = [
                "Monday", "Tuesday", "Wednesday", "Thursday",
                "Friday", "Saturday", "Sunday"
            ]
        if not self.month_names:
            self.month_names = [
                "January", "February", "March", "April", "May", "June",
                "July", "August", "September", "October", "November", "December"
            ]

    def get_day_name(self, weekday: int) -> str:
        """Get localized day name for weekday (0=Monday, 6=Sunday)."""
        return self.day_names[weekday] if 0 <= weekday < len(self.day_names) else ""

    def get_month_name(self, month: int) -> str:
        """Get localized month name (1=January, 12=December)."""
        return self.month_names[month - 1] if 1 <= month <= len(self.month_names) else ""


def normalize_views(views: Any) -> list[str]:
    """Deduplicate views keeping their order and drop unknown names."""
    if isinstance(views, str):
        views = [v.strip() for v in views.split(",") if v.strip()]
    if not isinstance(views, (list, tuple)):
        return list(POSSIBLE_VIEWS)

    seen = set()
    result = []
    for view in views:
        if view in seen or view not in POSSIBLE_VIEWS:
            continue
        seen.add(view)
        result.append(view)
    return result or list(POSSIBLE_VIEWS)


def _as_date(value: Any, tz: tzinfo) -> date:
    if value is None:
        return today_local(tz)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace(" ", "T")).date()
        except ValueError:
            raise ConfigError(f"Invalid start_date: {value!r}")
    raise ConfigError(f"Invalid start_date: {value!r}")


@dataclass
class Config:
    """Main configuration container for one calendar instance."""

    locale: str = "en-GB"
    title: Optional[str] = None
    start_week_on_sunday: bool = True
    rounded: int = 5  # 0-5
    start_date: Optional[date] = None
    start_view: str = "month"
    main_color: str = "primary"
    views: list[str] = field(default_factory=lambda: list(POSSIBLE_VIEWS))
    store_state: bool = False
    debug: bool = False
    url: Optional[str] = None
    timezone: str = "UTC"
    now_refresh_interval: int = 60  # seconds, 0 to disable
    request_timeout: int = 30  # seconds
    query_params: Optional[Callable[[dict], dict]] = field(default=None, repr=False)
    search: SearchConfig = field(default_factory=SearchConfig)
    hour_slots: HourSlotsConfig = field(default_factory=HourSlotsConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    icons: IconsConfig = field(default_factory=IconsConfig)
    holidays: Optional[HolidaysConfig] = None
    localization: LocalizationConfig = field(default_factory=LocalizationConfig)

    def __post_init__(self):
        self.start_date = _as_date(self.start_date, self.zone)
        self.views = normalize_views(self.views)
        if not self.start_view or self.start_view not in self.views:
            self.start_view = self.views[0]

        if isinstance(self.rounded, bool) or not isinstance(self.rounded, (int, float, str)):
            self.rounded = 5
        else:
            try:
                parsed = float(self.rounded)
            except ValueError:
                parsed = None
            if parsed is None or not parsed.is_integer():
                self.rounded = 5
            else:
                self.rounded = _clamp(int(parsed), 0, 5)

        self.now_refresh_interval = max(_as_int(self.now_refresh_interval, 60), 0)
        self.request_timeout = max(_as_int(self.request_timeout, 30), 1)

        # Nested sections may arrive as plain mappings
        if isinstance(self.search, dict):
            self.search = SearchConfig(**self.search)
        if isinstance(self.hour_slots, dict):
            self.hour_slots = HourSlotsConfig(**self.hour_slots)
        if isinstance(self.layout, dict):
            self.layout = LayoutConfig(**self.layout)
        if isinstance(self.icons, dict):
            self.icons = IconsConfig(**self.icons)
        if isinstance(self.holidays, dict):
            self.holidays = HolidaysConfig(**self.holidays)
        if isinstance(self.localization, dict):
            self.localization = LocalizationConfig(**self.localization)

    @property
    def zone(self) -> tzinfo:
        """The configured zone; unknown names resolve to UTC."""
        return get_timezone(self.timezone)

    def updated(self, **options) -> 'Config':
        """Return a re-validated copy with the given options replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(options) - known
        if unknown:
            raise ConfigError(f"Unknown option(s): {', '.join(sorted(unknown))}")
        return replace(self, **options)

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build a configuration from a flat mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key in known:
                kwargs[key] = value
            else:
                print(f"DEBUG: Ignoring unknown config key '{key}'", file=sys.stderr)
        return cls(**kwargs)

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(xdg_config) / 'bs-calendar' / 'bs-calendar.toml'

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """Load configuration from TOML file."""
        if config_path is None:
            config_path = cls.get_default_config_path()

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'rb') as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {config_path}: {e}")

        try:
            # Parse General section
            general = dict(data.get('General', {}))

            # Parse nested sections
            if 'Search' in data:
                general['search'] = SearchConfig(**data['Search'])
            if 'HourSlots' in data:
                general['hour_slots'] = HourSlotsConfig(**data['HourSlots'])
            if 'Layout' in data:
                general['layout'] = LayoutConfig(**data['Layout'])
            if 'Icons' in data:
                general['icons'] = IconsConfig(**data['Icons'])
            if 'Holidays' in data:
                general['holidays'] = HolidaysConfig(**data['Holidays'])

            # Space-separated names, like "Mon Tue Wed ..."
            localization_data = data.get('Localization', {})
            if localization_data:
                day_names_str = localization_data.get('day_names', '')
                month_names_str = localization_data.get('month_names', '')
                general['localization'] = LocalizationConfig(
                    day_names=day_names_str.split() if day_names_str else None,
                    month_names=month_names_str.split() if month_names_str else None,
                )

            return cls.from_dict(general)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}")
