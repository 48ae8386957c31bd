"""
Appointment normalization.

Turns raw records supplied by a data source into NormalizedAppointment
objects carrying their derived extras: duration, one display segment per
calendar day touched, today/now flags, icon and color tokens.

Year-view records have a different shape ({date, total}) and go through
filter_year_records() instead.
"""

import copy
import sys
import uuid
from datetime import date, datetime, time, timedelta
from dataclasses import dataclass, field, asdict
from typing import Any, Optional

from .config import Config
from .date_range import ViewType, resolve
from .timezone_utils import now_local, parse_date, parse_datetime


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] NORMALIZE: {msg}", file=sys.stderr)


END_OF_DAY = time(23, 59, 59)
SEGMENT_END_OF_DAY = time(23, 59)


def color_tokens(color: Optional[str], main_color: str) -> dict:
    """
    Color hints for the renderer.

    Resolving a token into concrete colors is the renderer's business; the
    core only records which token applies.
    """
    token = color or main_color
    return {"color": token, "is_main_color": token == main_color}


@dataclass
class Duration:
    """Length of an appointment, split into units plus totals."""
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    total_minutes: int = 0
    total_seconds: int = 0

    @classmethod
    def between(cls, start: datetime, end: datetime, all_day: bool) -> 'Duration':
        total_seconds = int((end - start).total_seconds())
        if all_day:
            # Whole calendar days, both ends included
            return cls(
                days=(end.date() - start.date()).days + 1,
                total_minutes=total_seconds // 60,
                total_seconds=total_seconds,
            )
        return cls(
            days=total_seconds // 86400,
            hours=(total_seconds % 86400) // 3600,
            minutes=(total_seconds % 3600) // 60,
            seconds=total_seconds % 60,
            total_minutes=round(total_seconds / 60),
            total_seconds=total_seconds,
        )

    def format(self) -> str:
        return format_duration(self)


def format_duration(duration: Duration) -> str:
    """Human-readable duration such as "1d 2h 3m 4s"; "0s" when empty."""
    parts = []
    if duration.days > 0:
        parts.append(f"{duration.days}d")
    if duration.hours > 0:
        parts.append(f"{duration.hours}h")
    if duration.minutes > 0:
        parts.append(f"{duration.minutes}m")
    if duration.seconds > 0:
        parts.append(f"{duration.seconds}s")
    return " ".join(parts) if parts else "0s"


@dataclass
class DisplaySegment:
    """One calendar day's slice of a possibly multi-day appointment."""
    date: date
    weekday: int  # 0=Monday
    time_start: Optional[time]  # None for all-day
    time_end: Optional[time]
    visible_in_week: bool = False
    visible_in_month: bool = False

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.time_start or time.min)

    @property
    def end(self) -> datetime:
        return datetime.combine(self.date, self.time_end or SEGMENT_END_OF_DAY)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "weekday": self.weekday,
            "time_start": self.time_start.strftime("%H:%M") if self.time_start else None,
            "time_end": self.time_end.strftime("%H:%M") if self.time_end else None,
            "visible_in_week": self.visible_in_week,
            "visible_in_month": self.visible_in_month,
        }


@dataclass
class AppointmentExtras:
    """Values derived from an appointment at normalization time."""
    icon: str
    color_tokens: dict
    duration: Duration
    display_dates: list[DisplaySegment]
    all_day: bool
    in_a_day: bool
    is_today: bool
    is_now: bool

    def to_dict(self) -> dict:
        return {
            "icon": self.icon,
            "color_tokens": dict(self.color_tokens),
            "duration": asdict(self.duration),
            "duration_formatted": self.duration.format(),
            "display_dates": [segment.to_dict() for segment in self.display_dates],
            "all_day": self.all_day,
            "in_a_day": self.in_a_day,
            "is_today": self.is_today,
            "is_now": self.is_now,
        }


@dataclass
class NormalizedAppointment:
    """
    A raw record with parsed bounds and its extras.

    The id is assigned here and used by layout and renderers to refer back
    to the appointment; the raw mapping is a private copy.
    """
    id: str
    start: datetime
    end: datetime
    all_day: bool
    raw: dict
    extras: AppointmentExtras

    @property
    def title(self) -> str:
        return str(self.raw.get("title", ""))

    def to_payload(self) -> dict:
        """Copy for event handlers, split into appointment and extras."""
        appointment = copy.deepcopy(self.raw)
        appointment["id"] = self.id
        appointment["start"] = self.start.isoformat()
        appointment["end"] = self.end.isoformat()
        appointment["allDay"] = self.all_day
        return {"appointment": appointment, "extras": self.extras.to_dict()}


@dataclass
class YearRecord:
    """Aggregate count for one calendar date in the year view."""
    id: str
    date: date
    total: int
    raw: dict
    color_tokens: dict = field(default_factory=dict)
    is_today: bool = False
    is_now: bool = False

    def to_payload(self) -> dict:
        record = copy.deepcopy(self.raw)
        record["id"] = self.id
        record["date"] = self.date.isoformat()
        record["total"] = self.total
        return {
            "appointment": record,
            "extras": {
                "color_tokens": dict(self.color_tokens),
                "is_today": self.is_today,
                "is_now": self.is_now,
            },
        }


def _as_total(value: Any) -> Optional[int]:
    """Integer prefix of value, like a lenient integer parse; None if absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        digits = ""
        for i, ch in enumerate(text):
            if ch.isdigit() or (i == 0 and ch in "+-"):
                digits += ch
            else:
                break
        try:
            return int(digits)
        except ValueError:
            return None
    return None


def _is_all_day(record: dict) -> bool:
    value = record.get("allDay", record.get("all_day", False))
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class AppointmentNormalizer:
    """
    Normalizes raw records against the configuration of one instance.

    Aware timestamps are converted to the instance zone.
    """

    def __init__(self, config: Config):
        self._config = config
        self._zone = config.zone

    def filter_year_records(self, records: list, now: Optional[datetime] = None) -> list[YearRecord]:
        """
        Keep year-view records with a valid date and a positive total.

        total is coerced to int; everything else is dropped silently.
        """
        now = now or now_local(self._zone)
        result = []
        for record in records or []:
            if not isinstance(record, dict):
                continue
            day = parse_date(record.get("date"), self._zone)
            total = _as_total(record.get("total"))
            if day is None or total is None or total <= 0:
                continue
            result.append(YearRecord(
                id=uuid.uuid4().hex,
                date=day,
                total=total,
                raw=copy.deepcopy(record),
                color_tokens=color_tokens(record.get("color"), self._config.main_color),
                is_today=day == now.date(),
                is_now=day.year == now.year,
            ))
        return result

    def normalize(self, records: list, anchor_date: date, search_mode: bool = False,
                  now: Optional[datetime] = None) -> list[NormalizedAppointment]:
        """
        Clean, sort and decorate appointment records.

        Args:
            records: Raw records from the data source
            anchor_date: Reference date of the instance; the week and month
                grids around it decide segment visibility
            search_mode: Keep the server-provided order when set
            now: Wall-clock reference for is_today/is_now

        Returns:
            Normalized appointments. Records whose start or end cannot be
            parsed are skipped.
        """
        now = now or now_local(self._zone)
        week = resolve(ViewType.WEEK, anchor_date, self._config.start_week_on_sunday)
        month = resolve(ViewType.MONTH, anchor_date, self._config.start_week_on_sunday)

        cleaned = []
        for record in records or []:
            if not isinstance(record, dict):
                continue
            start = parse_datetime(record.get("start"), self._zone)
            end = parse_datetime(record.get("end"), self._zone)
            if start is None or end is None:
                if self._config.debug:
                    _debug_print(f"Skipping record with unreadable bounds: {record.get('title')!r}")
                continue
            all_day = _is_all_day(record)
            if all_day:
                start = datetime.combine(start.date(), time.min)
                end = datetime.combine(end.date(), END_OF_DAY)
            if end < start:
                end = start
            cleaned.append((record, start, end, all_day))

        if not search_mode:
            cleaned.sort(key=lambda item: (not item[3], item[1]))

        result = []
        for record, start, end, all_day in cleaned:
            extras = self._build_extras(record, start, end, all_day, now, week, month)
            result.append(NormalizedAppointment(
                id=uuid.uuid4().hex,
                start=start,
                end=end,
                all_day=all_day,
                raw=copy.deepcopy(record),
                extras=extras,
            ))
        return result

    def _build_extras(self, record, start, end, all_day, now, week, month) -> AppointmentExtras:
        icons = self._config.icons
        icon = record.get("icon") or (icons.appointment_all_day if all_day else icons.appointment)

        segments = []
        day = start.date()
        while day <= end.date():
            if all_day:
                time_start = time_end = None
            elif day == start.date():
                time_start = start.time().replace(second=0, microsecond=0)
                if end.date() > day:
                    time_end = SEGMENT_END_OF_DAY
                else:
                    time_end = end.time().replace(second=0, microsecond=0)
            elif day == end.date():
                time_start = time.min
                time_end = end.time().replace(second=0, microsecond=0)
            else:
                time_start, time_end = time.min, SEGMENT_END_OF_DAY

            segments.append(DisplaySegment(
                date=day,
                weekday=day.weekday(),
                time_start=time_start,
                time_end=time_end,
                visible_in_week=week.contains(day),
                visible_in_month=month.contains(day),
            ))
            day += timedelta(days=1)

        return AppointmentExtras(
            icon=icon,
            color_tokens=color_tokens(record.get("color"), self._config.main_color),
            duration=Duration.between(start, end, all_day),
            display_dates=segments,
            all_day=all_day,
            in_a_day=len(segments) == 1,
            is_today=start.date() == now.date(),
            is_now=start <= now <= end,
        )
