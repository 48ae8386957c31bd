"""
Holiday lookup.

The built-in provider queries openholidaysapi.org for public holidays and,
when a federal state is configured, school holidays. Any callable with the
same signature can be used instead.
"""

import itertools
import sys
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional, Union

import requests

from .config import Config
from .date_range import TimeWindow
from .network_worker import NetworkWorker, get_network_worker
from .timezone_utils import parse_date


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] HOLIDAYS: {msg}", file=sys.stderr)


class HolidayApiError(RuntimeError):
    """Raised when the holiday API cannot be reached or answers badly."""


@dataclass(frozen=True)
class Holiday:
    start_date: date
    end_date: date
    title: str

    def to_dict(self) -> dict:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "title": self.title,
        }


def language_and_country(locale: str) -> tuple[str, str]:
    """
    Split a locale such as "en-GB" into ("EN", "GB").

    Without a region the language doubles as country code.
    """
    parts = (locale or "en").replace("_", "-").split("-")
    language = parts[0].upper() or "EN"
    country = parts[1].upper() if len(parts) > 1 and parts[1] else language
    return language, country


def _to_holiday(item: Union[Holiday, dict]) -> Optional[Holiday]:
    if isinstance(item, Holiday):
        return item
    if not isinstance(item, dict):
        return None
    start = parse_date(item.get("startDate", item.get("start_date")))
    end = parse_date(item.get("endDate", item.get("end_date"))) or start
    if start is None:
        return None
    return Holiday(start, end, str(item.get("title") or ""))


def dedupe_holidays(items: list) -> list[Holiday]:
    """Drop repeated (start, end, title) entries, keeping the first."""
    seen = set()
    result = []
    for item in items:
        holiday = _to_holiday(item)
        if holiday is None:
            continue
        key = (holiday.start_date, holiday.end_date, holiday.title)
        if key in seen:
            continue
        seen.add(key)
        result.append(holiday)
    return result


def _first_name(entry: dict) -> str:
    names = entry.get("name") or []
    if names and isinstance(names[0], dict):
        return names[0].get("text") or ""
    return ""


class OpenHolidaysProvider:
    """
    Client for the OpenHolidays API.
    """

    BASE_URL = "https://openholidaysapi.org"

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30):
        self._session = session or requests.Session()
        self._timeout = timeout

    def _get(self, path: str, params: dict) -> list:
        url = f"{self.BASE_URL}/{path}"
        try:
            response = self._session.get(
                url,
                params=params,
                timeout=self._timeout,
                headers={'Accept': 'application/json'}
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise HolidayApiError(f"Errors when calling up the holidays: {e}") from e
        except ValueError as e:
            raise HolidayApiError(f"Invalid holiday response: {e}") from e
        if not isinstance(data, list):
            raise HolidayApiError("Holiday response is not a list")
        return data

    def public_holidays(self, country: str, language: str, valid_from: date, valid_to: date,
                        federal_state: Optional[str] = None) -> list[Holiday]:
        country = country.upper()
        params = {
            "countryIsoCode": country,
            "languageIsoCode": language.upper(),
            "validFrom": valid_from.isoformat(),
            "validTo": valid_to.isoformat(),
        }
        if federal_state:
            params["subdivisionCode"] = f"{country}-{federal_state.upper()}"
        return self._parse(self._get("PublicHolidays", params))

    def school_holidays(self, country: str, valid_from: date, valid_to: date,
                        federal_state: Optional[str] = None) -> list[Holiday]:
        country = country.upper()
        params = {
            "countryIsoCode": country,
            "validFrom": valid_from.isoformat(),
            "validTo": valid_to.isoformat(),
        }
        # Only two-letter state codes form a valid subdivision
        if federal_state and len(federal_state) == 2:
            params["subdivisionCode"] = f"{country}-{federal_state.upper()}"
        return self._parse(self._get("SchoolHolidays", params))

    def _parse(self, entries: list) -> list[Holiday]:
        result = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            start = parse_date(entry.get("startDate"))
            end = parse_date(entry.get("endDate")) or start
            if start is None:
                continue
            result.append(Holiday(start, end, _first_name(entry)))
        return result

    def __call__(self, window: TimeWindow, country: str, language: str,
                 subdivision: Optional[str] = None) -> list[Holiday]:
        holidays = self.public_holidays(country, language, window.start, window.end, subdivision)
        if subdivision:
            holidays += self.school_holidays(country, window.start, window.end, subdivision)
        return holidays


HolidayProvider = Callable[[TimeWindow, str, str, Optional[str]], Any]


class HolidayLoader:
    """
    Loads holidays for a window on the network worker.

    At most one load runs at a time. A load requested meanwhile is held back
    and only the latest one is started once the running load settles; the
    running load's result is then dropped instead of handed to on_loaded.
    """

    _ids = itertools.count(1)

    def __init__(self, config: Config, provider: Optional[HolidayProvider] = None,
                 worker: Optional[NetworkWorker] = None,
                 on_loaded: Optional[Callable[[TimeWindow, list], None]] = None):
        self.config = config
        self._provider = provider
        self._worker = worker
        self._on_loaded = on_loaded
        self._lock = threading.Lock()
        self._follow_up: Optional[TimeWindow] = None
        self.loading = False

    @property
    def enabled(self) -> bool:
        return self._provider is not None or self.config.holidays is not None

    @property
    def provider(self) -> HolidayProvider:
        if self._provider is None:
            self._provider = OpenHolidaysProvider(timeout=self.config.request_timeout)
        return self._provider

    def parameters(self) -> tuple[str, str, Optional[str]]:
        """(country, language, federal_state) from the holidays config and locale."""
        language, country = language_and_country(self.config.locale)
        settings = self.config.holidays
        if settings is not None:
            country = settings.country or country
            language = settings.language or language
            return country, language, settings.federal_state
        return country, language, None

    def load(self, window: TimeWindow) -> Optional[Future]:
        """
        Start loading holidays for window.

        Returns:
            Future resolving to a de-duplicated list of Holiday, or None when
            holidays are disabled or the window was queued behind a running
            load.
        """
        if not self.enabled:
            return None
        with self._lock:
            if self.loading:
                if self.config.debug:
                    _debug_print(f"Holiday load running, queued {window.start}..{window.end}")
                self._follow_up = window
                return None
            self.loading = True
        return self._start(window)

    def _start(self, window: TimeWindow) -> Future:
        country, language, federal_state = self.parameters()
        if self.config.debug:
            _debug_print(f"Loading holidays {window.start}..{window.end} "
                         f"country={country} language={language} state={federal_state}")

        worker = self._worker or get_network_worker()
        try:
            future = worker.submit(f"holidays-{next(self._ids)}", self._run,
                                   window, country, language, federal_state)
        except Exception:
            with self._lock:
                self.loading = False
                self._follow_up = None
            raise
        future.add_done_callback(lambda f: self._on_done(window, f))
        return future

    def _run(self, window, country, language, federal_state) -> list[Holiday]:
        result = self.provider(window, country, language, federal_state)
        if isinstance(result, Future):
            result = result.result()
        return dedupe_holidays(result or [])

    def _on_done(self, window: TimeWindow, future: Future) -> None:
        with self._lock:
            follow_up, self._follow_up = self._follow_up, None
            if follow_up is not None and (follow_up.start, follow_up.end) == (window.start, window.end):
                follow_up = None
            if follow_up is None:
                self.loading = False

        failed = future.cancelled() or future.exception() is not None
        if failed and self.config.debug and not future.cancelled():
            _debug_print(f"Holiday load failed: {future.exception()}")

        if follow_up is not None:
            if self.config.debug:
                _debug_print(f"Dropping holidays for {window.start}..{window.end}")
            self._start(follow_up)
            return
        if not failed and self._on_loaded is not None:
            self._on_loaded(window, future.result())
