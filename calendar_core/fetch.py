"""
Fetch coordination for one calendar instance.

At most one load is outstanding per instance. A newer fetch aborts the
pending request of a request-based source. Callback sources cannot be
aborted: while one is busy, new fetches are rejected and the latest
rejected state is fetched once the running call settles, so that a stale
result is never applied after a newer one.

fetch() always returns a Future[FetchOutcome] and never raises.
"""

import sys
import threading
import traceback
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional

from .appointments import AppointmentNormalizer
from .config import Config
from .data_source import DataSource, PendingRequest, completed_future, parse_payload
from .date_range import ViewType, resolve
from .events import EventBus
from .view_state import ViewState


PROTECTED_QUERY_KEYS = ("fromDate", "toDate", "year", "view")


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] FETCH: {msg}", file=sys.stderr)


@dataclass
class FetchOutcome:
    """How one fetch call ended."""
    applied: bool = False
    aborted: bool = False
    superseded: bool = False
    skipped: bool = False
    appointments: list = field(default_factory=list)
    total: int = 0
    query: Optional[dict] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class _Snapshot:
    """The parts of a ViewState a single load depends on."""
    view: ViewType
    date: date
    search_mode: bool
    search_term: str

    @classmethod
    def of(cls, state: ViewState) -> '_Snapshot':
        return cls(state.view, state.date, state.search_mode, state.search_term)


def build_query(config: Config, state: ViewState,
                query_params: Optional[Callable[[dict], dict]] = None) -> dict:
    """
    Request parameters for the state.

    Search queries carry the pagination cursor and the term. Other views
    carry their window, or only the year for the year view. The optional
    query_params hook may add keys but never replaces the protected ones.
    """
    if state.search_mode:
        pagination = state.pagination.to_query() if state.pagination else {
            "limit": config.search.limit, "offset": config.search.offset}
        query = {**pagination, "search": state.search_term}
    elif state.view == ViewType.YEAR:
        query = {"year": state.date.year, "view": ViewType.YEAR.value}
    else:
        window = resolve(state.view, state.date, config.start_week_on_sunday)
        query = {
            "fromDate": window.start.isoformat(),
            "toDate": window.end.isoformat(),
            "view": state.view.value,
        }

    if query_params is not None:
        extra = query_params(dict(query))
        if isinstance(extra, dict):
            for key, value in extra.items():
                if key in PROTECTED_QUERY_KEYS:
                    continue
                query[key] = value
        elif config.debug:
            _debug_print(f"query_params returned {type(extra).__name__}, ignored")
    return query


class FetchCoordinator:
    """
    Owns the request lifecycle and the loaded appointment set of an instance.

    on_loaded is called after every completed load, applied or failed, before
    after-load is emitted, so handlers observe the rebuilt view.
    """

    def __init__(self, config: Config, source: Optional[DataSource], events: EventBus,
                 normalizer: Optional[AppointmentNormalizer] = None,
                 on_loaded: Optional[Callable[[FetchOutcome], None]] = None):
        self.config = config
        self.source = source
        self.query_params = config.query_params
        self._events = events
        self._normalizer = normalizer or AppointmentNormalizer(config)
        self._on_loaded = on_loaded

        self._lock = threading.RLock()
        self.busy = False
        self._pending: Optional[PendingRequest] = None
        self._dispatching = False
        self._follow_up_state: Optional[ViewState] = None
        self._follow_up_future: Optional[Future] = None
        self._closed = False

        self.appointments: list = []
        self.total = 0
        self.last_error: Optional[str] = None

    @property
    def pending(self) -> Optional[PendingRequest]:
        return self._pending

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding the instance state shared with completion callbacks."""
        return self._lock

    def set_config(self, config: Config) -> None:
        with self._lock:
            self.config = config
            self.query_params = config.query_params
            self._normalizer = AppointmentNormalizer(config)

    def clear(self) -> None:
        with self._lock:
            self.appointments = []
            self.total = 0

    def fetch(self, state: ViewState) -> Future:
        """
        Load appointments for the state.

        Returns:
            Future resolving to a FetchOutcome.
        """
        with self._lock:
            if self._closed:
                return completed_future(FetchOutcome(skipped=True))

            if self._dispatching:
                if self.config.debug:
                    _debug_print("fetch called during before-load, skipped")
                return completed_future(FetchOutcome(skipped=True))

            if self.busy:
                if self._pending is not None and self._pending.abortable:
                    if self.config.debug:
                        _debug_print("Aborting pending request")
                    self._pending.abort()
                    self._pending = None
                    self.busy = False
                else:
                    if self.config.debug:
                        _debug_print("Fetch already in progress, request rejected")
                    self._follow_up_state = state
                    if self._follow_up_future is None:
                        self._follow_up_future = Future()
                    return self._follow_up_future

            outcome_future = Future()
            self._start(state, outcome_future)
            return outcome_future

    def _start(self, state: ViewState, outcome_future: Future) -> None:
        """Dispatch one load. Called with the lock held and busy clear."""
        self.busy = True
        snapshot = _Snapshot.of(state)
        query = None

        try:
            query = build_query(self.config, state, self.query_params)

            if (snapshot.search_mode and not snapshot.search_term) or self.source is None:
                # Nothing to request: resolve with an empty result
                self.appointments = []
                self.total = 0
                outcome = FetchOutcome(applied=True, query=query)
                try:
                    self._apply_outcome(outcome)
                finally:
                    self._finish_owner(None)
                outcome_future.set_result(outcome)
                self._run_follow_up()
                return

            self._dispatching = True
            try:
                self._events.emit("before-load", dict(query))
            finally:
                self._dispatching = False

            pending = self.source.load(query)
        except Exception as e:
            try:
                outcome = self._failure(e, query)
            finally:
                self._finish_owner(None)
            outcome_future.set_result(outcome)
            self._run_follow_up()
            return

        self._pending = pending
        pending.future.add_done_callback(
            lambda f: self._on_settled(pending, snapshot, query, outcome_future))

    def _on_settled(self, pending: PendingRequest, snapshot: _Snapshot, query: dict,
                    outcome_future: Future) -> None:
        with self._lock:
            try:
                if self._closed or pending.aborted or pending.future.cancelled():
                    outcome = FetchOutcome(aborted=True, query=query)
                elif self._follow_up_state is not None:
                    if self.config.debug:
                        _debug_print("Dropping stale result, fetching latest state")
                    outcome = FetchOutcome(superseded=True, query=query)
                else:
                    outcome = self._apply_result(pending.future, snapshot, query)
            finally:
                self._finish_owner(pending)

            outcome_future.set_result(outcome)
            self._run_follow_up()

    def _run_follow_up(self) -> None:
        """Start the fetch for the latest rejected state once the slot is free."""
        if self._closed or self.busy or self._follow_up_state is None:
            return
        state, future = self._follow_up_state, self._follow_up_future
        self._follow_up_state = None
        self._follow_up_future = None
        self._start(state, future)

    def _apply_result(self, future: Future, snapshot: _Snapshot, query: dict) -> FetchOutcome:
        try:
            rows, total = parse_payload(future.result(), snapshot.search_mode)
            if snapshot.view == ViewType.YEAR and not snapshot.search_mode:
                records = self._normalizer.filter_year_records(rows)
                total = len(records)
            else:
                records = self._normalizer.normalize(rows, snapshot.date, snapshot.search_mode)
        except Exception as e:
            return self._failure(e, query)

        self.appointments = records
        self.total = total
        self.last_error = None
        outcome = FetchOutcome(applied=True, appointments=list(records), total=total, query=query)
        self._apply_outcome(outcome)
        return outcome

    def _apply_outcome(self, outcome: FetchOutcome) -> None:
        if self._on_loaded is not None:
            try:
                self._on_loaded(outcome)
            except Exception as e:
                message = f"{type(e).__name__}: {e}"
                self.last_error = message
                outcome.error = outcome.error or message
                _debug_print(f"Rebuild after load failed: {message}")
                traceback.print_exc(file=sys.stderr)
        self._events.emit("after-load", [a.to_payload() for a in self.appointments])

    def _failure(self, error: Exception, query: Optional[dict]) -> FetchOutcome:
        """Record an error, keep the current appointments and emit after-load."""
        message = f"{type(error).__name__}: {error}"
        self.last_error = message
        if self.config.debug:
            _debug_print(f"Fetch failed: {message}")
            traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)
        outcome = FetchOutcome(error=message, query=query, appointments=list(self.appointments),
                               total=self.total)
        self._apply_outcome(outcome)
        return outcome

    def _finish_owner(self, pending: Optional[PendingRequest]) -> None:
        # Only the load that still owns the slot may release it
        if self._pending is pending:
            self._pending = None
            self.busy = False

    def abort(self) -> None:
        """Abort any pending request and drop a queued follow-up."""
        with self._lock:
            if self._pending is not None:
                self._pending.abort()
            follow_up_future = self._follow_up_future
            self._follow_up_state = None
            self._follow_up_future = None
        if follow_up_future is not None:
            follow_up_future.set_result(FetchOutcome(aborted=True))

    def close(self) -> None:
        """Stop applying results; used when the instance is destroyed."""
        self.abort()
        with self._lock:
            self._closed = True
            self._pending = None
            self.busy = False
