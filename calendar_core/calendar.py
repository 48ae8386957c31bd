"""
Calendar instances and their registry.

create_calendar() builds an instance handle wired to its data source,
preference store, holiday provider and renderer, and registers it under its
id until destroy() is called.
"""

import sys
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Callable, Optional

from .appointments import NormalizedAppointment
from .config import Config
from .data_source import DataSource, RequestDispatcher, make_data_source
from .date_range import TimeWindow, ViewType, parse_view, resolve
from .events import EventBus
from .fetch import FetchCoordinator, FetchOutcome
from .holidays import HolidayLoader, HolidayProvider
from .layout import OverlapLayoutEngine
from .network_worker import NetworkWorker
from .now_ticker import NowTicker
from .preferences import VIEW_KEY, MemoryPreferenceStore, PreferenceStore
from .render import Renderer, ViewModelBuilder
from .timezone_utils import now_local, parse_date
from .view_state import ViewState


_instances: dict[str, 'CalendarInstance'] = {}
_instances_lock = threading.Lock()


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] CALENDAR: {msg}", file=sys.stderr)


class CalendarInstance:
    """
    Handle for one calendar.

    Operations that trigger a reload return the Future of the fetch, or
    None when they changed nothing. A destroyed handle ignores everything.
    """

    def __init__(self, instance_id: str, config: Config,
                 data_source: Optional[DataSource] = None,
                 store: Optional[PreferenceStore] = None,
                 holiday_provider: Optional[HolidayProvider] = None,
                 renderer: Optional[Renderer] = None,
                 dispatcher: Optional[RequestDispatcher] = None,
                 worker: Optional[NetworkWorker] = None):
        self.instance_id = instance_id
        self.config = config
        self.events = EventBus()
        self.store = store or MemoryPreferenceStore()
        self.renderer = renderer
        self.state = ViewState(
            view=parse_view(config.start_view) or ViewType.MONTH,
            date=config.start_date,
            default_limit=config.search.limit,
            debug=config.debug,
            zone=config.zone,
        )
        self.fetcher = FetchCoordinator(config, data_source, self.events, on_loaded=self._on_loaded)
        self.holidays: list = []
        self.view_model: Optional[dict] = None
        self.initial_load: Optional[Future] = None
        self.destroyed = False

        self._lock = self.fetcher.lock
        self._request_dispatcher = dispatcher or RequestDispatcher(timeout=config.request_timeout, worker=worker)
        self._holiday_loader = HolidayLoader(config, holiday_provider, worker, on_loaded=self._on_holidays)
        self._layout_engine = OverlapLayoutEngine(config.hour_slots, config.layout)
        self._builder = ViewModelBuilder(config)
        self._index: dict[str, Any] = {}
        self.ticker = self._make_ticker(config)

    # Lifecycle

    def init(self) -> Future:
        """Restore the stored view, emit init and load the first window."""
        if self.config.store_state:
            stored = self.store.get(self.instance_id, VIEW_KEY)
            if stored in self.config.views:
                self.state.view = ViewType(stored)
        self.events.emit("init", self.state.view.value)
        self.initial_load = self.rebuild(emit_view=True)
        self.ticker.start()
        return self.initial_load

    def destroy(self) -> None:
        """Abort pending work, stop the timer and unregister."""
        if self.destroyed:
            return
        self.destroyed = True
        self.fetcher.close()
        self.ticker.stop()
        self.events.clear()
        with _instances_lock:
            if _instances.get(self.instance_id) is self:
                del _instances[self.instance_id]

    # Events

    def on(self, name: str, handler: Callable) -> None:
        self.events.on(name, handler)

    def off(self, name: str, handler: Callable = None) -> None:
        self.events.off(name, handler)

    # Read access

    @property
    def view(self) -> ViewType:
        return self.state.view

    @property
    def appointments(self) -> list:
        return list(self.fetcher.appointments)

    @property
    def busy(self) -> bool:
        return self.fetcher.busy

    @property
    def last_error(self) -> Optional[str]:
        return self.fetcher.last_error

    def get_appointment(self, appointment_id: str) -> Optional[dict]:
        """Copy of an appointment with its extras, by layout id."""
        with self._lock:
            item = self._index.get(appointment_id)
            return item.to_payload() if item is not None else None

    # Navigation

    def set_view(self, view) -> Optional[Future]:
        """
        Switch view. Leaves search mode when active.

        Setting the already active view outside search mode does nothing.
        """
        if self.destroyed:
            return None
        with self._lock:
            left_search = self.state.exit_search()
            changed = self.state.set_view(view)
            if not changed and not left_search:
                return None
            self._persist_view()
        return self.rebuild(emit_view=True)

    def navigate_back(self) -> Optional[Future]:
        return self._navigate(-1, "navigate-back")

    def navigate_forward(self) -> Optional[Future]:
        return self._navigate(1, "navigate-forward")

    def _navigate(self, step: int, event: str) -> Optional[Future]:
        if self.destroyed:
            return None
        with self._lock:
            moved = self.state.navigate(step)
            if moved is None:
                return None
            old, new = moved
            self.events.emit(event, self.state.view.value, old, new)
        return self.rebuild()

    def set_date(self, value) -> Optional[Future]:
        """
        Jump to a date.

        value is a date, an ISO date string, or a mapping with "date" and
        optionally "view".
        """
        if self.destroyed:
            return None
        view = None
        if isinstance(value, dict):
            view = value.get("view")
            value = value.get("date")
        target = parse_date(value, self.config.zone) if value is not None else None
        if value is not None and target is None:
            raise ValueError(f"Invalid date: {value!r}")

        with self._lock:
            if self.state.search_mode:
                if self.config.debug:
                    _debug_print("set_date ignored in search mode")
                return None
            view_changed = view is not None and self.state.set_view(view)
            if view_changed:
                self._persist_view()
            if target is not None:
                self.state.set_date(target)
        return self.rebuild(emit_view=view_changed)

    def set_today(self, view=None) -> Optional[Future]:
        if self.destroyed:
            return None
        with self._lock:
            previous = self.state.view
            if not self.state.set_today(view):
                return None
            view_changed = self.state.view != previous
            if view_changed:
                self._persist_view()
        return self.rebuild(emit_view=view_changed)

    def _persist_view(self) -> None:
        if self.config.store_state:
            self.store.set(self.instance_id, VIEW_KEY, self.state.view.value)
        else:
            self.store.remove(self.instance_id, VIEW_KEY)

    # Search

    def enter_search(self, term: str) -> Optional[Future]:
        """
        Search for term. An empty term issues no request and clears the
        current appointments.
        """
        if self.destroyed:
            return None
        with self._lock:
            self.state.enter_search(term)
        return self.rebuild()

    def exit_search(self) -> Optional[Future]:
        if self.destroyed:
            return None
        with self._lock:
            if not self.state.exit_search():
                return None
        return self.rebuild(emit_view=True)

    def set_search_page(self, page: int) -> Optional[Future]:
        if self.destroyed:
            return None
        with self._lock:
            if not self.state.search_mode or self.state.pagination is None:
                return None
            self.state.pagination.go_to_page(page)
        return self.rebuild()

    # Reloading

    def refresh(self, url=None, view=None, query_params: Optional[Callable[[dict], dict]] = None) -> Optional[Future]:
        """Reload, optionally with a new data source, view or query hook."""
        if self.destroyed:
            return None
        view_changed = False
        with self._lock:
            if url is not None:
                self.fetcher.source = make_data_source(url, self._request_dispatcher)
            if query_params is not None:
                self.fetcher.query_params = query_params
            if view is not None:
                view_changed = self.state.set_view(view)
                if view_changed:
                    self._persist_view()
        return self.rebuild(emit_view=view_changed)

    def update_options(self, **options) -> Optional[Future]:
        """Replace configuration options and reload."""
        if self.destroyed:
            return None
        with self._lock:
            config = self.config.updated(**options)
            self._apply_config(config)
        return self.rebuild()

    def _make_ticker(self, config: Config) -> NowTicker:
        return NowTicker(config.now_refresh_interval, self.refresh_now, lambda: not self.destroyed)

    def _apply_config(self, config: Config) -> None:
        previous = self.config
        self.config = config
        self.fetcher.set_config(config)
        self.state.set_default_limit(config.search.limit)
        self.state.debug = config.debug
        self.state.zone = config.zone
        if self.state.view.value not in config.views:
            self.state.view = ViewType(config.start_view)
        self._holiday_loader.config = config
        self._layout_engine = OverlapLayoutEngine(config.hour_slots, config.layout)
        self._builder = ViewModelBuilder(config)
        if config.now_refresh_interval != previous.now_refresh_interval:
            self.ticker.stop()
            self.ticker = self._make_ticker(config)
            if self.initial_load is not None:
                self.ticker.start()

    def clear(self) -> None:
        """Drop the current appointment set and re-render."""
        if self.destroyed:
            return
        with self._lock:
            self.fetcher.clear()
            self._index = {}
            self._render()

    def rebuild(self, emit_view: bool = False) -> Future:
        """Reload data for the current state."""
        with self._lock:
            if emit_view:
                self.events.emit("view", self.state.view.value)
            if not self.state.search_mode:
                self._load_holidays()
            return self.fetcher.fetch(self.state)

    # Interaction

    def show_info_window(self, appointment_id: str) -> Optional[dict]:
        payload = self.get_appointment(appointment_id)
        if payload is not None and not self.destroyed:
            self.events.emit("show-info-window", payload["appointment"], payload["extras"])
        return payload

    def hide_info_window(self) -> None:
        if not self.destroyed:
            self.events.emit("hide-info-window")

    def request_edit(self, appointment_id: str) -> Optional[dict]:
        payload = self.get_appointment(appointment_id)
        if payload is not None and not self.destroyed:
            self.events.emit("edit", payload["appointment"], payload["extras"])
        return payload

    def request_delete(self, appointment_id: str) -> Optional[dict]:
        payload = self.get_appointment(appointment_id)
        if payload is not None and not self.destroyed:
            self.events.emit("delete", payload["appointment"], payload["extras"])
        return payload

    def request_add(self, start: datetime, end: Optional[datetime] = None) -> dict:
        """Ask the host to create an appointment in the given slot."""
        data = {
            "start": start.isoformat(),
            "end": (end or start).isoformat(),
            "view": self.state.view.value,
        }
        if not self.destroyed:
            self.events.emit("add", data)
        return data

    # Rendering

    def now_indicator(self) -> dict:
        window = resolve(self.state.view, self.state.date, self.config.start_week_on_sunday)
        return self._builder.now_indicator(window, now_local(self.config.zone))

    def refresh_now(self) -> None:
        """Push a fresh current-time indicator to the renderer."""
        if self.destroyed or self.state.search_mode:
            return
        if self.state.view not in (ViewType.DAY, ViewType.WEEK):
            return
        indicator = self.now_indicator()
        if self.renderer is not None:
            self.renderer.update_now(indicator)

    def _on_loaded(self, outcome: FetchOutcome) -> None:
        self._index = {a.id: a for a in self.fetcher.appointments}
        self._render()

    def _render(self) -> None:
        view = self.state.effective_view
        layouts = None
        if view in (ViewType.DAY, ViewType.WEEK):
            window = resolve(view, self.state.date, self.config.start_week_on_sunday)
            timed = [a for a in self.fetcher.appointments if isinstance(a, NormalizedAppointment)]
            layouts = self._layout_engine.layout(timed, window, view)
        self.view_model = self._builder.build(
            self.state,
            self.fetcher.appointments,
            self.fetcher.total,
            layouts=layouts,
            holidays=self.holidays,
            now=now_local(self.config.zone),
        )
        if self.renderer is not None:
            self.renderer.render(self.view_model)

    def _holiday_window(self) -> TimeWindow:
        return resolve(self.state.effective_view, self.state.date, self.config.start_week_on_sunday)

    def _load_holidays(self) -> None:
        self._holiday_loader.load(self._holiday_window())

    def _on_holidays(self, window: TimeWindow, holidays: list) -> None:
        with self._lock:
            if self.destroyed:
                return
            current = self._holiday_window()
            if (window.start, window.end) != (current.start, current.end):
                if self.config.debug:
                    _debug_print(f"Dropping holidays for {window.start}..{window.end}")
                return
            self.holidays = holidays
            if self.view_model is not None:
                self._render()


def create_calendar(instance_id: str, config: Optional[Config] = None, data_source=None, *,
                    store: Optional[PreferenceStore] = None,
                    holiday_provider: Optional[HolidayProvider] = None,
                    renderer: Optional[Renderer] = None,
                    dispatcher: Optional[RequestDispatcher] = None,
                    worker: Optional[NetworkWorker] = None,
                    handlers: Optional[dict[str, Callable]] = None) -> CalendarInstance:
    """
    Create, register and initialize a calendar instance.

    Args:
        instance_id: Registry key; an existing instance with the same id is
            destroyed first
        config: Configuration, defaults when None
        data_source: Endpoint URL, callable or DataSource; config.url is
            used when None
        store: Preference store for the remembered view
        holiday_provider: Replaces the built-in OpenHolidays provider
        renderer: Receives view models
        dispatcher: Request dispatcher for URL data sources
        worker: Network worker for background loads
        handlers: Event handlers registered before init is emitted
    """
    config = config or Config()

    if data_source is None:
        data_source = config.url
    if dispatcher is None:
        dispatcher = RequestDispatcher(timeout=config.request_timeout, worker=worker)
    source = make_data_source(data_source, dispatcher)

    existing = get_instance(instance_id)
    if existing is not None:
        existing.destroy()

    instance = CalendarInstance(instance_id, config, source, store=store,
                                holiday_provider=holiday_provider, renderer=renderer,
                                dispatcher=dispatcher, worker=worker)
    for name, handler in (handlers or {}).items():
        instance.on(name, handler)

    with _instances_lock:
        _instances[instance_id] = instance
    instance.init()
    return instance


def get_instance(instance_id: str) -> Optional[CalendarInstance]:
    with _instances_lock:
        return _instances.get(instance_id)
