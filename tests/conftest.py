"""Shared fixtures and test doubles."""
from concurrent.futures import Future
from datetime import date

import pytest

from calendar_core import calendar as calendar_module
from calendar_core.config import Config
from calendar_core.data_source import PendingRequest
from calendar_core.render import Renderer


class SyncWorker:
    """Network worker stand-in that runs submitted work inline."""

    def __init__(self):
        self.submitted = []

    def submit(self, operation_id, func, *args, **kwargs):
        self.submitted.append(operation_id)
        future = Future()
        try:
            future.set_result(func(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def abort(self, operation_id):
        return False


class ManualWorker:
    """Network worker stand-in that holds work until run_all() is called."""

    def __init__(self):
        self.jobs = []

    def submit(self, operation_id, func, *args, **kwargs):
        future = Future()
        self.jobs.append((operation_id, future, func, args, kwargs))
        return future

    def abort(self, operation_id):
        for job_id, future, *_ in self.jobs:
            if job_id == operation_id:
                future.cancel()
                return True
        return False

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for _, future, func, args, kwargs in jobs:
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(func(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


class ControlledCallback:
    """Callback data source whose calls settle only when resolved by the test."""

    def __init__(self):
        self.calls = []
        self.futures = []

    def __call__(self, query):
        self.calls.append(query)
        future = Future()
        self.futures.append(future)
        return future

    def resolve(self, index, records):
        self.futures[index].set_result(records)

    def fail(self, index, error):
        self.futures[index].set_exception(error)


class FakeDispatcher:
    """Request dispatcher that hands out unresolved futures."""

    def __init__(self):
        self.requests = []

    def dispatch(self, endpoint, query):
        pending = PendingRequest(Future(), abortable=True)
        self.requests.append((endpoint, query, pending))
        return pending


class RecordingRenderer(Renderer):
    """Keeps every view model it receives."""

    def __init__(self):
        self.models = []
        self.now_updates = []

    def render(self, view_model):
        self.models.append(view_model)

    def update_now(self, indicator):
        self.now_updates.append(indicator)


class EventRecorder:
    """Catch-all handler collecting (name, args) pairs."""

    def __init__(self):
        self.events = []

    def __call__(self, name, *args):
        self.events.append((name, args))

    def names(self):
        return [name for name, _ in self.events]

    def of(self, name):
        return [args for event, args in self.events if event == name]


@pytest.fixture
def config():
    """Monday-first configuration anchored on Thursday 2024-03-14."""
    return Config(
        start_date=date(2024, 3, 14),
        start_week_on_sunday=False,
        now_refresh_interval=0,
    )


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture(autouse=True)
def clean_registry():
    yield
    for instance in list(calendar_module._instances.values()):
        instance.destroy()


@pytest.fixture(scope="session")
def qapp():
    """A Qt core application for timer tests."""
    from PySide6.QtCore import QCoreApplication
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
