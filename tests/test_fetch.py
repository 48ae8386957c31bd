"""Unit tests for query building and fetch coordination."""
import threading
from datetime import date
from unittest.mock import Mock

import pytest
import requests

from calendar_core.data_source import CallbackSource, RequestDispatcher, RequestSource
from calendar_core.date_range import ViewType
from calendar_core.events import EventBus
from calendar_core.fetch import FetchCoordinator, build_query
from calendar_core.network_worker import NetworkWorker
from calendar_core.view_state import ViewState
from conftest import ControlledCallback, FakeDispatcher

RECORD = {"title": "Standup", "start": "2024-03-14 09:30", "end": "2024-03-14 10:00"}


def _state(view=ViewType.WEEK, day=date(2024, 3, 14)):
    return ViewState(view=view, date=day)


@pytest.fixture
def events(recorder):
    bus = EventBus()
    bus.on("all", recorder)
    return bus


class TestBuildQuery:
    """Test cases for build_query()."""

    def test_month_window(self, config):
        query = build_query(config, _state(ViewType.MONTH))
        assert query == {"fromDate": "2024-02-26", "toDate": "2024-03-31", "view": "month"}

    def test_year(self, config):
        assert build_query(config, _state(ViewType.YEAR)) == {"year": 2024, "view": "year"}

    def test_search(self, config):
        state = _state()
        state.enter_search("dentist")
        state.pagination.go_to_page(2)
        assert build_query(config, state) == {"limit": 10, "offset": 10, "search": "dentist"}

    def test_query_params_cannot_override_protected_keys(self, config):
        def query_params(query):
            return {"calendar": "work", "view": "year", "fromDate": "1970-01-01"}

        query = build_query(config, _state(), query_params)
        assert query == {
            "fromDate": "2024-03-11", "toDate": "2024-03-17", "view": "week", "calendar": "work"}

    def test_query_params_receives_a_copy(self, config):
        def query_params(query):
            query["view"] = "changed"
            return None

        assert build_query(config, _state(), query_params)["view"] == "week"


class TestFetchCallbackSource:
    """Test cases for callback-based loads."""

    def test_applied_load(self, config, events, recorder):
        coordinator = FetchCoordinator(config, CallbackSource(lambda query: [RECORD]), events)

        outcome = coordinator.fetch(_state()).result(timeout=1)

        assert outcome.applied is True
        assert outcome.total == 1
        assert [a.title for a in coordinator.appointments] == ["Standup"]
        assert coordinator.busy is False
        assert recorder.names() == ["before-load", "after-load"]
        [(payloads,)] = recorder.of("after-load")
        assert payloads[0]["appointment"]["title"] == "Standup"

    def test_before_load_receives_query(self, config, events, recorder):
        coordinator = FetchCoordinator(config, CallbackSource(lambda query: []), events)
        coordinator.fetch(_state())
        [(query,)] = recorder.of("before-load")
        assert query == {"fromDate": "2024-03-11", "toDate": "2024-03-17", "view": "week"}

    def test_busy_fetch_runs_latest_state_after_current(self, config, events, recorder):
        source = ControlledCallback()
        coordinator = FetchCoordinator(config, CallbackSource(source), events)

        first = coordinator.fetch(_state(day=date(2024, 3, 14)))
        second = coordinator.fetch(_state(day=date(2024, 3, 21)))
        third = coordinator.fetch(_state(day=date(2024, 3, 28)))

        assert len(source.calls) == 1
        assert second is third
        source.resolve(0, [RECORD])

        assert first.result(timeout=1).superseded is True
        assert len(source.calls) == 2
        assert source.calls[1]["fromDate"] == "2024-03-25"
        assert recorder.of("after-load") == []

        source.resolve(1, [])
        assert third.result(timeout=1).applied is True
        assert len(recorder.of("after-load")) == 1
        assert coordinator.busy is False

    def test_fetch_from_before_load_is_skipped(self, config, events):
        coordinator = FetchCoordinator(config, CallbackSource(lambda query: []), events)
        nested = []
        events.on("before-load", lambda query: nested.append(coordinator.fetch(_state())))

        outcome = coordinator.fetch(_state()).result(timeout=1)

        assert outcome.applied is True
        assert nested[0].result(timeout=1).skipped is True

    def test_failure_keeps_appointments(self, config, events, recorder):
        source = ControlledCallback()
        coordinator = FetchCoordinator(config, CallbackSource(source), events)
        coordinator.fetch(_state())
        source.resolve(0, [RECORD])

        outcome_future = coordinator.fetch(_state())
        source.fail(1, RuntimeError("backend down"))
        outcome = outcome_future.result(timeout=1)

        assert outcome.applied is False
        assert outcome.error == "RuntimeError: backend down"
        assert coordinator.last_error == "RuntimeError: backend down"
        assert [a.title for a in coordinator.appointments] == ["Standup"]
        assert len(recorder.of("after-load")) == 2
        assert coordinator.busy is False

    def test_raising_callback_reports_failure(self, config, events):
        def callback(query):
            raise ValueError("bad query")

        coordinator = FetchCoordinator(config, CallbackSource(callback), events)
        outcome = coordinator.fetch(_state()).result(timeout=1)
        assert outcome.error == "ValueError: bad query"
        assert coordinator.busy is False

    def test_malformed_payload_reports_failure(self, config, events):
        coordinator = FetchCoordinator(config, CallbackSource(lambda query: "nonsense"), events)
        outcome = coordinator.fetch(_state()).result(timeout=1)
        assert outcome.error.startswith("DataSourceError")

    def test_on_loaded_runs_before_after_load(self, config, events):
        order = []
        events.on("after-load", lambda payloads: order.append("after-load"))
        coordinator = FetchCoordinator(
            config, CallbackSource(lambda query: []), events,
            on_loaded=lambda outcome: order.append("loaded"))
        coordinator.fetch(_state())
        assert order == ["loaded", "after-load"]

    def test_failing_on_loaded_is_reported(self, config, events, recorder):
        def on_loaded(outcome):
            raise RuntimeError("render failed")

        coordinator = FetchCoordinator(
            config, CallbackSource(lambda query: []), events, on_loaded=on_loaded)
        outcome = coordinator.fetch(_state()).result(timeout=1)
        assert outcome.error == "RuntimeError: render failed"
        assert len(recorder.of("after-load")) == 1


class TestFetchRequestSource:
    """Test cases for request-based loads."""

    def test_new_fetch_aborts_pending_request(self, config, events, recorder):
        dispatcher = FakeDispatcher()
        coordinator = FetchCoordinator(config, RequestSource("https://x.test/a", dispatcher), events)

        first = coordinator.fetch(_state(day=date(2024, 3, 14)))
        second = coordinator.fetch(_state(day=date(2024, 3, 21)))

        assert first.result(timeout=1).aborted is True
        assert dispatcher.requests[0][2].aborted is True
        assert len(dispatcher.requests) == 2
        assert coordinator.busy is True

        dispatcher.requests[1][2].future.set_result([RECORD])
        assert second.result(timeout=1).applied is True
        assert len(recorder.of("after-load")) == 1
        assert coordinator.busy is False

    def test_failure_of_aborted_request_is_not_reported(self, config, events, capfd):
        sending, release = threading.Event(), threading.Event()
        response = Mock()
        response.json.return_value = [RECORD]

        def get(url, params=None, **kwargs):
            if params["fromDate"] == "2024-03-11":
                sending.set()
                release.wait(5)
                raise requests.ConnectionError("connection reset after abort")
            return response

        session = Mock()
        session.get.side_effect = get
        worker = NetworkWorker(max_workers=1)
        dispatcher = RequestDispatcher(session=session, worker=worker)
        coordinator = FetchCoordinator(config, RequestSource("https://x.test/a", dispatcher), events)

        first = coordinator.fetch(_state(day=date(2024, 3, 14)))
        assert sending.wait(5)
        second = coordinator.fetch(_state(day=date(2024, 3, 21)))
        release.set()

        assert first.result(timeout=5).aborted is True
        assert second.result(timeout=5).applied is True
        worker.shutdown(wait=True)
        assert "connection reset after abort" not in capfd.readouterr().err

    def test_abort(self, config, events, recorder):
        dispatcher = FakeDispatcher()
        coordinator = FetchCoordinator(config, RequestSource("https://x.test/a", dispatcher), events)
        outcome_future = coordinator.fetch(_state())

        coordinator.abort()

        assert outcome_future.result(timeout=1).aborted is True
        assert coordinator.busy is False
        assert recorder.of("after-load") == []


class TestFetchModes:
    """Test cases for search, year and source-less loads."""

    def test_search_payload(self, config, events):
        coordinator = FetchCoordinator(
            config, CallbackSource(lambda query: {"rows": [RECORD], "total": 37}), events)
        state = _state()
        state.enter_search("stand")
        outcome = coordinator.fetch(state).result(timeout=1)
        assert outcome.total == 37
        assert coordinator.total == 37

    def test_empty_search_term_loads_nothing(self, config, events, recorder):
        source = ControlledCallback()
        coordinator = FetchCoordinator(config, CallbackSource(source), events)
        state = _state()
        state.enter_search("   ")

        outcome = coordinator.fetch(state).result(timeout=1)

        assert outcome.applied is True
        assert source.calls == []
        assert recorder.names() == ["after-load"]

    def test_no_source(self, config, events, recorder):
        coordinator = FetchCoordinator(config, None, events)
        outcome = coordinator.fetch(_state()).result(timeout=1)
        assert outcome.applied is True
        assert coordinator.appointments == []
        assert recorder.of("after-load") == [([],)]

    def test_year_records(self, config, events):
        records = [{"date": "2024-03-14", "total": 2}, {"date": "2024-03-15", "total": 0}]
        coordinator = FetchCoordinator(config, CallbackSource(lambda query: records), events)
        outcome = coordinator.fetch(_state(ViewType.YEAR)).result(timeout=1)
        assert outcome.total == 1
        assert coordinator.appointments[0].total == 2

    def test_closed_coordinator_skips(self, config, events):
        coordinator = FetchCoordinator(config, CallbackSource(lambda query: []), events)
        coordinator.close()
        assert coordinator.fetch(_state()).result(timeout=1).skipped is True
