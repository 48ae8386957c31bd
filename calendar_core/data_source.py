"""
Data sources for appointment records.

Two kinds are supported: a callback invoked with the query, and an HTTP
endpoint resolved through a RequestDispatcher. Both are driven through
PendingRequest handles; only request-based handles can be aborted.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any, Callable, Optional, Union

import requests

from .network_worker import NetworkWorker, get_network_worker


USER_AGENT = "bs-calendar-core/1.0"


class DataSourceError(RuntimeError):
    """Raised for transport failures and malformed payloads."""


class PendingRequest:
    """
    Cancellation handle for one outstanding load.

    Once aborted, the handle stays aborted: a result that still arrives is
    to be discarded and an error it raises is not reported.
    """

    def __init__(self, future: Future, abortable: bool = True,
                 on_abort: Optional[Callable[[], Any]] = None):
        self.future = future
        self.abortable = abortable
        self.aborted = False
        self._on_abort = on_abort

    def abort(self) -> bool:
        """Abort the request; returns False for handles that cannot be aborted."""
        if not self.abortable:
            return False
        self.aborted = True
        if self._on_abort is not None:
            self._on_abort()
        self.future.cancel()
        return True

    @property
    def done(self) -> bool:
        return self.future.done()


def completed_future(result: Any = None, error: Optional[BaseException] = None) -> Future:
    future = Future()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
    return future


class RequestDispatcher:
    """
    Issues GET requests for request-based data sources on the network worker.
    """

    _ids = itertools.count(1)

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30,
                 worker: Optional[NetworkWorker] = None):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._worker = worker

    @property
    def worker(self) -> NetworkWorker:
        return self._worker or get_network_worker()

    def get_json(self, endpoint: str, query: dict) -> Any:
        """
        Blocking GET returning the decoded JSON body.

        Raises:
            DataSourceError: on HTTP or transport errors and non-JSON bodies
        """
        return _HttpCall(self, endpoint, query).run()

    def open(self, endpoint: str, query: dict) -> requests.Response:
        """Send the GET and return the response once its headers are in."""
        try:
            response = self._session.get(
                endpoint,
                params=query,
                timeout=self._timeout,
                stream=True,
                headers={
                    'User-Agent': USER_AGENT,
                    'Accept': 'application/json'
                }
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise DataSourceError(f"Request to {endpoint} failed: {e}") from e
        return response

    @staticmethod
    def decode(endpoint: str, response: requests.Response) -> Any:
        """Read and decode the body of a response returned by open()."""
        try:
            return response.json()
        except ValueError as e:
            raise DataSourceError(f"Invalid JSON from {endpoint}: {e}") from e
        except requests.RequestException as e:
            raise DataSourceError(f"Request to {endpoint} failed: {e}") from e

    def dispatch(self, endpoint: str, query: dict) -> PendingRequest:
        """
        Run the GET in the background and return an abortable handle.

        Aborting closes the response of a running request, which ends a body
        transfer still in progress, and keeps its failure from being reported.
        """
        operation_id = f"appointments-{next(self._ids)}"
        worker = self.worker
        call = _HttpCall(self, endpoint, dict(query))
        future = worker.submit(operation_id, call.run)

        def abort():
            worker.abort(operation_id)
            call.close()

        return PendingRequest(future, abortable=True, on_abort=abort)


class _HttpCall:
    """One GET whose response can be closed from another thread."""

    def __init__(self, dispatcher: RequestDispatcher, endpoint: str, query: dict):
        self._dispatcher = dispatcher
        self._endpoint = endpoint
        self._query = query
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None
        self._closed = False

    def run(self) -> Any:
        response = self._dispatcher.open(self._endpoint, self._query)
        with self._lock:
            self._response = response
            closed = self._closed
        if closed:
            response.close()
            raise DataSourceError(f"Request to {self._endpoint} aborted")
        return self._dispatcher.decode(self._endpoint, response)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            response = self._response
        if response is not None:
            response.close()


class DataSource(ABC):
    """Something appointments can be loaded from."""

    abortable = False

    @abstractmethod
    def load(self, query: dict) -> PendingRequest:
        """Start loading records for query."""


class CallbackSource(DataSource):
    """
    Data source backed by a host callable.

    The callable receives the query mapping and returns the records, either
    directly or as a Future. Calls cannot be aborted.
    """

    abortable = False

    def __init__(self, func: Callable[[dict], Any]):
        self._func = func

    def load(self, query: dict) -> PendingRequest:
        try:
            result = self._func(dict(query))
        except Exception as e:
            return PendingRequest(completed_future(error=e), abortable=False)
        if isinstance(result, Future):
            return PendingRequest(result, abortable=False)
        return PendingRequest(completed_future(result), abortable=False)


class RequestSource(DataSource):
    """Data source backed by an HTTP endpoint answering GET with JSON."""

    abortable = True

    def __init__(self, endpoint: str, dispatcher: Optional[RequestDispatcher] = None):
        self.endpoint = endpoint
        self._dispatcher = dispatcher or RequestDispatcher()

    def load(self, query: dict) -> PendingRequest:
        return self._dispatcher.dispatch(self.endpoint, query)


def make_data_source(source: Union[None, str, Callable, DataSource],
                     dispatcher: Optional[RequestDispatcher] = None) -> Optional[DataSource]:
    """Wrap an endpoint string or a callable in the matching DataSource."""
    if source is None or isinstance(source, DataSource):
        return source
    if isinstance(source, str):
        return RequestSource(source, dispatcher)
    if callable(source):
        return CallbackSource(source)
    raise TypeError(f"Unsupported data source: {source!r}")


def parse_payload(payload: Any, search_mode: bool) -> tuple[list, int]:
    """
    Split a loaded payload into records and total.

    Search responses are {"rows": [...], "total": n}; other responses are a
    plain list. A bare list in search mode counts its own length.

    Raises:
        DataSourceError: if the payload has neither shape
    """
    if payload is None:
        return [], 0
    if isinstance(payload, dict):
        rows = payload.get("rows")
        if not isinstance(rows, list):
            raise DataSourceError("Response object has no 'rows' list")
        try:
            total = int(payload.get("total", len(rows)))
        except (TypeError, ValueError):
            total = len(rows)
        return rows, total
    if isinstance(payload, (list, tuple)):
        return list(payload), len(payload)
    kind = "search" if search_mode else "appointment"
    raise DataSourceError(f"Unexpected {kind} payload of type {type(payload).__name__}")
