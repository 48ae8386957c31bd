"""
Background execution of blocking network calls.

Appointment requests and holiday lookups are submitted under an operation
id and run on a small thread pool. Callers get the Future back; any
completion callback they attach runs on the worker thread.
"""

import sys
import threading
import time
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] NETWORK: {msg}", file=sys.stderr)


@dataclass
class _Operation:
    operation_id: str
    future: Future
    submitted_at: float
    aborted: bool = False


class NetworkWorker:
    """
    Thread pool keyed by operation id.

    Failed operations are reported on stderr with their traceback, unless
    they were aborted; the exception itself stays on the Future for the
    caller.
    """

    def __init__(self, max_workers: int = 3):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="network")
        self._operations: dict[str, _Operation] = {}
        self._lock = threading.Lock()

    def submit(self, operation_id: str, func: Callable, *args, **kwargs) -> Future:
        """
        Run func(*args, **kwargs) in the background.

        Args:
            operation_id: Identifier used for cancel() and is_pending()

        Returns:
            The Future of the call.
        """
        future = self._executor.submit(func, *args, **kwargs)
        operation = _Operation(operation_id, future, time.monotonic())
        with self._lock:
            self._operations[operation_id] = operation
        future.add_done_callback(lambda f: self._finished(operation))
        return future

    def _finished(self, operation: _Operation) -> None:
        with self._lock:
            if self._operations.get(operation.operation_id) is operation:
                del self._operations[operation.operation_id]

        future = operation.future
        if operation.aborted or future.cancelled() or future.exception() is None:
            return
        error = future.exception()
        elapsed = time.monotonic() - operation.submitted_at
        _debug_print(f"Operation '{operation.operation_id}' failed after {elapsed:.1f}s: "
                     f"{type(error).__name__}: {error}")
        traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)

    def is_pending(self, operation_id: str) -> bool:
        with self._lock:
            return operation_id in self._operations

    def pending_operations(self) -> list[str]:
        """Ids of operations that are queued or running, oldest first."""
        with self._lock:
            operations = sorted(self._operations.values(), key=lambda op: op.submitted_at)
        return [op.operation_id for op in operations]

    def cancel(self, operation_id: str) -> bool:
        """
        Cancel a queued operation.

        Returns:
            False if the operation is unknown, already running or finished.
        """
        with self._lock:
            operation = self._operations.get(operation_id)
        return operation.future.cancel() if operation is not None else False

    def abort(self, operation_id: str) -> bool:
        """
        Give up on an operation.

        A queued operation is cancelled. A running one cannot be stopped, but
        its outcome is no longer reported.

        Returns:
            False if the operation is unknown or already finished.
        """
        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is None:
                return False
            operation.aborted = True
        operation.future.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every queued operation; returns how many were cancelled."""
        with self._lock:
            futures = [op.future for op in self._operations.values()]
        return sum(1 for future in futures if future.cancel())

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_global_worker: Optional[NetworkWorker] = None
_global_lock = threading.Lock()


def get_network_worker() -> NetworkWorker:
    """Shared worker, created on first use."""
    global _global_worker
    with _global_lock:
        if _global_worker is None:
            _global_worker = NetworkWorker()
        return _global_worker


def shutdown_network_worker() -> None:
    """Drop queued work and shut the shared worker down without waiting."""
    global _global_worker
    with _global_lock:
        worker, _global_worker = _global_worker, None
    if worker is not None:
        worker.cancel_all()
        worker.shutdown(wait=False)
