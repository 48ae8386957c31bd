"""
Event emission for host applications.

Handlers are registered per event name in an explicit table; the "all"
channel receives every event with its name as first argument.
"""

import sys
import traceback
from datetime import datetime
from typing import Callable


EVENT_NAMES = (
    "init",
    "navigate-back",
    "navigate-forward",
    "view",
    "before-load",
    "after-load",
    "add",
    "edit",
    "delete",
    "show-info-window",
    "hide-info-window",
)

ALL_EVENTS = "all"


def _debug_print(msg: str) -> None:
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] EVENTS: {msg}", file=sys.stderr)


class EventBus:
    """
    Typed handler table.

    A failing handler is reported on stderr and does not stop the others or
    the operation that emitted the event.
    """

    def __init__(self):
        self._handlers: dict[str, list[Callable]] = {}

    def on(self, name: str, handler: Callable) -> None:
        if name != ALL_EVENTS and name not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {name}")
        self._handlers.setdefault(name, []).append(handler)

    def off(self, name: str, handler: Callable = None) -> None:
        """Remove one handler, or all handlers for name when handler is None."""
        if handler is None:
            self._handlers.pop(name, None)
            return
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def emit(self, name: str, *args) -> None:
        for handler in list(self._handlers.get(name, [])):
            self._call(name, handler, *args)
        for handler in list(self._handlers.get(ALL_EVENTS, [])):
            self._call(name, handler, name, *args)

    def _call(self, name: str, handler: Callable, *args) -> None:
        try:
            handler(*args)
        except Exception as e:
            _debug_print(f"Handler for '{name}' failed: {type(e).__name__}: {e}")
            traceback.print_exc(file=sys.stderr)
