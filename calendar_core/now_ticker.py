"""
Periodic refresh of the current-time indicator.

Runs on a Qt timer, so it only ticks inside a running Qt event loop. Hosts
without one can call tick() themselves.
"""

from typing import Callable, Optional

from PySide6.QtCore import QCoreApplication, QTimer


class NowTicker:
    """
    Calls on_tick every interval seconds while is_alive() holds.

    The timer stops itself on the first tick after its owner is gone, and
    stop() must be called on teardown.
    """

    def __init__(self, interval_seconds: int, on_tick: Callable[[], None],
                 is_alive: Optional[Callable[[], bool]] = None):
        self._interval_ms = int(interval_seconds) * 1000
        self._on_tick = on_tick
        self._is_alive = is_alive or (lambda: True)
        self._timer: Optional[QTimer] = None

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def is_active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def start(self) -> bool:
        """
        Start ticking.

        Returns:
            False when disabled (interval 0) or when no Qt application exists.
        """
        if self._interval_ms <= 0 or QCoreApplication.instance() is None:
            return False
        if self._timer is None:
            self._timer = QTimer()
            self._timer.timeout.connect(self.tick)
        self._timer.start(self._interval_ms)
        return True

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer.deleteLater()
            self._timer = None

    def tick(self) -> None:
        if not self._is_alive():
            self.stop()
            return
        self._on_tick()
