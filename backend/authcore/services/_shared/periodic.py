"""Background sweep runner used by stores and trackers with a cleanup timer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta

log = logging.getLogger(__name__)


class PeriodicTask:
    """
    Run ``func`` every ``interval`` on a daemon thread until :meth:`stop`.

    The first run happens one interval after :meth:`start`. An exception
    raised by ``func`` is logged and the loop keeps going. :meth:`stop`
    signals the thread and returns without waiting for a run in progress.

    :param name: Thread name, also used in log lines.
    :param interval: Delay between runs.
    :param func: Zero-argument callable.
    """

    def __init__(self, name: str, interval: timedelta, func: Callable[[], object]) -> None:
        if interval <= timedelta(0):
            raise ValueError(f"{name}: interval must be positive")
        self.name = name
        self.interval = interval
        self.func = func
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop; a second call while running is a no-op."""
        with self._lock:
            if self.running:
                return
            self._stop = threading.Event()
            self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
            self._thread.start()
        log.debug("Started periodic task %s every %ss", self.name, self.interval.total_seconds())

    def stop(self) -> None:
        with self._lock:
            self._stop.set()
            self._thread = None

    def _loop(self) -> None:
        stop = self._stop
        seconds = self.interval.total_seconds()
        while not stop.wait(seconds):
            try:
                self.func()
            except Exception:
                log.exception("Periodic task %s failed", self.name)
