"""
Polling ticker

Runs a callback on a fixed interval until its cancellation token is set.
The ticker is owned by the caller (a tracking poller, a UI elapsed-time
refresher); the domain core never keeps timers of its own.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class PollingTicker:

    def __init__(self, interval_seconds: float, callback: Callable[[], None]):
        if interval_seconds < 0:
            raise ValueError("Interval cannot be negative")
        self.interval_seconds = interval_seconds
        self._callback = callback
        self.cancelled = threading.Event()
        self._thread: threading.Thread | None = None

    def run(self) -> int:
        """Tick in the current thread until cancelled; returns the tick count"""
        ticks = 0
        while not self.cancelled.is_set():
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Ticker callback failed: {e}", exc_info=True)
            ticks += 1
            if self.cancelled.wait(self.interval_seconds):
                break
        return ticks

    def start(self) -> threading.Thread:
        if self._thread is not None:
            raise RuntimeError("Ticker already started")
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        return self._thread

    def cancel(self, timeout: float | None = None):
        self.cancelled.set()
        if self._thread is not None:
            self._thread.join(timeout)
