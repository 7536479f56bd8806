"""Suspendable repeating timer running its handler on a dedicated thread."""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerState(Enum):
    SUSPENDED = "suspended"
    RESUMED = "resumed"


class DispatchTimer:
    """Repeating timer firing `event_handler` every `time_interval` seconds.

    The handler always runs on the timer's own thread, one call at a time;
    a firing that comes due while the handler is still running is folded
    into the next one. The timer starts suspended and must be armed with
    start() or resume(). pause() and resume() are idempotent.

    close() must be used to dispose of the timer. A suspended timer is
    resumed before it is released, the handler is cleared, then the thread
    is stopped.
    """

    def __init__(self, time_interval: float, name: str = "DispatchTimer"):
        """Initialize a suspended timer.

        Args:
            time_interval: Seconds between firings (also the delay before the first one)
            name: Name of the timer thread
        """
        if time_interval <= 0:
            raise ValueError(f"time_interval must be positive, got {time_interval}")
        self.time_interval = time_interval
        self.name = name
        self.event_handler: Optional[Callable[[], None]] = None

        self._condition = threading.Condition()
        self._state = TimerState.SUSPENDED
        self._closed = False
        self._thread: Optional[threading.Thread] = None
        self._deadline = 0.0

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._closed

    def start(self, handler: Callable[[], None]) -> None:
        """Install the handler and arm the timer."""
        with self._condition:
            self.event_handler = handler
        self.resume()

    def resume(self) -> None:
        with self._condition:
            if self._closed:
                raise RuntimeError(f"{self.name} is closed")
            if self._state is TimerState.RESUMED:
                return
            self._state = TimerState.RESUMED
            if self._thread is None:
                self._deadline = time.monotonic() + self.time_interval
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()
                logger.debug("%s armed, firing every %.3fs", self.name, self.time_interval)
            self._condition.notify_all()

    def pause(self) -> None:
        with self._condition:
            if self._closed or self._state is TimerState.SUSPENDED:
                return
            self._state = TimerState.SUSPENDED
            self._condition.notify_all()

    def close(self) -> None:
        """Stop the timer for good and release its thread.

        Safe to call more than once and from inside the handler.
        """
        with self._condition:
            if self._closed:
                return
            if self._state is TimerState.SUSPENDED:
                self._state = TimerState.RESUMED
            self.event_handler = None
            self._closed = True
            thread, self._thread = self._thread, None
            self._condition.notify_all()

        if thread is not None and thread is not threading.current_thread():
            thread.join()
        logger.debug("%s closed", self.name)

    def __enter__(self) -> "DispatchTimer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ===== Private: Timer Thread =====

    def _next_handler(self) -> Optional[Callable[[], None]]:
        """Block until a firing is due; None once the timer is closed.

        Must be called with the condition held. Returns a no-op when the
        firing is due but no handler is installed.
        """
        while True:
            if self._closed:
                return None
            if self._state is TimerState.SUSPENDED:
                self._condition.wait()
                continue
            remaining = self._deadline - time.monotonic()
            if remaining > 0:
                self._condition.wait(remaining)
                continue
            now = time.monotonic()
            while self._deadline <= now:
                self._deadline += self.time_interval
            return self.event_handler or _noop

    def _run(self) -> None:
        while True:
            with self._condition:
                handler = self._next_handler()
            if handler is None:
                return
            try:
                handler()
            except Exception:
                logger.exception("%s event handler failed", self.name)


def _noop() -> None:
    pass
