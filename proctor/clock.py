"""
Exam countdown.

Ticks once per interval against the session's fixed duration and signals
expiry exactly once. There is no pause.
"""

from typing import Callable, Optional

from .models import ExamSession
from .scheduler import TimerHandle


class Clock:
    """Monotonic one-second countdown driving time expiry."""

    def __init__(
        self,
        session: ExamSession,
        scheduler,
        on_expired: Callable[[], None],
        tick_interval: float = 1.0,
        session_logger=None
    ):
        self.session = session
        self.scheduler = scheduler
        self.on_expired = on_expired
        self.tick_interval = tick_interval
        self.session_logger = session_logger

        self._handle: Optional[TimerHandle] = None
        self._expired = False

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def expired(self) -> bool:
        return self._expired

    def start(self):
        """Begin ticking down from the session's remaining time."""
        if self._handle is not None or self._expired:
            return
        self._handle = self.scheduler.call_every(self.tick_interval, self.tick)
        if self.session_logger:
            self.session_logger(
                "CLOCK_START",
                f"{self.session.time_left_seconds}s of {self.session.duration_seconds}s remaining"
            )

    def tick(self):
        remaining = self.session.tick()
        if remaining == 0 and not self._expired:
            self._expired = True
            self.stop()
            if self.session_logger:
                self.session_logger("EXAM_TIMEOUT", "Exam time finished")
            self.on_expired()

    def stop(self):
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
