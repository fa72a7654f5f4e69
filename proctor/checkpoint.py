"""
Periodic progress checkpoints.

Checkpointing is best effort: it never changes session state and a failed
save does not delay the next one.
"""

import logging
from typing import Optional

from .models import ExamSession
from .scheduler import TimerHandle

logger = logging.getLogger(__name__)


class CheckpointScheduler:
    """Sends time left and answers to the checkpoint service on a fixed period."""

    def __init__(
        self,
        session: ExamSession,
        sink,
        scheduler,
        interval: float = 30.0,
        session_logger=None
    ):
        self.session = session
        self.sink = sink
        self.scheduler = scheduler
        self.interval = interval
        self.session_logger = session_logger

        self.saved_count = 0
        self.failed_count = 0
        self._handle: Optional[TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self):
        if self._handle is not None:
            return
        self._handle = self.scheduler.call_every(self.interval, self._fire)

    def stop(self):
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None

    def _fire(self):
        self.scheduler.spawn(self.save_now())

    async def save_now(self) -> bool:
        """Send one snapshot. Returns False if the service rejected it."""
        snapshot = self.session.checkpoint_snapshot()
        try:
            await self.sink.save_checkpoint(
                snapshot.session_id,
                snapshot.time_left_seconds,
                snapshot.answers
            )
        except Exception as e:
            self.failed_count += 1
            logger.warning("Checkpoint failed for session %s: %s", snapshot.session_id, e)
            if self.session_logger:
                self.session_logger("CHECKPOINT_FAILED", str(e))
            return False

        self.saved_count += 1
        if self.session_logger:
            self.session_logger(
                "CHECKPOINT",
                f"Time left: {snapshot.time_left_seconds}s, answers: {len(snapshot.answers)}"
            )
        return True
