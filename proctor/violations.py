"""
Violation tracking.

Deduplicates and rate-limits violation events, forwards them to the
reporting service and keeps the session's warning count in step with the
service's authoritative count.
"""

import logging
from typing import Optional

from .collaborators import NoticeKind
from .models import ExamSession, SessionStatus, SubmissionTrigger, Violation
from .scheduler import TimerHandle

logger = logging.getLogger(__name__)

MAX_VIOLATIONS_REASON = "Maximum violations reached"


class ViolationTracker:
    """
    Guarded violation pipeline.

    `reported` is set while one violation is processed end to end and
    `cooldown_active` covers the window that follows it; both are cleared
    together once the cooldown elapses. They only change inside the event
    loop, so a plain attribute check is an atomic guard.
    """

    def __init__(
        self,
        session: ExamSession,
        reporter,
        scheduler,
        notifier,
        controller,
        cooldown_seconds: float = 1.0,
        session_logger=None
    ):
        self.session = session
        self.reporter = reporter
        self.scheduler = scheduler
        self.notifier = notifier
        self.controller = controller
        self.cooldown_seconds = cooldown_seconds
        self.session_logger = session_logger

        self.reported = False
        self.cooldown_active = False
        self.last_violation: Optional[Violation] = None
        self._cooldown_handle: Optional[TimerHandle] = None
        self._closed = False

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    def raise_violation(self, reason: str) -> bool:
        """
        Register a violation.

        Returns:
            True if the violation was accepted for reporting, False if it was
            suppressed by the guards or the session is not in progress.
        """
        if self._closed or self.reported or self.cooldown_active:
            return False
        if self.session.status is not SessionStatus.IN_PROGRESS:
            return False

        self.reported = True
        self.cooldown_active = True

        violation = Violation(reason=reason)
        self.last_violation = violation
        self._log("VIOLATION", reason)
        self.scheduler.spawn(self._process(violation))
        return True

    async def _process(self, violation: Violation):
        try:
            count = await self._report()
            if count is None:
                count = self.session.increment_warning_count()
            else:
                count = self.session.adopt_warning_count(count)

            self._log(
                "WARNING_COUNT",
                f"{count}/{self.session.max_warnings} after: {violation.reason}"
            )
            self.notifier.notify(NoticeKind.VIOLATION, self._warning_message(violation.reason))

            if self._closed:
                return
            if self.session.warnings_exceeded:
                self.controller.request(
                    SubmissionTrigger.VIOLATION_THRESHOLD,
                    MAX_VIOLATIONS_REASON
                )
        finally:
            if not self._closed:
                self._cooldown_handle = self.scheduler.call_later(
                    self.cooldown_seconds, self._clear_guards
                )

    async def _report(self) -> Optional[int]:
        """Send the violation; None means fall back to a local increment."""
        try:
            count = await self.reporter.report_violation(self.session.session_id)
        except Exception as e:
            logger.warning("Violation report failed for session %s: %s",
                           self.session.session_id, e)
            self._log("VIOLATION_REPORT_FAILED", str(e))
            return None

        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            self._log("VIOLATION_REPORT_FAILED", f"Unusable count from reporting service: {count!r}")
            return None
        return count

    def _warning_message(self, reason: str) -> str:
        count = self.session.warning_count
        maximum = self.session.max_warnings
        return (
            f"VIOLATION: {reason}\n\n"
            f"Warnings: {count}/{maximum}\n"
            f"{self.session.remaining_warnings} warning(s) remaining before auto-submit."
        )

    def _clear_guards(self):
        self._cooldown_handle = None
        self.reported = False
        self.cooldown_active = False

    def close(self):
        """Stop accepting violations and drop any pending cooldown."""
        self._closed = True
        if self._cooldown_handle is not None:
            self._cooldown_handle.cancel()
            self._cooldown_handle = None
