"""
Submission arbitration.

The SubmissionController is the only component that finalizes a session.
Manual submission, the violation threshold and time expiry all enter through
`request()`, whose guard-and-set runs synchronously inside one event-loop
step, so exactly one trigger wins.
"""

import asyncio
import logging
from typing import Dict, Optional

from .collaborators import NavigationOutcome, NoticeKind
from .models import ExamSession, SubmissionTrigger

logger = logging.getLogger(__name__)

DEFAULT_REASONS = {
    SubmissionTrigger.MANUAL: "Submitted by candidate",
    SubmissionTrigger.VIOLATION_THRESHOLD: "Maximum violations reached",
    SubmissionTrigger.TIME_EXPIRY: "Time expired",
}

SUCCESS_MESSAGE = "Exam submitted successfully!"
RETRY_MESSAGE = "Failed to submit exam. Please try again."
FATAL_MESSAGE = "Failed to submit exam. Please contact an administrator."


class SubmissionController:
    """Owns terminal status transitions and the answer-submission service."""

    def __init__(
        self,
        session: ExamSession,
        submitter,
        scheduler,
        notifier,
        navigator,
        clock=None,
        checkpoints=None,
        enforcer=None,
        auto_submit_attempts: int = 2,
        session_logger=None
    ):
        self.session = session
        self.submitter = submitter
        self.scheduler = scheduler
        self.notifier = notifier
        self.navigator = navigator
        self.clock = clock
        self.checkpoints = checkpoints
        self.enforcer = enforcer
        self.auto_submit_attempts = auto_submit_attempts
        self.session_logger = session_logger

        self.winning_trigger: Optional[SubmissionTrigger] = None
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    @property
    def pending(self) -> Optional[asyncio.Task]:
        """The in-flight finalization task, if any."""
        if self._task is not None and not self._task.done():
            return self._task
        return None

    def request(self, trigger: SubmissionTrigger, reason: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        Ask for finalization.

        Returns:
            The finalization task if this call won the guard, otherwise None
            (the session is already submitting or finished, or the
            controller was closed).
        """
        reason = reason or DEFAULT_REASONS[trigger]

        if self._closed or not self.session.begin_submission():
            self._log(
                "SUBMISSION_IGNORED",
                f"Trigger: {trigger.value}, status: {self.session.status.value}"
            )
            return None

        self.winning_trigger = trigger
        answers = self.session.answers_snapshot()
        self._log(
            "SUBMISSION_START",
            f"Trigger: {trigger.value}, reason: {reason}, answers: {len(answers)}"
        )
        self._task = self.scheduler.spawn(self._finalize(trigger, reason, answers))
        return self._task

    async def submit(self, trigger: SubmissionTrigger, reason: Optional[str] = None) -> bool:
        """Request finalization and wait for it. False if another trigger already owns it."""
        task = self.request(trigger, reason)
        if task is None:
            return False
        return await task

    async def _finalize(self, trigger: SubmissionTrigger, reason: str, answers: Dict[str, str]) -> bool:
        max_attempts = self.auto_submit_attempts if trigger.is_automatic else 1

        for attempt in range(1, max_attempts + 1):
            self.attempts += 1
            try:
                await self.submitter.finalize(self.session.session_id, answers)
            except Exception as e:
                logger.warning("Submission attempt %d/%d failed for session %s: %s",
                               attempt, max_attempts, self.session.session_id, e)
                self._log(
                    "SUBMISSION_FAILED",
                    f"Trigger: {trigger.value}, attempt {attempt}/{max_attempts}: {e}"
                )
                continue

            self._complete(trigger, reason, answers)
            return True

        if trigger.is_automatic:
            self._give_up(trigger)
        else:
            self._revert_manual()
        return False

    def _complete(self, trigger: SubmissionTrigger, reason: str, answers: Dict[str, str]):
        self.session.mark_submitted()
        self._halt()
        self._log(
            "SUBMISSION_COMPLETE",
            f"Trigger: {trigger.value}, answers: {len(answers)}, time left: {self.session.time_left_seconds}s"
        )

        if trigger.is_automatic:
            self.notifier.notify(NoticeKind.INFO, f"{reason}. Exam auto-submitted.")
        else:
            self.notifier.notify(NoticeKind.INFO, SUCCESS_MESSAGE)

        self.navigator.redirect(NavigationOutcome(
            auto_submitted=trigger.is_automatic,
            reason=reason,
            context={
                "trigger": trigger.value,
                "session_id": self.session.session_id,
                "exam_id": self.session.exam_id,
                "warnings": self.session.warning_count,
                "time_left_seconds": self.session.time_left_seconds,
                "answered": len(answers),
            }
        ))

    def _give_up(self, trigger: SubmissionTrigger):
        self.session.mark_errored()
        self._halt()
        logger.error("Session %s could not be submitted (%s); giving up",
                     self.session.session_id, trigger.value)
        self._log("SUBMISSION_FATAL", f"Trigger: {trigger.value}, attempts exhausted")
        self.notifier.notify(NoticeKind.FATAL_ERROR, FATAL_MESSAGE)

    def _revert_manual(self):
        self.session.revert_submission()
        self.winning_trigger = None
        if self._closed:
            self._log("SUBMISSION_REVERTED", "Manual submission failed after teardown")
            return
        self._log("SUBMISSION_REVERTED", "Manual submission failed, exam resumed")
        self.notifier.notify(NoticeKind.RECOVERABLE_ERROR, RETRY_MESSAGE)
        self._rearm_pending_triggers()

    def _rearm_pending_triggers(self):
        """Replay automatic triggers that fired while the manual attempt held the guard."""
        if self.clock is not None and self.clock.expired:
            self.request(SubmissionTrigger.TIME_EXPIRY)
        elif self.session.warnings_exceeded:
            self.request(SubmissionTrigger.VIOLATION_THRESHOLD)

    def close(self):
        """Stop replaying triggers and notifying the candidate; an in-flight attempt still finishes."""
        self._closed = True

    def _halt(self):
        if self.clock is not None:
            self.clock.stop()
        if self.checkpoints is not None:
            self.checkpoints.stop()
        if self.enforcer is not None:
            self.enforcer.detach()
            self.enforcer.exit_lockdown()
