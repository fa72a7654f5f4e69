"""
Exam session monitor.

Wires the clock, lockdown enforcer, violation tracker, checkpoint scheduler
and submission controller around one ExamSession and exposes the
candidate-facing operations: start, answer, submit and teardown.
"""

import logging
from typing import Optional

from .checkpoint import CheckpointScheduler
from .clock import Clock
from .collaborators import NoticeKind
from .environment import EnvironmentEnforcer
from .models import ExamSession, MonitorConfig, SubmissionTrigger, Checkpoint
from .scheduler import AsyncioScheduler
from .submission import SubmissionController
from .violations import ViolationTracker

logger = logging.getLogger(__name__)

NO_QUESTIONS_MESSAGE = "No Questions Available. There are no questions for this exam."


class ExamMonitor:
    """Client-side proctoring for a single timed exam attempt."""

    def __init__(
        self,
        session: ExamSession,
        host,
        reporter,
        submitter,
        checkpoint_sink,
        navigator,
        notifier,
        config: Optional[MonitorConfig] = None,
        scheduler=None,
        session_logger=None,
        resume_from: Optional[Checkpoint] = None
    ):
        self.session = session
        self.config = config or MonitorConfig.default()
        self.notifier = notifier
        self.session_logger = session_logger
        self.resume_from = resume_from

        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncioScheduler()
        self._started = False
        self._torn_down = False

        self.clock = Clock(
            session,
            self.scheduler,
            on_expired=self._on_time_expired,
            tick_interval=self.config.tick_interval_seconds,
            session_logger=session_logger
        )
        self.checkpoints = CheckpointScheduler(
            session,
            checkpoint_sink,
            self.scheduler,
            interval=self.config.checkpoint_interval_seconds,
            session_logger=session_logger
        )
        self.enforcer = EnvironmentEnforcer(
            session,
            host,
            self.scheduler,
            on_violation=self._on_violation,
            probe_interval=self.config.compliance_probe_interval_seconds,
            session_logger=session_logger
        )
        self.controller = SubmissionController(
            session,
            submitter,
            self.scheduler,
            notifier,
            navigator,
            clock=self.clock,
            checkpoints=self.checkpoints,
            enforcer=self.enforcer,
            auto_submit_attempts=self.config.auto_submit_attempts,
            session_logger=session_logger
        )
        self.tracker = ViolationTracker(
            session,
            reporter,
            self.scheduler,
            notifier,
            self.controller,
            cooldown_seconds=self.config.violation_cooldown_seconds,
            session_logger=session_logger
        )

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    @property
    def status(self):
        return self.session.status

    def start(self) -> bool:
        """
        Begin the proctored attempt.

        Returns:
            False if the exam has no questions; nothing is started in that
            case and the candidate sees the "no questions" notice.
        """
        if self._started:
            return True

        if not self.session.has_questions:
            self._log("NO_QUESTIONS", f"Exam {self.session.exam_id} has no questions")
            self.notifier.notify(NoticeKind.NO_QUESTIONS, NO_QUESTIONS_MESSAGE)
            return False

        if self.resume_from is not None:
            self.session.restore(self.resume_from)
            self._log(
                "EXAM_RESUME",
                f"{self.session.time_left_seconds}s remaining, "
                f"{len(self.session.answers)} answer(s) restored"
            )

        self.session.begin()
        self._started = True
        self._log(
            "SESSION_START",
            f"Session: {self.session.session_id}, exam: {self.session.exam_id}, "
            f"questions: {len(self.session.questions)}, duration: {self.session.duration_seconds}s"
        )

        self.enforcer.attach()
        self.enforcer.enter_lockdown()
        self.clock.start()
        self.checkpoints.start()
        return True

    def select_answer(self, question_id: str, option: str):
        self.session.select_answer(question_id, option)
        self._log("ANSWER", f"Question: {question_id}, option: {option}")

    async def submit(self) -> bool:
        """Manual submission by the candidate."""
        return await self.controller.submit(SubmissionTrigger.MANUAL)

    def report_violation(self, reason: str) -> bool:
        """Feed a violation detected outside the host's event stream."""
        return self.tracker.raise_violation(reason)

    def _on_violation(self, reason: str):
        self.tracker.raise_violation(reason)

    def _on_time_expired(self):
        self.controller.request(SubmissionTrigger.TIME_EXPIRY)

    def teardown(self):
        """
        Release everything the monitor holds.

        Runs on navigation away as well as after finalization. Timers are
        cancelled and lockdown exited even if a service call is still in
        flight; a pending submission is left to finish.
        """
        if self._torn_down:
            return
        self._torn_down = True

        try:
            self.clock.stop()
            self.checkpoints.stop()
            self.tracker.close()
            self.controller.close()
        finally:
            try:
                self.enforcer.detach()
            finally:
                self.enforcer.exit_lockdown()
                if self._owns_scheduler:
                    self.scheduler.cancel_all()
                self._log("SESSION_TEARDOWN", f"Status: {self.session.status.value}")
