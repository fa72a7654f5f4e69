"""
Data models for a proctored exam session.

Provides the Question and Violation value types, the monitor configuration,
and the ExamSession aggregate whose state only changes through its
transition methods.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any


class ProctorError(Exception):
    """Base class for monitor errors."""


class InvalidTransitionError(ProctorError):
    """Raised when a session state change breaks the status ordering."""


class SessionStatus(Enum):
    INITIALIZING = "initializing"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.SUBMITTED, SessionStatus.ERRORED)


class SubmissionTrigger(Enum):
    """Originating cause of a finalization attempt."""
    MANUAL = "manual"
    VIOLATION_THRESHOLD = "violation_threshold"
    TIME_EXPIRY = "time_expiry"

    @property
    def is_automatic(self) -> bool:
        return self is not SubmissionTrigger.MANUAL


@dataclass(frozen=True)
class Question:
    """A multiple-choice question. Immutable once loaded."""
    id: str
    text: str
    options: Dict[str, str]
    marks: Optional[float] = None

    @staticmethod
    def from_dict(data: dict) -> 'Question':
        """Create a Question from an exam payload entry."""
        options = data.get('options') or {}
        if not isinstance(options, dict):
            raise ValueError(f"Question {data.get('id')!r}: options must be a mapping")

        return Question(
            id=str(data['id']),
            text=data.get('text') or data.get('question') or "",
            options={str(key): str(value) for key, value in options.items()},
            marks=data.get('marks')
        )


@dataclass(frozen=True)
class Violation:
    """A detected breach of lockdown conditions."""
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Checkpoint:
    """Partial-progress snapshot of a running session."""
    session_id: str
    time_left_seconds: int
    answers: Dict[str, str]
    saved_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "time_left_seconds": self.time_left_seconds,
            "answers": dict(self.answers),
            "saved_at": self.saved_at,
        }

    @staticmethod
    def from_dict(data: dict) -> 'Checkpoint':
        return Checkpoint(
            session_id=data['session_id'],
            time_left_seconds=int(data['time_left_seconds']),
            answers=dict(data.get('answers') or {}),
            saved_at=float(data.get('saved_at', 0.0))
        )


@dataclass
class MonitorConfig:
    """
    Tunable parameters of the session monitor.

    Attributes:
        max_warnings: Warnings allowed before the next violation auto-submits
        tick_interval_seconds: Real time between two clock ticks
        violation_cooldown_seconds: Window after a violation during which
                                    further violations are suppressed
        checkpoint_interval_seconds: Period of the progress checkpoint
        compliance_probe_interval_seconds: Period of the lockdown re-check
        auto_submit_attempts: Submission attempts for automatic triggers
                              (first try plus retries)
    """
    max_warnings: int = 2
    tick_interval_seconds: float = 1.0
    violation_cooldown_seconds: float = 1.0
    checkpoint_interval_seconds: float = 30.0
    compliance_probe_interval_seconds: float = 30.0
    auto_submit_attempts: int = 2

    @staticmethod
    def from_dict(data: dict) -> 'MonitorConfig':
        """Create MonitorConfig from dictionary."""
        return MonitorConfig(
            max_warnings=int(data.get('max_warnings', 2)),
            tick_interval_seconds=float(data.get('tick_interval_seconds', 1.0)),
            violation_cooldown_seconds=float(data.get('violation_cooldown_seconds', 1.0)),
            checkpoint_interval_seconds=float(data.get('checkpoint_interval_seconds', 30.0)),
            compliance_probe_interval_seconds=float(data.get('compliance_probe_interval_seconds', 30.0)),
            auto_submit_attempts=int(data.get('auto_submit_attempts', 2))
        )

    def validate(self) -> tuple[bool, str]:
        """
        Validate configuration consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.max_warnings < 0:
            return False, "max_warnings must be non-negative"

        intervals = {
            "tick_interval_seconds": self.tick_interval_seconds,
            "violation_cooldown_seconds": self.violation_cooldown_seconds,
            "checkpoint_interval_seconds": self.checkpoint_interval_seconds,
            "compliance_probe_interval_seconds": self.compliance_probe_interval_seconds,
        }
        for name, value in intervals.items():
            if value <= 0:
                return False, f"{name} must be positive (got {value})"

        if self.auto_submit_attempts < 1:
            return False, "auto_submit_attempts must be at least 1"

        return True, ""

    @staticmethod
    def default() -> 'MonitorConfig':
        """Return the standard proctoring configuration."""
        return MonitorConfig()


# Allowed status moves. SUBMITTING -> IN_PROGRESS is the manual-retry path.
_TRANSITIONS = {
    SessionStatus.INITIALIZING: {SessionStatus.IN_PROGRESS},
    SessionStatus.IN_PROGRESS: {SessionStatus.SUBMITTING},
    SessionStatus.SUBMITTING: {
        SessionStatus.SUBMITTED,
        SessionStatus.ERRORED,
        SessionStatus.IN_PROGRESS,
    },
    SessionStatus.SUBMITTED: set(),
    SessionStatus.ERRORED: set(),
}


class ExamSession:
    """
    Shared aggregate for one candidate's exam attempt.

    Fields are read through properties; every change goes through a
    transition method so that time left never increases, the warning count
    never decreases and status only moves forward.
    """

    def __init__(
        self,
        session_id: str,
        exam_id: str,
        questions: List[Question],
        duration_seconds: int,
        max_warnings: int = 2
    ):
        if duration_seconds < 0:
            raise ValueError(f"duration_seconds must be non-negative (got {duration_seconds})")

        self.session_id = session_id
        self.exam_id = exam_id
        self._questions = tuple(questions)
        self._questions_by_id = {q.id: q for q in self._questions}
        self.duration_seconds = int(duration_seconds)
        self.max_warnings = max_warnings

        self._time_left = self.duration_seconds
        self._warning_count = 0
        self._answers: Dict[str, str] = {}
        self._status = SessionStatus.INITIALIZING

    @property
    def questions(self) -> tuple:
        return self._questions

    @property
    def has_questions(self) -> bool:
        return len(self._questions) > 0

    @property
    def time_left_seconds(self) -> int:
        return self._time_left

    @property
    def warning_count(self) -> int:
        return self._warning_count

    @property
    def remaining_warnings(self) -> int:
        return max(0, self.max_warnings - self._warning_count)

    @property
    def warnings_exceeded(self) -> bool:
        # Strictly greater: with max_warnings=2 the third violation submits.
        return self._warning_count > self.max_warnings

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def answers(self) -> Dict[str, str]:
        return dict(self._answers)

    def _move_to(self, target: SessionStatus):
        if target not in _TRANSITIONS[self._status]:
            raise InvalidTransitionError(
                f"Session {self.session_id}: cannot move from "
                f"{self._status.value} to {target.value}"
            )
        self._status = target

    def begin(self):
        """Start the attempt (Initializing -> InProgress)."""
        self._move_to(SessionStatus.IN_PROGRESS)

    def restore(self, checkpoint: Checkpoint):
        """
        Restore time left and answers from a checkpoint before the attempt begins.

        The countdown keeps running while the candidate is away: wall-clock
        time since `saved_at` is deducted before clamping to the fixed
        duration. Answers for questions or options this exam does not have
        are dropped.
        """
        if self._status is not SessionStatus.INITIALIZING:
            raise InvalidTransitionError("Checkpoints can only be restored before the session begins")
        if checkpoint.session_id != self.session_id:
            raise ValueError(
                f"Checkpoint belongs to session {checkpoint.session_id}, not {self.session_id}"
            )

        away_seconds = max(0, int(time.time() - checkpoint.saved_at))
        remaining = int(checkpoint.time_left_seconds) - away_seconds
        self._time_left = max(0, min(self._time_left, remaining))
        for question_id, option in checkpoint.answers.items():
            question = self._questions_by_id.get(question_id)
            if question is not None and option in question.options:
                self._answers[question_id] = option

    def tick(self) -> int:
        """Remove one second from the countdown, never going below zero."""
        if self._status.is_terminal:
            return self._time_left
        if self._time_left > 0:
            self._time_left -= 1
        return self._time_left

    def select_answer(self, question_id: str, option: str):
        """Record (or replace) the candidate's choice for a question."""
        if self._status is not SessionStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                f"Answers can only change while the exam is in progress (status: {self._status.value})"
            )

        question = self._questions_by_id.get(question_id)
        if question is None:
            raise ValueError(f"Unknown question: {question_id}")
        if option not in question.options:
            raise ValueError(f"Question {question_id} has no option {option!r}")

        self._answers[question_id] = option

    def adopt_warning_count(self, count: int) -> int:
        """Take the reporting service's cumulative count as the warning count."""
        self._warning_count = max(self._warning_count, int(count))
        return self._warning_count

    def increment_warning_count(self) -> int:
        self._warning_count += 1
        return self._warning_count

    def begin_submission(self) -> bool:
        """
        Claim the right to finalize.

        Returns True for exactly one caller while the session is in progress;
        every later caller gets False until a manual failure reverts the claim.
        """
        if self._status is not SessionStatus.IN_PROGRESS:
            return False
        self._status = SessionStatus.SUBMITTING
        return True

    def mark_submitted(self):
        self._move_to(SessionStatus.SUBMITTED)

    def mark_errored(self):
        self._move_to(SessionStatus.ERRORED)

    def revert_submission(self):
        """Return to InProgress after a failed manual submission."""
        self._move_to(SessionStatus.IN_PROGRESS)

    def answers_snapshot(self) -> Dict[str, str]:
        return dict(self._answers)

    def checkpoint_snapshot(self) -> Checkpoint:
        return Checkpoint(
            session_id=self.session_id,
            time_left_seconds=self._time_left,
            answers=dict(self._answers)
        )
