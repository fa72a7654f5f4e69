"""
Interfaces of the services the monitor depends on.

The monitor never talks to a transport directly: the reporting, submission
and checkpoint services are awaited through these protocols, navigation and
candidate notices are plain synchronous calls.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Dict, Any

from .models import ProctorError


class CollaboratorError(ProctorError):
    """Raised by service adapters when a call cannot be completed."""


class NoticeKind(Enum):
    VIOLATION = "violation"
    INFO = "info"
    RECOVERABLE_ERROR = "recoverable_error"
    FATAL_ERROR = "fatal_error"
    NO_QUESTIONS = "no_questions"


@dataclass(frozen=True)
class NavigationOutcome:
    """What the exam surface hands over when a session ends."""
    auto_submitted: bool
    reason: str
    context: Dict[str, Any] = field(default_factory=dict)


class ViolationReporter(Protocol):
    async def report_violation(self, session_id: str) -> int:
        """Record one violation and return the cumulative count."""
        ...


class AnswerSubmitter(Protocol):
    async def finalize(self, session_id: str, answers: Dict[str, str]) -> None:
        """Finalize the session's answers. Must be idempotent for identical payloads."""
        ...


class CheckpointSink(Protocol):
    async def save_checkpoint(self, session_id: str, time_left_seconds: int,
                              answers: Dict[str, str]) -> None:
        ...


class Navigator(Protocol):
    def redirect(self, outcome: NavigationOutcome) -> None:
        ...


class CandidateNotifier(Protocol):
    def notify(self, kind: NoticeKind, message: str) -> None:
        ...
