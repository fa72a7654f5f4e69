"""
Test doubles shared by the monitor tests.

ManualScheduler replaces the asyncio timers with virtual time: `advance()`
fires due callbacks in order and lets spawned tasks run between them, so
scenarios spanning minutes of exam time run instantly and deterministically.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock

sys.path.insert(0, str(Path(__file__).parent.parent))

from proctor.collaborators import NavigationOutcome, NoticeKind
from proctor.environment import EnvironmentEvent, LockdownError
from proctor.models import ExamSession, MonitorConfig, Question
from proctor.monitor import ExamMonitor
from proctor.scheduler import TimerHandle


async def settle(rounds: int = 50):
    """Let every ready task run to its next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualScheduler:
    """Scheduler driven by `advance()` instead of the wall clock."""

    def __init__(self):
        self.now = 0.0
        self._timers: List[list] = []
        self._seq = 0
        self.tasks: List[asyncio.Task] = []

    def _add(self, due: float, interval: Optional[float], callback) -> TimerHandle:
        handle = TimerHandle()
        self._seq += 1
        self._timers.append([due, self._seq, interval, callback, handle])
        return handle

    def call_later(self, delay, callback) -> TimerHandle:
        return self._add(self.now + delay, None, callback)

    def call_every(self, interval, callback) -> TimerHandle:
        return self._add(self.now + interval, interval, callback)

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self.tasks.append(task)
        return task

    def cancel_all(self):
        for timer in self._timers:
            timer[4].cancel()
        self._timers.clear()

    @property
    def active_timers(self) -> int:
        return sum(1 for t in self._timers if not t[4].cancelled)

    def _next_due(self, target: float):
        live = [t for t in self._timers if not t[4].cancelled and t[0] <= target]
        if not live:
            return None
        return min(live, key=lambda t: (t[0], t[1]))

    async def advance(self, seconds: float):
        target = self.now + seconds
        await settle()
        while True:
            timer = self._next_due(target)
            if timer is None:
                break
            self._timers.remove(timer)
            due, _, interval, callback, handle = timer
            self.now = due
            if interval is not None:
                self._seq += 1
                self._timers.append([due + interval, self._seq, interval, callback, handle])
            callback()
            await settle()
        self._timers = [t for t in self._timers if not t[4].cancelled]
        self.now = target
        await settle()


class FakeHost:
    """EnvironmentHost double that records calls and can refuse lockdown."""

    def __init__(self, refuse_lockdown: bool = False):
        self.refuse_lockdown = refuse_lockdown
        self.locked_down = False
        self.listeners = []
        self.enter_calls = 0
        self.exit_calls = 0

    def enter_lockdown(self):
        self.enter_calls += 1
        if self.refuse_lockdown:
            raise LockdownError("Fullscreen request denied")
        self.locked_down = True

    def exit_lockdown(self):
        self.exit_calls += 1
        self.locked_down = False

    def is_locked_down(self) -> bool:
        return self.locked_down

    def subscribe(self, listener):
        self.listeners.append(listener)

    def unsubscribe(self, listener):
        self.listeners.remove(listener)

    def emit(self, event: EnvironmentEvent) -> EnvironmentEvent:
        for listener in list(self.listeners):
            listener(event)
        return event


class RecordingNotifier:
    def __init__(self):
        self.notices: List[Tuple[NoticeKind, str]] = []

    def notify(self, kind, message):
        self.notices.append((kind, message))

    def of_kind(self, kind: NoticeKind) -> List[str]:
        return [message for k, message in self.notices if k is kind]


class RecordingNavigator:
    def __init__(self):
        self.outcomes: List[NavigationOutcome] = []

    def redirect(self, outcome):
        self.outcomes.append(outcome)


class CountingReporter:
    """Reporting service double returning a server-side running count."""

    def __init__(self):
        self.counts = {}
        self.calls = []
        self.report_violation = AsyncMock(side_effect=self._report)

    async def _report(self, session_id):
        self.calls.append(session_id)
        self.counts[session_id] = self.counts.get(session_id, 0) + 1
        return self.counts[session_id]


def make_questions(count: int = 3) -> List[Question]:
    return [
        Question(
            id=f"q{i + 1}",
            text=f"Question {i + 1}?",
            options={"A": "first", "B": "second", "C": "third", "D": "fourth"},
            marks=1
        )
        for i in range(count)
    ]


def make_session(duration_seconds: int = 60, questions=None, max_warnings: int = 2) -> ExamSession:
    return ExamSession(
        session_id="sub-123",
        exam_id="exam-1",
        questions=make_questions() if questions is None else questions,
        duration_seconds=duration_seconds,
        max_warnings=max_warnings
    )


class MonitorHarness:
    """An ExamMonitor wired to doubles, with every collaborator exposed."""

    def __init__(self, duration_seconds: int = 60, questions=None, config: MonitorConfig = None,
                 refuse_lockdown: bool = False, resume_from=None):
        self.scheduler = ManualScheduler()
        self.host = FakeHost(refuse_lockdown=refuse_lockdown)
        self.reporter = CountingReporter()
        self.submitter = AsyncMock()
        self.submitter.finalize = AsyncMock(return_value=None)
        self.checkpoint_sink = AsyncMock()
        self.checkpoint_sink.save_checkpoint = AsyncMock(return_value=None)
        self.navigator = RecordingNavigator()
        self.notifier = RecordingNotifier()
        self.events = []
        self.config = config or MonitorConfig.default()
        self.session = make_session(duration_seconds, questions, self.config.max_warnings)
        self.monitor = ExamMonitor(
            self.session,
            host=self.host,
            reporter=self.reporter,
            submitter=self.submitter,
            checkpoint_sink=self.checkpoint_sink,
            navigator=self.navigator,
            notifier=self.notifier,
            config=self.config,
            scheduler=self.scheduler,
            session_logger=lambda event, details="": self.events.append((event, details)),
            resume_from=resume_from
        )

    def logged(self, event: str) -> List[str]:
        return [details for name, details in self.events if name == event]
