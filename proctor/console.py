#!/usr/bin/env python3
"""
Offline Proctored Exam Console

Candidate-facing terminal runner: loads an exam, starts a monitored session
against local file-backed services and reads commands until the exam is
submitted or the candidate leaves.
"""

import argparse
import asyncio
import getpass
import logging
import sys
import threading
from pathlib import Path
from typing import Callable, List, Optional

from cryptography.fernet import Fernet

from .collaborators import NavigationOutcome, NoticeKind
from .config_loader import load_config
from .environment import EnvironmentEvent, EnvironmentEventType
from .exam_loader import ExamDefinition, load_exam
from .local import FileCheckpointStore, LocalViolationLedger, ZipAnswerSubmitter
from .models import ExamSession, InvalidTransitionError, MonitorConfig, ProctorError, SessionStatus
from .monitor import ExamMonitor
from .session_log import SessionLog

HELP_TEXT = """Commands:
  show [n|id]          Show the current (or given) question
  next / prev          Move between questions
  answer <id> <key>    Select an option, e.g. 'answer q1 B'
  status               Answered questions and warnings
  time                 Remaining time
  submit               Submit the exam
  event <kind>         Simulate focus/tab/fullscreen loss or a right-click (focus|tab|fullscreen|menu)
  key <combo>          Simulate a key press, e.g. 'key ctrl+w'
  exit                 Leave (progress is checkpointed, the timer keeps running)
  help                 Show this help"""


def format_time(seconds: int) -> str:
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class ConsoleHost:
    """EnvironmentHost for a terminal: lockdown is a flag, events come from commands."""

    def __init__(self):
        self.locked_down = False
        self._listeners: List[Callable[[EnvironmentEvent], None]] = []

    def enter_lockdown(self):
        self.locked_down = True

    def exit_lockdown(self):
        self.locked_down = False

    def is_locked_down(self) -> bool:
        return self.locked_down

    def subscribe(self, listener):
        self._listeners.append(listener)

    def unsubscribe(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: EnvironmentEvent) -> EnvironmentEvent:
        if event.type is EnvironmentEventType.FULLSCREEN_CHANGE:
            self.locked_down = event.active
        for listener in list(self._listeners):
            listener(event)
        return event


class ConsoleNotifier:
    def __init__(self):
        self.fatal = asyncio.Event()

    def notify(self, kind: NoticeKind, message: str):
        if kind is NoticeKind.FATAL_ERROR:
            self.fatal.set()
        if kind in (NoticeKind.VIOLATION, NoticeKind.FATAL_ERROR):
            print("\n" + "!" * 60)
            print(message)
            print("!" * 60)
        else:
            print(f"\n{message}")


class ConsoleNavigator:
    def __init__(self):
        self.outcome: Optional[NavigationOutcome] = None
        self.done = asyncio.Event()

    def redirect(self, outcome: NavigationOutcome):
        self.outcome = outcome
        self.done.set()


def parse_key_combo(combo: str) -> EnvironmentEvent:
    parts = [p for p in combo.lower().split('+') if p]
    if not parts:
        raise ValueError("Empty key combination")
    modifiers = set(parts[:-1])
    return EnvironmentEvent(
        type=EnvironmentEventType.KEY_DOWN,
        key=parts[-1],
        ctrl='ctrl' in modifiers,
        meta='cmd' in modifiers or 'meta' in modifiers,
        alt='alt' in modifiers
    )


_EVENT_KINDS = {
    'focus': EnvironmentEventType.FOCUS_CHANGE,
    'tab': EnvironmentEventType.VISIBILITY_CHANGE,
    'fullscreen': EnvironmentEventType.FULLSCREEN_CHANGE,
}


class ExamConsole:
    """Main CLI application controller."""

    def __init__(self, exam: ExamDefinition, session_id: str, work_dir: Path,
                 config: MonitorConfig, checkpoint_key: bytes):
        self.exam = exam
        self.work_dir = work_dir
        self.session_log = SessionLog(work_dir / "session.log")
        self.host = ConsoleHost()
        self.navigator = ConsoleNavigator()
        self.notifier = ConsoleNotifier()
        self.checkpoint_store = FileCheckpointStore(work_dir / "checkpoints", checkpoint_key)

        session = ExamSession(
            session_id=session_id,
            exam_id=exam.exam_id,
            questions=exam.questions,
            duration_seconds=exam.duration_seconds,
            max_warnings=config.max_warnings
        )
        self.monitor = ExamMonitor(
            session,
            host=self.host,
            reporter=LocalViolationLedger(work_dir / "violations.json"),
            submitter=ZipAnswerSubmitter(work_dir, session_log_path=self.session_log.log_path),
            checkpoint_sink=self.checkpoint_store,
            navigator=self.navigator,
            notifier=self.notifier,
            config=config,
            session_logger=self.session_log,
            resume_from=self.checkpoint_store.load(session_id)
        )
        self.current_index = 0

    @property
    def session(self) -> ExamSession:
        return self.monitor.session

    async def run(self) -> int:
        if not self.monitor.start():
            return 1

        lines: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()

        def read_input():
            while True:
                try:
                    line = input()
                except (EOFError, KeyboardInterrupt):
                    loop.call_soon_threadsafe(lines.put_nowait, None)
                    return
                loop.call_soon_threadsafe(lines.put_nowait, line)

        threading.Thread(target=read_input, daemon=True).start()

        print(f"Exam {self.exam.exam_id}: {len(self.exam.questions)} question(s), "
              f"{format_time(self.session.time_left_seconds)} remaining")
        print(HELP_TEXT)
        self.cmd_show(None)

        try:
            exit_code = await self._command_loop(lines)
        finally:
            self.monitor.teardown()

        outcome = self.navigator.outcome
        if outcome is not None:
            self.checkpoint_store.clear(self.session.session_id)
            print(f"\nExam submitted ({outcome.reason}).")
        return exit_code

    async def _command_loop(self, lines: asyncio.Queue) -> int:
        done_waiter = asyncio.ensure_future(self.navigator.done.wait())
        fatal_waiter = asyncio.ensure_future(self.notifier.fatal.wait())
        line_waiter = None
        try:
            while True:
                print("exam> ", end="", flush=True)
                line_waiter = asyncio.ensure_future(lines.get())
                finished, _ = await asyncio.wait(
                    {line_waiter, done_waiter, fatal_waiter},
                    return_when=asyncio.FIRST_COMPLETED
                )
                if fatal_waiter in finished or self.session.status is SessionStatus.ERRORED:
                    return 2
                if done_waiter in finished:
                    return 0

                line = line_waiter.result()
                if line is None:
                    await self.monitor.checkpoints.save_now()
                    return 0
                if await self.dispatch(line.strip()) is False:
                    return 0
        finally:
            for waiter in (line_waiter, done_waiter, fatal_waiter):
                if waiter is not None:
                    waiter.cancel()

    async def dispatch(self, cmd_line: str) -> Optional[bool]:
        """Run one command. Returns False when the candidate leaves."""
        if not cmd_line:
            return None

        parts = cmd_line.split()
        command = parts[0].lower()
        self.session_log("COMMAND_RUN", f"Command: {cmd_line}")

        try:
            if command in ('exit', 'quit'):
                await self.monitor.checkpoints.save_now()
                print("Progress saved. Run the exam again to resume.")
                return False
            elif command == 'help':
                print(HELP_TEXT)
            elif command == 'show':
                self.cmd_show(parts[1] if len(parts) > 1 else None)
            elif command == 'next':
                self.current_index = min(self.current_index + 1, len(self.session.questions) - 1)
                self.cmd_show(None)
            elif command == 'prev':
                self.current_index = max(self.current_index - 1, 0)
                self.cmd_show(None)
            elif command == 'answer':
                if len(parts) < 3:
                    print("Usage: answer <question id> <option>")
                else:
                    option = self._option_key(parts[1], parts[2])
                    self.monitor.select_answer(parts[1], option)
                    print(f"Answer recorded: {parts[1]} -> {option}")
            elif command == 'status':
                self.cmd_status()
            elif command == 'time':
                print(f"Time remaining: {format_time(self.session.time_left_seconds)}")
            elif command == 'submit':
                await self.monitor.submit()
            elif command == 'event':
                self.cmd_event(parts[1] if len(parts) > 1 else "")
            elif command == 'key':
                if len(parts) < 2:
                    print("Usage: key <combo>")
                else:
                    event = self.host.emit(parse_key_combo(parts[1]))
                    if event.default_prevented:
                        print("Shortcut blocked.")
            else:
                print(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        except (ValueError, InvalidTransitionError) as e:
            print(f"Error: {e}")
        return None

    def _option_key(self, question_id: str, typed: str) -> str:
        """Match a typed option against the question's keys, ignoring case."""
        for question in self.session.questions:
            if question.id != question_id:
                continue
            if typed in question.options:
                return typed
            matches = [key for key in question.options if key.lower() == typed.lower()]
            if len(matches) == 1:
                return matches[0]
        return typed

    def cmd_show(self, target: Optional[str]):
        questions = self.session.questions
        if target is not None:
            if target.isdigit() and 1 <= int(target) <= len(questions):
                self.current_index = int(target) - 1
            else:
                ids = [q.id for q in questions]
                if target not in ids:
                    print(f"Unknown question: {target}")
                    return
                self.current_index = ids.index(target)

        question = questions[self.current_index]
        selected = self.session.answers.get(question.id)
        print(f"\nQuestion {self.current_index + 1} of {len(questions)} (ID: {question.id})"
              + (f"  Marks: {question.marks}" if question.marks else ""))
        print(question.text)
        for key, text in question.options.items():
            marker = "*" if key == selected else " "
            print(f" {marker} {key}: {text}")

    def cmd_status(self):
        answered = len(self.session.answers)
        total = len(self.session.questions)
        print(f"Answered: {answered}/{total}  Remaining: {total - answered}")
        print(f"Warnings: {self.session.warning_count}/{self.session.max_warnings}")
        print(f"Time remaining: {format_time(self.session.time_left_seconds)}")

    def cmd_event(self, kind: str):
        if kind == 'menu':
            self.host.emit(EnvironmentEvent(type=EnvironmentEventType.CONTEXT_MENU))
        elif kind in _EVENT_KINDS:
            self.host.emit(EnvironmentEvent(type=_EVENT_KINDS[kind], active=False))
        else:
            print("Usage: event focus|tab|fullscreen|menu")


def _checkpoint_key(key_path: Path) -> bytes:
    if key_path.exists():
        return key_path.read_bytes().strip()
    key = Fernet.generate_key()
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(key)
    return key


def main(argv=None) -> int:
    """Entry point for the exam console."""
    parser = argparse.ArgumentParser(description="Run a proctored exam in the terminal.")
    parser.add_argument("exam", type=Path, help="Exam file (.json, or encrypted)")
    parser.add_argument("--candidate", help="Candidate identifier (prompted if omitted)")
    parser.add_argument("--key-file", type=Path, help="Fernet key file for an encrypted exam")
    parser.add_argument("--password", action="store_true", help="Prompt for the exam password")
    parser.add_argument("--config", type=Path, help="Proctoring configuration (JSON)")
    parser.add_argument("--work-dir", type=Path, default=Path("proctor_sessions"),
                        help="Directory for logs, checkpoints and submissions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print diagnostic logs")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.ERROR,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    key_input = None
    if args.key_file:
        key_input = args.key_file.read_bytes().strip()
    elif args.password:
        key_input = getpass.getpass("Exam password: ")

    try:
        exam = load_exam(args.exam, key_input)
        config = load_config(args.config) if args.config else MonitorConfig.default()
    except (ProctorError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    candidate = args.candidate or input("Candidate ID: ").strip()
    if not candidate:
        print("Error: a candidate identifier is required", file=sys.stderr)
        return 1

    session_id = f"{exam.exam_id}-{candidate}"
    work_dir = args.work_dir / "".join(c if c.isalnum() or c in "-_" else '_' for c in session_id)
    work_dir.mkdir(parents=True, exist_ok=True)

    try:
        console = ExamConsole(
            exam,
            session_id=session_id,
            work_dir=work_dir,
            config=config,
            checkpoint_key=_checkpoint_key(work_dir / "checkpoint.key")
        )
    except ProctorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return asyncio.run(console.run())


if __name__ == "__main__":
    sys.exit(main())
