"""
Lockdown Enforcement Module

Keeps the exam surface in fullscreen/kiosk mode, suppresses restricted
input and turns every breach into a violation. The host platform is reached
only through the EnvironmentHost interface, so the same enforcer runs
against a browser bridge, a desktop shell or a test double.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from .models import ExamSession, SessionStatus, ProctorError
from .scheduler import TimerHandle
from .shortcuts import (
    BLOCKED_KEYS,
    LOCKDOWN_EXIT_KEYS,
    BLOCKED_CTRL_SHORTCUTS,
    BLOCKED_ALT_SHORTCUTS,
)

logger = logging.getLogger(__name__)


class LockdownError(ProctorError):
    """Raised by a host that cannot enter or keep lockdown mode."""


class EnvironmentEventType(Enum):
    FULLSCREEN_CHANGE = "fullscreen_change"
    VISIBILITY_CHANGE = "visibility_change"
    FOCUS_CHANGE = "focus_change"
    CONTEXT_MENU = "context_menu"
    KEY_DOWN = "key_down"


@dataclass
class EnvironmentEvent:
    """
    A notification from the host.

    For the *_CHANGE types `active` is the new state (fullscreen on, surface
    visible, window focused). KEY_DOWN events carry the key and modifiers.
    """
    type: EnvironmentEventType
    active: bool = True
    key: str = ""
    ctrl: bool = False
    meta: bool = False
    alt: bool = False
    default_prevented: bool = False

    def prevent_default(self):
        self.default_prevented = True


class EnvironmentHost(Protocol):
    def enter_lockdown(self) -> None:
        """Enter fullscreen/kiosk mode. Raises LockdownError on refusal."""
        ...

    def exit_lockdown(self) -> None:
        ...

    def is_locked_down(self) -> bool:
        ...

    def subscribe(self, listener: Callable[[EnvironmentEvent], None]) -> None:
        ...

    def unsubscribe(self, listener: Callable[[EnvironmentEvent], None]) -> None:
        ...


_LOST_STATE_REASONS = {
    EnvironmentEventType.FULLSCREEN_CHANGE: "Exited fullscreen mode",
    EnvironmentEventType.VISIBILITY_CHANGE: "Tab switched or minimized",
    EnvironmentEventType.FOCUS_CHANGE: "Window lost focus",
}


class EnvironmentEnforcer:
    """Requests and maintains lockdown conditions for one session."""

    def __init__(
        self,
        session: ExamSession,
        host: EnvironmentHost,
        scheduler,
        on_violation: Callable[[str], object],
        probe_interval: float = 30.0,
        session_logger=None
    ):
        self.session = session
        self.host = host
        self.scheduler = scheduler
        self.on_violation = on_violation
        self.probe_interval = probe_interval
        self.session_logger = session_logger

        self._attached = False
        self._probe_handle: Optional[TimerHandle] = None

    @property
    def attached(self) -> bool:
        return self._attached

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    def _violation(self, reason: str):
        if self.session.status is SessionStatus.IN_PROGRESS:
            self.on_violation(reason)

    def attach(self):
        """Subscribe to host notifications and start the compliance probe."""
        if self._attached:
            return
        self.host.subscribe(self.handle_event)
        self._probe_handle = self.scheduler.call_every(self.probe_interval, self.probe)
        self._attached = True
        self._log("LOCKDOWN_MONITORING_STARTED", f"Compliance probe every {self.probe_interval:g}s")

    def detach(self):
        """Unsubscribe and cancel the probe. Safe to call repeatedly."""
        if self._probe_handle is not None:
            self._probe_handle.cancel()
            self._probe_handle = None
        if self._attached:
            self.host.unsubscribe(self.handle_event)
            self._attached = False
            self._log("LOCKDOWN_MONITORING_STOPPED")

    def enter_lockdown(self) -> bool:
        """
        Ask the host for lockdown mode.

        Returns:
            True if the host complied. A refusal is reported as a violation
            instead of being ignored.
        """
        try:
            self.host.enter_lockdown()
        except LockdownError as e:
            self._log("LOCKDOWN_FAILED", str(e))
            self._violation("Failed to enter lockdown")
            return False
        self._log("LOCKDOWN_ENTERED")
        return True

    def exit_lockdown(self):
        """Leave lockdown mode. Never raises; a no-op when already exited."""
        try:
            if self.host.is_locked_down():
                self.host.exit_lockdown()
                self._log("LOCKDOWN_EXITED")
        except Exception as e:
            logger.warning("Host failed to exit lockdown for session %s: %s",
                           self.session.session_id, e)
            self._log("LOCKDOWN_EXIT_FAILED", str(e))

    def probe(self):
        """Re-check lockdown independently of change notifications."""
        if self.session.status is not SessionStatus.IN_PROGRESS:
            return
        if not self.host.is_locked_down():
            self._violation("Periodic check: not in lockdown mode")

    def handle_event(self, event: EnvironmentEvent):
        """Listener registered with the host."""
        if event.type in _LOST_STATE_REASONS:
            if not event.active:
                self._violation(_LOST_STATE_REASONS[event.type])
            return

        if event.type is EnvironmentEventType.CONTEXT_MENU:
            event.prevent_default()
            self._violation("Right-click attempted")
            return

        if event.type is EnvironmentEventType.KEY_DOWN:
            reason = self._blocked_key_reason(event)
            if reason is not None:
                event.prevent_default()
                self._violation(reason)

    def _blocked_key_reason(self, event: EnvironmentEvent) -> Optional[str]:
        key = event.key.lower()

        if event.ctrl or event.meta:
            action = BLOCKED_CTRL_SHORTCUTS.get(key)
            if action is not None:
                prefix = "Ctrl+" if event.ctrl else "Cmd+"
                return f"Attempted shortcut {prefix}{key} ({action})"

        if event.alt:
            action = BLOCKED_ALT_SHORTCUTS.get(key)
            if action is not None:
                return f"Attempted shortcut Alt+{key} ({action})"

        if key in BLOCKED_KEYS:
            return BLOCKED_KEYS[key]

        if key in LOCKDOWN_EXIT_KEYS and self.host.is_locked_down():
            return LOCKDOWN_EXIT_KEYS[key]

        return None
