"""
Tests for lockdown enforcement.

Tests the environment enforcer including:
- Entering and leaving lockdown
- Environment change notifications
- Context menu and shortcut suppression
- The periodic compliance probe
"""

import asyncio
import pytest
from unittest.mock import Mock
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from proctor.environment import (
    EnvironmentEnforcer,
    EnvironmentEvent,
    EnvironmentEventType,
    LockdownError,
)
from helpers import FakeHost, ManualScheduler, make_session


def make_enforcer(refuse_lockdown=False, begin=True, probe_interval=30.0):
    session = make_session()
    if begin:
        session.begin()
    host = FakeHost(refuse_lockdown=refuse_lockdown)
    scheduler = ManualScheduler()
    on_violation = Mock()
    enforcer = EnvironmentEnforcer(session, host, scheduler, on_violation,
                                   probe_interval=probe_interval)
    return enforcer, session, host, scheduler, on_violation


def key(name, ctrl=False, meta=False, alt=False):
    return EnvironmentEvent(type=EnvironmentEventType.KEY_DOWN, key=name, ctrl=ctrl, meta=meta, alt=alt)


class TestLockdownEntry:
    """Test entering and exiting lockdown."""

    def test_enter_success(self):
        enforcer, _, host, _, on_violation = make_enforcer()

        assert enforcer.enter_lockdown() is True
        assert host.locked_down
        on_violation.assert_not_called()

    def test_enter_failure_raises_violation(self):
        enforcer, _, host, _, on_violation = make_enforcer(refuse_lockdown=True)

        assert enforcer.enter_lockdown() is False
        on_violation.assert_called_once_with("Failed to enter lockdown")

    def test_exit_is_idempotent(self):
        enforcer, _, host, _, _ = make_enforcer()
        enforcer.enter_lockdown()

        enforcer.exit_lockdown()
        enforcer.exit_lockdown()

        assert not host.locked_down
        assert host.exit_calls == 1

    def test_exit_without_enter(self):
        enforcer, _, host, _, _ = make_enforcer()
        enforcer.exit_lockdown()
        assert host.exit_calls == 0

    def test_exit_swallows_host_lockdown_error(self):
        enforcer, _, host, _, _ = make_enforcer()
        enforcer.enter_lockdown()
        host.exit_lockdown = Mock(side_effect=LockdownError("already gone"))

        enforcer.exit_lockdown()

    def test_exit_absorbs_any_host_failure(self):
        enforcer, _, host, _, _ = make_enforcer()
        enforcer.enter_lockdown()
        host.exit_lockdown = Mock(side_effect=RuntimeError("bridge disconnected"))

        enforcer.exit_lockdown()

        host.exit_lockdown.assert_called_once()


class TestEnvironmentChanges:
    """Test reactions to host notifications."""

    @pytest.mark.parametrize("event_type,reason", [
        (EnvironmentEventType.FULLSCREEN_CHANGE, "Exited fullscreen mode"),
        (EnvironmentEventType.VISIBILITY_CHANGE, "Tab switched or minimized"),
        (EnvironmentEventType.FOCUS_CHANGE, "Window lost focus"),
    ])
    def test_loss_raises_violation(self, event_type, reason):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        host.emit(EnvironmentEvent(type=event_type, active=False))

        on_violation.assert_called_once_with(reason)

    @pytest.mark.parametrize("event_type", [
        EnvironmentEventType.FULLSCREEN_CHANGE,
        EnvironmentEventType.VISIBILITY_CHANGE,
        EnvironmentEventType.FOCUS_CHANGE,
    ])
    def test_regaining_is_not_a_violation(self, event_type):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        host.emit(EnvironmentEvent(type=event_type, active=True))

        on_violation.assert_not_called()

    def test_ignored_unless_in_progress(self):
        enforcer, session, host, _, on_violation = make_enforcer(begin=False)
        enforcer.attach()

        host.emit(EnvironmentEvent(type=EnvironmentEventType.FOCUS_CHANGE, active=False))

        on_violation.assert_not_called()

    def test_detach_unsubscribes(self):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()
        enforcer.detach()

        assert host.listeners == []
        assert not enforcer.attached

    def test_attach_twice_subscribes_once(self):
        enforcer, _, host, _, _ = make_enforcer()
        enforcer.attach()
        enforcer.attach()

        assert len(host.listeners) == 1


class TestInputSuppression:
    """Test context menu and shortcut handling."""

    def test_context_menu_suppressed(self):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        event = host.emit(EnvironmentEvent(type=EnvironmentEventType.CONTEXT_MENU))

        assert event.default_prevented
        on_violation.assert_called_once_with("Right-click attempted")

    @pytest.mark.parametrize("combo", [
        key("w", ctrl=True),
        key("t", ctrl=True),
        key("n", ctrl=True),
        key("r", ctrl=True),
        key("Tab", ctrl=True),
        key("w", meta=True),
        key("Tab", alt=True),
        key("F4", alt=True),
        key("F11"),
        key("F5"),
    ])
    def test_blocked_shortcuts(self, combo):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        event = host.emit(combo)

        assert event.default_prevented
        on_violation.assert_called_once()

    def test_shortcut_reason_names_modifier(self):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        host.emit(key("w", meta=True))

        reason = on_violation.call_args.args[0]
        assert reason.startswith("Attempted shortcut Cmd+w")

    @pytest.mark.parametrize("combo", [key("a"), key("c", ctrl=True), key("Enter"), key("x", alt=True)])
    def test_ordinary_keys_pass(self, combo):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        event = host.emit(combo)

        assert not event.default_prevented
        on_violation.assert_not_called()

    def test_escape_blocked_only_in_lockdown(self):
        enforcer, _, host, _, on_violation = make_enforcer()
        enforcer.attach()

        outside = host.emit(key("Escape"))
        enforcer.enter_lockdown()
        inside = host.emit(key("Escape"))

        assert not outside.default_prevented
        assert inside.default_prevented
        on_violation.assert_called_once_with("Attempted to use Escape key")

    def test_suppressed_even_when_not_in_progress(self):
        enforcer, session, host, _, on_violation = make_enforcer()
        enforcer.attach()
        session.begin_submission()

        event = host.emit(key("w", ctrl=True))

        assert event.default_prevented
        on_violation.assert_not_called()


class TestComplianceProbe:
    """Test the periodic lockdown check."""

    def test_probe_detects_silent_exit(self):
        async def scenario():
            enforcer, _, host, scheduler, on_violation = make_enforcer()
            enforcer.attach()
            enforcer.enter_lockdown()
            host.locked_down = False  # left lockdown without a notification
            await scheduler.advance(30)
            return on_violation

        run_result = asyncio.run(scenario())
        run_result.assert_called_once_with("Periodic check: not in lockdown mode")

    def test_probe_quiet_when_compliant(self):
        async def scenario():
            enforcer, _, host, scheduler, on_violation = make_enforcer()
            enforcer.attach()
            enforcer.enter_lockdown()
            await scheduler.advance(120)
            return on_violation

        asyncio.run(scenario()).assert_not_called()

    def test_probe_repeats(self):
        async def scenario():
            enforcer, _, host, scheduler, on_violation = make_enforcer()
            enforcer.attach()
            await scheduler.advance(90)
            return on_violation

        assert asyncio.run(scenario()).call_count == 3

    def test_detach_cancels_probe(self):
        async def scenario():
            enforcer, _, host, scheduler, on_violation = make_enforcer()
            enforcer.attach()
            enforcer.detach()
            await scheduler.advance(120)
            return on_violation, scheduler.active_timers

        on_violation, timers = asyncio.run(scenario())
        on_violation.assert_not_called()
        assert timers == 0
