"""
Unit tests for the approval request manager and polling loop.

Time is driven by FakeClock so every loop runs instantly.
"""

import time
from unittest.mock import MagicMock

import pytest

from teleportation.approval_state import (
    ALLOW_REMOTELY,
    Allowed,
    Decision,
    Denied,
    Invalidated,
    Pending,
    TransportError,
)
from teleportation.approvals import (
    ApprovalPoller,
    ApprovalRequestManager,
    best_effort_mark_away,
    is_valid_session_id,
)
from teleportation.mocks import failure, ok
from teleportation.settings import (
    HANDOFF_AFTER_WINDOW,
    HANDOFF_OFF,
    HANDOFF_PROACTIVE,
    ApprovalSettings,
)


def _settings(**overrides):
    values = dict(poll_interval=2.0, fast_poll_window=10.0, timeout=100.0,
                  auto_away_after=60.0, handoff=HANDOFF_OFF)
    values.update(overrides)
    return ApprovalSettings(**values)


def _poller(relay, clock, tasks, settings=None, **kwargs):
    return ApprovalPoller(relay, settings or _settings(), tasks=tasks,
                          sleep=clock.sleep, clock=clock, **kwargs)


def _manager(relay, clock, tasks, settings=None, handoff=None):
    settings = settings or _settings()
    return ApprovalRequestManager(
        relay, settings,
        poller=_poller(relay, clock, tasks, settings),
        handoff=handoff, tasks=tasks, clock=clock,
    )


class TestSessionIdValidation:

    @pytest.mark.parametrize("value", [
        "abc", "3f2b9c1e-7a4d-4e1b-9c2a-5d6e7f8a9b0c", "user@host.local", "a_b.c-d", "x" * 256,
    ])
    def test_valid(self, value):
        assert is_valid_session_id(value)

    @pytest.mark.parametrize("value", [
        "", "x" * 257, "a/b", "a b", "../etc", "semi;colon", None, 42, ["abc"],
        ".", "..", "-x", "@", "_x", ".hidden", "a..b",
    ])
    def test_invalid(self, value):
        assert not is_valid_session_id(value)

    def test_dot_segment_never_reaches_relay(self, relay, clock, tasks):
        decision = _manager(relay, clock, tasks).handle_permission_request("..", "Bash", {})
        assert decision is None
        assert relay.calls == []


class TestApprovalPoller:
    """Polling loop: interval, terminal results, failures, deadline."""

    def test_third_tick_allowed(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "pending", "pending", "allowed")
        result = _poller(relay, clock, tasks).poll("a-1", session_id, 100)

        assert result == Allowed("a-1", "")
        assert len(relay.calls_to("get_approval")) == 3
        assert clock.sleeps == [2.0, 2.0, 2.0]

    def test_sleeps_before_first_fetch(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "denied")
        _poller(relay, clock, tasks).poll("a-1", session_id, 100)
        assert clock.sleeps == [2.0]

    def test_invalidated_is_terminal(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "pending", "invalidated")
        result = _poller(relay, clock, tasks).poll("a-1", session_id, 100)
        assert isinstance(result, Invalidated)

    def test_deadline_returns_pending(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "pending")
        result = _poller(relay, clock, tasks).poll("a-1", session_id, 7)

        assert result == Pending("a-1")
        # Last sleep is trimmed to the remaining budget
        assert clock.sleeps == [2.0, 2.0, 2.0, 1.0]
        assert clock.now == 1007.0

    def test_gives_up_after_threshold(self, relay, clock, tasks, session_id):
        relay.script("get_approval", failure())
        result = _poller(relay, clock, tasks).poll("a-1", session_id, 1000)

        assert isinstance(result, TransportError)
        assert len(relay.calls_to("get_approval")) == 4

    def test_success_resets_failure_count(self, relay, clock, tasks, session_id):
        relay.script(
            "get_approval",
            failure(), failure(), failure(), "pending",
            failure(), failure(), failure(), "allowed",
        )
        result = _poller(relay, clock, tasks).poll("a-1", session_id, 1000)
        assert isinstance(result, Allowed)

    def test_errors_do_not_change_interval(self, relay, clock, tasks, session_id):
        relay.script("get_approval", failure(503, "HTTP 503"), "pending", "denied")
        _poller(relay, clock, tasks).poll("a-1", session_id, 1000)
        assert clock.sleeps == [2.0, 2.0, 2.0]

    def test_marks_away_once(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "pending")
        settings = _settings(auto_away_after=5.0)
        _poller(relay, clock, tasks, settings).poll(
            "a-1", session_id, 20, already_away=False,
        )

        assert tasks.names == ["mark-away"]
        updates = relay.calls_to("update_daemon_state")
        assert updates == [((session_id,), {"is_away": True})]

    def test_no_mark_when_already_away(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "pending")
        _poller(relay, clock, tasks, _settings(auto_away_after=0)).poll("a-1", session_id, 20)
        assert tasks.names == []

    def test_auto_away_override(self, relay, clock, tasks, session_id):
        relay.script("get_approval", "pending")
        _poller(relay, clock, tasks).poll(
            "a-1", session_id, 10, already_away=False, auto_away_after=4.0,
        )
        assert tasks.names == ["mark-away"]

    def test_zero_deadline_never_fetches(self, relay, clock, tasks, session_id):
        result = _poller(relay, clock, tasks).poll("a-1", session_id, 0)
        assert result == Pending("a-1")
        assert relay.calls_to("get_approval") == []


class TestBestEffortMarkAway:

    def test_failure_is_swallowed(self, relay, session_id):
        relay.script("update_daemon_state", failure())
        best_effort_mark_away(relay, session_id)
        assert relay.call_names() == ["update_daemon_state"]


class TestHandlePermissionRequest:
    """End-to-end decisions against the in-memory relay."""

    def test_present_abstains_without_polling(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, False)
        decision = _manager(relay, clock, tasks).handle_permission_request(
            session_id, "Bash", {"command": "ls"},
        )

        assert decision is None
        assert "create_approval" in relay.call_names()
        assert relay.calls_to("get_approval") == []

    def test_invalidates_before_create(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, False)
        _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})

        names = relay.call_names()
        assert names.index("invalidate_approvals") < names.index("create_approval")
        args, _ = relay.calls_to("invalidate_approvals")[0]
        assert args == (session_id, "superseded")

    def test_new_request_supersedes_old(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, False)
        manager = _manager(relay, clock, tasks)
        manager.handle_permission_request(session_id, "Bash", {"command": "ls"})
        manager.handle_permission_request(session_id, "Edit", {"file": "x"})

        assert relay.approvals["approval-1"]["status"] == "invalidated"
        assert relay.approvals["approval-2"]["status"] == "pending"

    def test_away_allowed_on_third_tick(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending", "pending", "allowed")
        decision = _manager(relay, clock, tasks).handle_permission_request(
            session_id, "Bash", {"command": "rm -rf build"},
        )

        assert decision == ALLOW_REMOTELY
        assert len(relay.calls_to("get_approval")) == 3

    def test_away_denied(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "denied")
        decision = _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})
        assert decision == Decision("deny", "denied remotely")

    def test_invalidated_abstains(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending", "invalidated")
        decision = _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})
        assert decision is None

    def test_timeout_abstains(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending")
        decision = _manager(relay, clock, tasks, _settings(timeout=6.0)).handle_permission_request(
            session_id, "Bash", {},
        )
        assert decision is None
        assert len(relay.calls_to("get_approval")) == 3

    def test_relay_outage_abstains(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", failure())
        decision = _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})
        assert decision is None

    def test_create_failure_abstains(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("create_approval", failure(500, "HTTP 500"))
        decision = _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})

        assert decision is None
        assert relay.calls_to("get_approval") == []

    def test_create_without_id_abstains(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("create_approval", ok({}))
        assert _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {}) is None

    def test_invalidate_failure_does_not_block(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("invalidate_approvals", failure())
        relay.script("get_approval", "allowed")
        decision = _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})
        assert decision == ALLOW_REMOTELY

    def test_none_tool_input_becomes_empty(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, False)
        _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", None)
        args, _ = relay.calls_to("create_approval")[0]
        assert args == (session_id, "Bash", {})

    @pytest.mark.parametrize("sid,tool,tool_input", [
        ("bad id", "Bash", {}),
        (None, "Bash", {}),
        ("s", "", {}),
        ("s", None, {}),
        ("s", "Bash", "rm -rf /"),
        ("s", "Bash", ["list"]),
    ])
    def test_malformed_input_abstains_without_relay_calls(self, relay, clock, tasks, sid, tool, tool_input):
        decision = _manager(relay, clock, tasks).handle_permission_request(sid, tool, tool_input)
        assert decision is None
        assert relay.calls == []

    @pytest.mark.parametrize("sid,tool,tool_input", [
        ("3f2b9c1e-7a4d-4e1b-9c2a-5d6e7f8a9b0c", "Bash", {"command": "ls"}),
        ("s", "Edit", None),
        ("bad id", None, 5),
        (None, None, None),
    ])
    def test_unconfigured_always_abstains(self, sid, tool, tool_input):
        manager = ApprovalRequestManager(None, _settings())
        assert manager.handle_permission_request(sid, tool, tool_input) is None

    def test_fail_safe_away_marks_session_while_waiting(self, relay, clock, tasks, session_id):
        """An unconfirmed away answer marks the session away after the threshold."""
        relay.script("get_daemon_state", failure())
        relay.script("get_approval", "pending", "pending", "pending", "allowed")
        settings = _settings(fail_safe_away=True, auto_away_after=4.0)
        decision = _manager(relay, clock, tasks, settings).handle_permission_request(
            session_id, "Bash", {},
        )

        assert decision == ALLOW_REMOTELY
        assert tasks.names == ["mark-away"]

    def test_fail_safe_present_abstains(self, relay, clock, tasks, session_id):
        relay.script("get_daemon_state", failure())
        decision = _manager(relay, clock, tasks).handle_permission_request(session_id, "Bash", {})
        assert decision is None
        assert relay.calls_to("get_approval") == []


class TestRealTimeDeny:

    def test_deny_with_real_clock(self, relay):
        """Short real-time run: away session, remote deny on the second poll."""
        session_id = "12345678-1234-1234-1234-123456789012"
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending", "denied")
        settings = ApprovalSettings(poll_interval=0.01, timeout=5.0, handoff=HANDOFF_OFF)

        started = time.monotonic()
        decision = ApprovalRequestManager(relay, settings).handle_permission_request(
            session_id, "Bash", {"command": "git push --force"},
        )
        elapsed = time.monotonic() - started

        assert decision == Decision("deny", "denied remotely")
        assert elapsed < 0.5


class TestHandoffModes:
    """How the fast poll window and the detached poller interact."""

    def test_off_polls_full_timeout(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending")
        handoff = MagicMock()
        settings = _settings(handoff=HANDOFF_OFF, timeout=20.0)
        _manager(relay, clock, tasks, settings, handoff).handle_permission_request(session_id, "Bash", {})

        handoff.start.assert_not_called()
        assert clock.now == 1020.0

    def test_after_window_hands_off_remaining(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending")
        handoff = MagicMock()
        settings = _settings(handoff=HANDOFF_AFTER_WINDOW)
        decision = _manager(relay, clock, tasks, settings, handoff).handle_permission_request(
            session_id, "Bash", {},
        )

        assert decision is None
        assert clock.now == 1010.0
        handoff.start.assert_called_once_with(session_id, "approval-1", 90.0, None)

    def test_after_window_no_handoff_when_decided(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending", "allowed")
        handoff = MagicMock()
        decision = _manager(
            relay, clock, tasks, _settings(handoff=HANDOFF_AFTER_WINDOW), handoff,
        ).handle_permission_request(session_id, "Bash", {})

        assert decision == ALLOW_REMOTELY
        handoff.start.assert_not_called()

    def test_after_window_no_handoff_on_outage(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", failure())
        handoff = MagicMock()
        _manager(
            relay, clock, tasks, _settings(handoff=HANDOFF_AFTER_WINDOW, fast_poll_window=30.0), handoff,
        ).handle_permission_request(session_id, "Bash", {})
        handoff.start.assert_not_called()

    def test_after_window_carries_unconfirmed_away_threshold(self, relay, clock, tasks, session_id):
        relay.script("get_daemon_state", failure())
        relay.script("get_approval", "pending")
        handoff = MagicMock()
        settings = _settings(handoff=HANDOFF_AFTER_WINDOW, fail_safe_away=True)
        _manager(relay, clock, tasks, settings, handoff).handle_permission_request(session_id, "Bash", {})

        handoff.start.assert_called_once_with(session_id, "approval-1", 90.0, 50.0)

    def test_window_longer_than_timeout(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending")
        handoff = MagicMock()
        settings = _settings(handoff=HANDOFF_AFTER_WINDOW, fast_poll_window=50.0, timeout=8.0)
        _manager(relay, clock, tasks, settings, handoff).handle_permission_request(session_id, "Bash", {})

        handoff.start.assert_not_called()
        assert clock.now == 1008.0

    def test_proactive_starts_before_polling(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending", "denied")
        handoff = MagicMock()
        settings = _settings(handoff=HANDOFF_PROACTIVE)
        decision = _manager(relay, clock, tasks, settings, handoff).handle_permission_request(
            session_id, "Bash", {},
        )

        handoff.start.assert_called_once_with(session_id, "approval-1", 100.0, None)
        assert decision == Decision("deny", "denied remotely")

    def test_proactive_window_expires(self, relay, clock, tasks, session_id):
        relay.set_away(session_id, True)
        relay.script("get_approval", "pending")
        handoff = MagicMock()
        decision = _manager(
            relay, clock, tasks, _settings(handoff=HANDOFF_PROACTIVE), handoff,
        ).handle_permission_request(session_id, "Bash", {})

        assert decision is None
        assert clock.now == 1010.0
        assert handoff.start.call_count == 1
