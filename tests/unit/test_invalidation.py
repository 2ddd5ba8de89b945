"""
Unit tests for idempotent invalidation hooks.
"""

from unittest.mock import MagicMock

from teleportation.invalidation import (
    REASON_SESSION_END,
    REASON_TOOL_EXECUTED,
    InvalidationHook,
)
from teleportation.mocks import failure, ok


class TestInvalidationHook:

    def test_retires_pending(self, relay, session_id):
        relay.create_approval(session_id, "Bash", {})
        hook = InvalidationHook(relay)

        assert hook.on_tool_executed(session_id) == 1
        assert relay.approvals["approval-1"]["status"] == "invalidated"
        args, _ = relay.calls_to("invalidate_approvals")[0]
        assert args == (session_id, REASON_TOOL_EXECUTED)

    def test_idempotent(self, relay, session_id):
        relay.create_approval(session_id, "Bash", {})
        hook = InvalidationHook(relay)

        assert hook.on_tool_executed(session_id) == 1
        assert hook.on_tool_executed(session_id) == 0
        assert relay.approvals["approval-1"]["status"] == "invalidated"

    def test_decided_approvals_untouched(self, relay, session_id):
        relay.create_approval(session_id, "Bash", {})
        relay.approvals["approval-1"]["status"] = "allowed"
        assert InvalidationHook(relay).on_tool_executed(session_id) == 0
        assert relay.approvals["approval-1"]["status"] == "allowed"

    def test_other_sessions_untouched(self, relay, session_id):
        relay.create_approval("other-session", "Bash", {})
        InvalidationHook(relay).on_session_end(session_id)
        assert relay.approvals["approval-1"]["status"] == "pending"

    def test_session_end_reason(self, relay, session_id):
        InvalidationHook(relay).on_session_end(session_id)
        args, _ = relay.calls_to("invalidate_approvals")[0]
        assert args[1] == REASON_SESSION_END

    def test_failure_returns_zero(self, relay, session_id):
        relay.script("invalidate_approvals", failure())
        assert InvalidationHook(relay).on_tool_executed(session_id) == 0

    def test_count_field_alias(self, relay, session_id):
        relay.script("invalidate_approvals", ok({"count": 2}))
        assert InvalidationHook(relay).invalidate(session_id, "x") == 2

    def test_unexpected_body(self, relay, session_id):
        relay.script("invalidate_approvals", ok({"invalidated": True}))
        assert InvalidationHook(relay).invalidate(session_id, "x") == 0

    def test_no_relay(self, session_id):
        assert InvalidationHook(None).on_tool_executed(session_id) == 0

    def test_records_local_resolution(self, relay, session_id):
        relay.create_approval(session_id, "Bash", {})
        handoff = MagicMock()
        InvalidationHook(relay, handoff=handoff).on_tool_executed(session_id)
        handoff.record_local_resolution.assert_called_once_with(session_id)

    def test_nothing_retired_no_record(self, relay, session_id):
        handoff = MagicMock()
        InvalidationHook(relay, handoff=handoff).on_tool_executed(session_id)
        handoff.record_local_resolution.assert_not_called()
