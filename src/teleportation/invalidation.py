"""
Idempotent invalidation after a tool runs.

Once the host has executed a tool, whatever approval was pending for that
session is moot: it was decided locally, remotely, or not at all. The hook
retires it unconditionally. Repeating the call is harmless; the relay
retires nothing the second time.
"""

import logging
from typing import Optional

from .protocols import RelayInterface

logger = logging.getLogger(__name__)

REASON_TOOL_EXECUTED = "tool_executed"
REASON_SESSION_END = "session_end"


def _retired_count(data) -> int:
    if not isinstance(data, dict):
        return 0
    for key in ("invalidated", "count"):
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


class InvalidationHook:
    """Retires pending approvals on PostToolUse and SessionEnd."""

    def __init__(self, relay: Optional[RelayInterface], handoff=None):
        self.relay = relay
        self.handoff = handoff

    def invalidate(self, session_id: str, reason: str) -> int:
        """Retire pending approvals for the session.

        Returns:
            Number of approvals the relay reports as retired (0 on failure)
        """
        if self.relay is None:
            return 0
        response = self.relay.invalidate_approvals(session_id, reason)
        if not response.ok:
            logger.warning("Invalidation (%s) for %s failed: %s", reason, session_id, response.error)
            return 0
        retired = _retired_count(response.data)
        if retired:
            logger.info("Retired %d pending approval(s) for %s (%s)", retired, session_id, reason)
        return retired

    def on_tool_executed(self, session_id: str) -> int:
        """A tool ran: the pending approval, if any, was settled locally."""
        retired = self.invalidate(session_id, REASON_TOOL_EXECUTED)
        if retired and self.handoff is not None:
            self.handoff.record_local_resolution(session_id)
        return retired

    def on_session_end(self, session_id: str) -> int:
        return self.invalidate(session_id, REASON_SESSION_END)
