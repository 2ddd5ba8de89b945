"""
Protocol definitions for external dependencies.

These interfaces allow dependency injection for testing: the relay, the
liveness registry and the notification forwarder can all be replaced by
in-memory implementations.
"""

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class RelayInterface(Protocol):
    """Interface for the relay HTTP API.

    Every method returns a ``RelayResponse``; transport failures are
    reported in the response, never raised.
    """

    def register_session(self, session_id: str, meta: Optional[Dict[str, Any]] = None):
        ...

    def get_session(self, session_id: str):
        ...

    def get_daemon_state(self, session_id: str):
        ...

    def update_daemon_state(self, session_id: str, **fields):
        ...

    def send_heartbeat(self, session_id: str, count: int, pid: Optional[int] = None,
                       timeout: Optional[float] = None):
        ...

    def create_approval(self, session_id: str, tool_name: str, tool_input: Dict[str, Any]):
        ...

    def get_approval(self, approval_id: str):
        ...

    def acknowledge_approval(self, approval_id: str):
        ...

    def invalidate_approvals(self, session_id: str, reason: str):
        ...

    def list_approvals(self, session_id: str, status: Optional[str] = None):
        ...


@runtime_checkable
class LivenessRegistry(Protocol):
    """Ownership of the one heartbeat reporter allowed per session."""

    def try_acquire(self, session_id: str) -> bool:
        """Claim the session.

        Returns:
            True if claimed, False if another reporter (alive or orphaned)
            already holds it
        """
        ...

    def release(self, session_id: str) -> None:
        """Give up the claim. Safe to call more than once."""
        ...

    def is_held(self, session_id: str) -> bool:
        ...


@runtime_checkable
class NotificationForwarder(Protocol):
    """Delivers host notifications to the operator's companion device."""

    def forward(self, session_id: str, message: str, payload: Dict[str, Any]) -> None:
        ...
