"""
Per-session daemon-state record held by the relay.

Tracks whether the operator is away and whether a background poller owns
the current approval. Writes are last-write-wins: there is no version
field or compare-and-swap, so concurrent writers may overwrite each other.
Nothing reads ``status`` back to make an approval decision.
"""

from dataclasses import dataclass
from typing import Optional


# Daemon statuses
STATUS_IDLE = "idle"        # No background poller
STATUS_RUNNING = "running"  # Handoff poller owns an approval (or operator marked away)
STATUS_STOPPED = "stopped"  # Poller finished or operator came back

# started_reason values
STARTED_TIMEOUT = "timeout"    # Fast window expired (or proactive handoff)
STARTED_CLI_AWAY = "cli_away"

# stopped_reason values
STOPPED_LOCAL_APPROVAL = "local_approval"
STOPPED_APPROVED = "approved"
STOPPED_DENIED = "denied"
STOPPED_INVALIDATED = "invalidated"
STOPPED_TIMEOUT = "timeout"
STOPPED_RELAY_ERROR = "relay_error"
STOPPED_CLI_BACK = "cli_back"


@dataclass
class SessionDaemonState:
    """Snapshot of GET /api/sessions/{id}/daemon-state."""

    is_away: bool = False
    status: str = STATUS_IDLE
    started_reason: Optional[str] = None
    stopped_reason: Optional[str] = None
    last_approval_location: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert state to dictionary for JSON serialization."""
        return {
            "is_away": self.is_away,
            "status": self.status,
            "started_reason": self.started_reason,
            "stopped_reason": self.stopped_reason,
            "last_approval_location": self.last_approval_location,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionDaemonState":
        """Create state from a relay payload; unknown fields are ignored."""
        return cls(
            is_away=data.get("is_away") is True,
            status=data.get("status") or STATUS_IDLE,
            started_reason=data.get("started_reason"),
            stopped_reason=data.get("stopped_reason"),
            last_approval_location=data.get("last_approval_location"),
        )
