"""
Approval records and the tagged result of one poll.

An approval's status only moves forward: ``pending`` becomes exactly one
of ``allowed``, ``denied`` or ``invalidated`` and then never changes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .relay_client import RelayResponse


# Approval statuses
STATUS_PENDING = "pending"
STATUS_ALLOWED = "allowed"
STATUS_DENIED = "denied"
STATUS_INVALIDATED = "invalidated"
TERMINAL_STATUSES = (STATUS_ALLOWED, STATUS_DENIED, STATUS_INVALIDATED)

# Where a decision was made
LOCATION_LOCAL = "local"
LOCATION_REMOTE = "remote"
LOCATION_DAEMON_HANDOFF = "daemon_handoff"
LOCATION_NONE = "none"

# Relays report retired approvals under either name
_INVALIDATED_ALIASES = (STATUS_INVALIDATED, "expired")

DECISION_ALLOW = "allow"
DECISION_DENY = "deny"


@dataclass(frozen=True)
class Pending:
    approval_id: str


@dataclass(frozen=True)
class Allowed:
    approval_id: str
    reason: str = ""


@dataclass(frozen=True)
class Denied:
    approval_id: str
    reason: str = ""


@dataclass(frozen=True)
class Invalidated:
    approval_id: str
    reason: str = ""


@dataclass(frozen=True)
class TransportError:
    approval_id: str
    error: str = ""


PollResult = Union[Pending, Allowed, Denied, Invalidated, TransportError]


def is_terminal(result: PollResult) -> bool:
    return isinstance(result, (Allowed, Denied, Invalidated))


def classify_approval(approval_id: str, response: RelayResponse) -> PollResult:
    """Turn a GET /api/approvals/{id} response into a poll result.

    Any failed call, non-object body or unknown status counts as a
    transport error.
    """
    if not response.ok:
        return TransportError(approval_id, response.error or f"HTTP {response.status}")
    data = response.data
    if not isinstance(data, dict):
        return TransportError(approval_id, "Malformed approval record")

    status = str(data.get("status") or "").lower()
    reason = data.get("decision_reason") or ""
    if status == STATUS_PENDING:
        return Pending(approval_id)
    if status == STATUS_ALLOWED:
        return Allowed(approval_id, reason)
    if status == STATUS_DENIED:
        return Denied(approval_id, reason)
    if status in _INVALIDATED_ALIASES:
        return Invalidated(approval_id, reason)
    return TransportError(approval_id, f"Unknown approval status: {status!r}")


@dataclass
class ApprovalRequest:
    """One permission request as stored on the relay."""

    id: str
    session_id: str
    tool_name: str
    tool_input: Dict[str, Any] = field(default_factory=dict)
    status: str = STATUS_PENDING
    decision_location: str = LOCATION_NONE
    decision_reason: Optional[str] = None
    created_at: Optional[str] = None
    acknowledged_at: Optional[str] = None

    @property
    def acknowledged(self) -> bool:
        return bool(self.acknowledged_at)

    @classmethod
    def from_dict(cls, data: dict) -> "ApprovalRequest":
        return cls(
            id=str(data.get("id", "")),
            session_id=data.get("session_id", ""),
            tool_name=data.get("tool_name", ""),
            tool_input=data.get("tool_input") or {},
            status=data.get("status", STATUS_PENDING),
            decision_location=data.get("decision_location") or LOCATION_NONE,
            decision_reason=data.get("decision_reason"),
            created_at=data.get("created_at") or data.get("createdAt"),
            acknowledged_at=data.get("acknowledged_at") or data.get("acknowledgedAt"),
        )


@dataclass(frozen=True)
class Decision:
    """What a hook prints back to the host."""

    decision: str
    reason: str

    def to_dict(self) -> dict:
        return {"decision": self.decision, "reason": self.reason}


ALLOW_REMOTELY = Decision(DECISION_ALLOW, "approved remotely")
DENY_REMOTELY = Decision(DECISION_DENY, "denied remotely")


def decision_for(result: PollResult) -> Optional[Decision]:
    """Map a poll result to a hook decision; anything non-final abstains."""
    if isinstance(result, Allowed):
        return ALLOW_REMOTELY
    if isinstance(result, Denied):
        return DENY_REMOTELY
    return None
