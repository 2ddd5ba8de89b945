"""
In-memory implementations of the protocol interfaces, for tests.

MockRelay keeps sessions, daemon state and approvals in dicts, records
every call, and can be scripted to return specific responses in order.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from .approval_state import STATUS_INVALIDATED, STATUS_PENDING
from .relay_client import RelayResponse


def ok(data: Any = None, status: int = 200) -> RelayResponse:
    return RelayResponse(ok=True, status=status, data=data)


def failure(status: int = 0, error: str = "Connection error: refused") -> RelayResponse:
    return RelayResponse(ok=False, status=status, error=error)


class MockRelay:
    """Relay stand-in implementing RelayInterface."""

    def __init__(self):
        self.calls: List[Tuple[str, tuple, dict]] = []
        self.sessions: Dict[str, dict] = {}
        self.daemon_states: Dict[str, dict] = {}
        self.approvals: Dict[str, dict] = {}
        self._scripts: Dict[str, list] = {}
        self._next_id = 0

    # --- Scripting ---

    def script(self, method: str, *responses) -> None:
        """Queue responses for ``method``; the last one repeats.

        For ``get_approval`` a plain string is a status for the polled
        approval.
        """
        self._scripts[method] = list(responses)

    def _scripted(self, method: str):
        queue = self._scripts.get(method)
        if not queue:
            return None
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def _record(self, method: str, *args, **kwargs) -> None:
        self.calls.append((method, args, kwargs))

    def calls_to(self, method: str) -> List[Tuple[tuple, dict]]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == method]

    def call_names(self) -> List[str]:
        return [name for name, _, _ in self.calls]

    def set_away(self, session_id: str, away: bool = True) -> None:
        self.daemon_states.setdefault(session_id, {})["is_away"] = away

    # --- RelayInterface ---

    def register_session(self, session_id: str, meta: Optional[Dict[str, Any]] = None) -> RelayResponse:
        self._record("register_session", session_id, meta)
        scripted = self._scripted("register_session")
        if scripted is not None:
            return scripted
        self.sessions[session_id] = {"session_id": session_id, "meta": meta or {}}
        return ok({"ok": True})

    def get_session(self, session_id: str) -> RelayResponse:
        self._record("get_session", session_id)
        scripted = self._scripted("get_session")
        if scripted is not None:
            return scripted
        if session_id not in self.sessions:
            return failure(404, "HTTP 404: Not Found")
        return ok(dict(self.sessions[session_id]))

    def get_daemon_state(self, session_id: str) -> RelayResponse:
        self._record("get_daemon_state", session_id)
        scripted = self._scripted("get_daemon_state")
        if scripted is not None:
            return scripted
        return ok(dict(self.daemon_states.get(session_id, {})))

    def update_daemon_state(self, session_id: str, **fields) -> RelayResponse:
        self._record("update_daemon_state", session_id, **fields)
        scripted = self._scripted("update_daemon_state")
        if scripted is not None:
            return scripted
        self.daemon_states.setdefault(session_id, {}).update(fields)
        return ok(dict(self.daemon_states[session_id]))

    def send_heartbeat(self, session_id: str, count: int, pid: Optional[int] = None,
                       timeout: Optional[float] = None) -> RelayResponse:
        self._record("send_heartbeat", session_id, count, pid=pid, timeout=timeout)
        scripted = self._scripted("send_heartbeat")
        if scripted is not None:
            return scripted
        return ok({"ok": True, "count": count})

    def create_approval(self, session_id: str, tool_name: str, tool_input: Dict[str, Any]) -> RelayResponse:
        self._record("create_approval", session_id, tool_name, tool_input)
        scripted = self._scripted("create_approval")
        if scripted is not None:
            return scripted
        self._next_id += 1
        approval_id = f"approval-{self._next_id}"
        self.approvals[approval_id] = {
            "id": approval_id,
            "session_id": session_id,
            "tool_name": tool_name,
            "tool_input": tool_input,
            "status": STATUS_PENDING,
        }
        return ok({"id": approval_id})

    def get_approval(self, approval_id: str) -> RelayResponse:
        self._record("get_approval", approval_id)
        scripted = self._scripted("get_approval")
        if isinstance(scripted, str):
            if approval_id in self.approvals:
                self.approvals[approval_id]["status"] = scripted
            return ok({"id": approval_id, "status": scripted})
        if scripted is not None:
            return scripted
        if approval_id not in self.approvals:
            return failure(404, "HTTP 404: Not Found")
        return ok(dict(self.approvals[approval_id]))

    def acknowledge_approval(self, approval_id: str) -> RelayResponse:
        self._record("acknowledge_approval", approval_id)
        scripted = self._scripted("acknowledge_approval")
        if scripted is not None:
            return scripted
        if approval_id in self.approvals:
            self.approvals[approval_id]["acknowledged_at"] = "now"
        return ok({"ok": True})

    def invalidate_approvals(self, session_id: str, reason: str) -> RelayResponse:
        self._record("invalidate_approvals", session_id, reason)
        scripted = self._scripted("invalidate_approvals")
        if scripted is not None:
            return scripted
        retired = 0
        for approval in self.approvals.values():
            if approval["session_id"] == session_id and approval["status"] == STATUS_PENDING:
                approval["status"] = STATUS_INVALIDATED
                approval["decision_reason"] = reason
                retired += 1
        return ok({"invalidated": retired})

    def list_approvals(self, session_id: str, status: Optional[str] = None) -> RelayResponse:
        self._record("list_approvals", session_id, status=status)
        scripted = self._scripted("list_approvals")
        if scripted is not None:
            return scripted
        return ok([
            dict(a) for a in self.approvals.values()
            if a["session_id"] == session_id and (status is None or a["status"] == status)
        ])


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class InlineTasks:
    """Runs background tasks synchronously, in order."""

    def __init__(self):
        self.names: List[str] = []
        self.errors: List[Exception] = []

    def spawn(self, name: str, fn: Callable, *args, **kwargs) -> None:
        self.names.append(name)
        try:
            fn(*args, **kwargs)
        except Exception as e:
            self.errors.append(e)

    def drain(self, timeout: float = 1.0) -> None:
        pass


class MockForwarder:
    """NotificationForwarder that records what it was given."""

    def __init__(self):
        self.forwarded: List[Tuple[str, str, dict]] = []

    def forward(self, session_id: str, message: str, payload: Dict[str, Any]) -> None:
        self.forwarded.append((session_id, message, payload))
