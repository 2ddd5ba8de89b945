"""
HTTP client for the relay service.

The relay stores session records, daemon-state records and approval
records; hook invocations and background processes coordinate only through
it. Each method sends one request with a per-call timeout and returns a
``RelayResponse``. Transport failures (timeout, refused connection, non-2xx,
unparseable body) come back as ``ok=False`` rather than exceptions, so
callers decide whether a failure is counted, retried or ignored.
"""

import json
import logging
import time
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from .exceptions import NetworkError
from .settings import RelaySettings

logger = logging.getLogger(__name__)


@dataclass
class RelayResponse:
    """Result of one relay call.

    ``status`` is the HTTP status, or 0 when no response arrived.
    """

    ok: bool
    status: int = 0
    data: Any = None
    error: str = ""

    def __post_init__(self):
        if self.data is None:
            self.data = {}

    @property
    def retryable(self) -> bool:
        """Connection-level failures and 5xx are transient; 4xx are not."""
        return not self.ok and (self.status == 0 or self.status >= 500)

    def raise_for_status(self) -> "RelayResponse":
        if not self.ok:
            raise NetworkError(self.error or "Relay request failed", status=self.status or None)
        return self


def _sid(session_id: str) -> str:
    return quote(session_id, safe="")


class RelayClient:
    """HTTP client for the relay API, authenticated with a bearer token."""

    def __init__(self, url: str, api_key: str, timeout: float = 5.0):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> "RelayClient":
        return cls(settings.url, settings.api_key, timeout=settings.timeout)

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        query: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> RelayResponse:
        """Send an HTTP request to the relay."""
        url = f"{self.url}{path}"
        if query:
            params = {k: v for k, v in query.items() if v is not None}
            if params:
                url = f"{url}?{urlencode(params)}"

        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = Request(url, data=data, method=method)
        req.add_header("Authorization", f"Bearer {self.api_key}")
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")

        try:
            with urlopen(req, timeout=timeout or self.timeout) as resp:
                status = resp.status
                raw = resp.read().decode("utf-8")
        except HTTPError as e:
            message = f"HTTP {e.code}: {e.reason}"
            try:
                error_body = json.loads(e.read().decode("utf-8"))
                if isinstance(error_body, dict) and error_body.get("error"):
                    message = str(error_body["error"])
            except (ValueError, UnicodeDecodeError, OSError):
                pass
            logger.debug("%s %s -> %s", method, path, message)
            return RelayResponse(ok=False, status=e.code, error=message)
        except (URLError, HTTPException, OSError) as e:
            logger.debug("%s %s -> connection error: %s", method, path, e)
            return RelayResponse(ok=False, error=f"Connection error: {e}")

        if not raw.strip():
            return RelayResponse(ok=True, status=status)
        try:
            payload = json.loads(raw)
        except ValueError:
            return RelayResponse(ok=False, status=status, error="Invalid JSON from relay")
        return RelayResponse(ok=True, status=status, data=payload)

    # --- Sessions ---

    def register_session(self, session_id: str, meta: Optional[Dict[str, Any]] = None) -> RelayResponse:
        return self._request(
            "POST", "/api/sessions/register",
            {"session_id": session_id, "meta": meta or {}},
        )

    def get_session(self, session_id: str) -> RelayResponse:
        return self._request("GET", f"/api/sessions/{_sid(session_id)}")

    def get_daemon_state(self, session_id: str) -> RelayResponse:
        return self._request("GET", f"/api/sessions/{_sid(session_id)}/daemon-state")

    def update_daemon_state(self, session_id: str, **fields) -> RelayResponse:
        """Partial update of the daemon-state record (last write wins)."""
        return self._request(
            "PATCH", f"/api/sessions/{_sid(session_id)}/daemon-state", fields,
        )

    def send_heartbeat(
        self, session_id: str, count: int, pid: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> RelayResponse:
        body = {"timestamp": int(time.time() * 1000), "pid": pid, "count": count}
        return self._request(
            "POST", f"/api/sessions/{_sid(session_id)}/heartbeat", body, timeout=timeout,
        )

    # --- Approvals ---

    def create_approval(
        self, session_id: str, tool_name: str, tool_input: Dict[str, Any],
    ) -> RelayResponse:
        return self._request(
            "POST", "/api/approvals",
            {"session_id": session_id, "tool_name": tool_name, "tool_input": tool_input},
        )

    def get_approval(self, approval_id: str) -> RelayResponse:
        return self._request("GET", f"/api/approvals/{_sid(approval_id)}")

    def acknowledge_approval(self, approval_id: str) -> RelayResponse:
        return self._request(
            "POST", f"/api/approvals/{_sid(approval_id)}/ack", {"processed": True},
        )

    def invalidate_approvals(self, session_id: str, reason: str) -> RelayResponse:
        """Retire every pending approval for the session. Idempotent."""
        return self._request(
            "POST", "/api/approvals/invalidate",
            {"session_id": session_id, "reason": reason},
        )

    def list_approvals(self, session_id: str, status: Optional[str] = None) -> RelayResponse:
        return self._request(
            "GET", "/api/approvals",
            query={"status": status, "session_id": session_id},
        )
