"""
Error types for Teleportation.

Errors are raised inside the relay and configuration layers and converted
to abstain decisions (hooks) or background-process exits (heartbeat) at the
component boundary. Nothing here ever propagates into the host's tool
pipeline.
"""

from typing import Any, Optional


class TeleportationError(Exception):
    """Base error with a stable machine-readable code."""

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ConfigurationError(TeleportationError):
    """Relay endpoint or credentials missing or unusable."""

    code = "CONFIG_ERROR"


class NetworkError(TeleportationError):
    """Transport failure talking to the relay (timeout, refused, non-2xx)."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.status = status

    @property
    def retryable(self) -> bool:
        """Connection-level failures and 5xx responses are worth retrying."""
        return self.status is None or self.status >= 500


class ValidationError(TeleportationError):
    """Malformed input: bad session id, unparseable hook payload."""

    code = "VALIDATION_ERROR"


_HINTS = {
    ConfigurationError: "check 'teleportation config show' and the RELAY_API_URL / RELAY_API_KEY variables",
    NetworkError: "the relay may be down or unreachable",
    ValidationError: "check the command arguments",
}


def format_error(error: Exception) -> str:
    """Render an error for CLI output."""
    if isinstance(error, TeleportationError):
        hint = _HINTS.get(type(error))
        text = f"[{error.code}] {error.message}"
        return f"{text} ({hint})" if hint else text
    return str(error) or "An unexpected error occurred"
