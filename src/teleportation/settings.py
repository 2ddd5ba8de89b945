"""
Centralized settings and paths for Teleportation.

Every component receives an explicit settings object rather than reading
module globals, so tests can build one directly:

    ApprovalSettings(poll_interval=0.01, timeout=1.0)

Values loaded from the config file go through ``from_config``, which clamps
each number to a safe range. Objects constructed directly are taken as-is.

Paths:
    ~/.teleportation/                  state dir (TELEPORTATION_STATE_DIR overrides)
    ~/.teleportation/config.yaml       config file (TELEPORTATION_CONFIG overrides)
    ~/.teleportation/logs/             hook and background-process logs
    <tempdir>/teleportation-heartbeat/ heartbeat marker files
"""

import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# Handoff modes for an away session
HANDOFF_OFF = "off"                    # Poll inline until the full approval timeout
HANDOFF_AFTER_WINDOW = "after_window"  # Poll inline for the fast window, then detach
HANDOFF_PROACTIVE = "proactive"        # Detach immediately, still poll the fast window
HANDOFF_MODES = (HANDOFF_OFF, HANDOFF_AFTER_WINDOW, HANDOFF_PROACTIVE)

PRESENCE_PRESENT = "present"
PRESENCE_AWAY = "away"


def get_state_dir() -> Path:
    """Base state directory, overridable for test isolation."""
    state_dir = os.environ.get("TELEPORTATION_STATE_DIR")
    if state_dir:
        return Path(state_dir)
    return Path.home() / ".teleportation"


def get_config_path() -> Path:
    override = os.environ.get("TELEPORTATION_CONFIG")
    if override:
        return Path(override)
    return get_state_dir() / "config.yaml"


def get_log_dir() -> Path:
    return get_state_dir() / "logs"


def get_marker_dir() -> Path:
    """Directory holding one heartbeat marker per session."""
    override = os.environ.get("TELEPORTATION_MARKER_DIR")
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / "teleportation-heartbeat"


def _safe_name(session_id: str) -> str:
    # Session ids are validated upstream; this keeps stray ids off other paths
    return re.sub(r"[^A-Za-z0-9_@.-]", "_", session_id)


def get_marker_path(session_id: str) -> Path:
    return get_marker_dir() / f"heartbeat-{_safe_name(session_id)}.json"


def get_mute_cache_path() -> Path:
    return get_state_dir() / "mute_cache.json"


def get_heartbeat_log_path(session_id: str) -> Path:
    return get_log_dir() / f"heartbeat-{_safe_name(session_id)}.log"


def get_handoff_log_path(session_id: str) -> Path:
    return get_log_dir() / f"handoff-{_safe_name(session_id)}.log"


def get_trace_log_path(daemon_log: Path) -> Path:
    """Library log records of a detached process, kept apart from its own log."""
    daemon_log = Path(daemon_log)
    return daemon_log.with_name(f"{daemon_log.stem}.trace.log")


def clamp(value, low: float, high: float, default: float) -> float:
    """Coerce ``value`` to a float within [low, high].

    Values that cannot be parsed as numbers fall back to ``default``.
    """
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


def _clamped(raw: dict, bounds: dict, defaults: dict) -> dict:
    values = {}
    for key, (low, high) in bounds.items():
        if key in raw and raw[key] is not None:
            values[key] = clamp(raw[key], low, high, defaults[key])
    return values


@dataclass(frozen=True)
class RelaySettings:
    """Relay endpoint and credentials.

    A missing ``RelaySettings`` (``None``) means the relay is unconfigured
    and every hook abstains.
    """

    url: str
    api_key: str
    timeout: float = 5.0

    @classmethod
    def from_config(cls, raw: dict) -> Optional["RelaySettings"]:
        url = str(raw.get("url") or "").strip()
        api_key = str(raw.get("api_key") or "").strip()
        if not url or not api_key:
            return None
        timeout = clamp(raw.get("timeout", 5.0), 1.0, 60.0, 5.0)
        return cls(url=url.rstrip("/"), api_key=api_key, timeout=timeout)

    @property
    def masked_key(self) -> str:
        if len(self.api_key) <= 8:
            return "****"
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"


_APPROVAL_BOUNDS = {
    "poll_interval": (0.01, 60.0),
    "fast_poll_window": (0.0, 3600.0),
    "timeout": (1.0, 86400.0),
    "auto_away_after": (0.0, 86400.0),
}


@dataclass(frozen=True)
class ApprovalSettings:
    """Timing and policy for the approval polling loop."""

    poll_interval: float = 2.0
    fast_poll_window: float = 30.0
    timeout: float = 600.0
    auto_away_after: float = 60.0
    fail_safe_away: bool = False
    handoff: str = HANDOFF_AFTER_WINDOW

    @classmethod
    def from_config(cls, raw: dict) -> "ApprovalSettings":
        defaults = cls()
        values = _clamped(raw, _APPROVAL_BOUNDS, {
            key: getattr(defaults, key) for key in _APPROVAL_BOUNDS
        })

        fail_safe = str(raw.get("presence_fail_safe") or PRESENCE_PRESENT).strip().lower()
        values["fail_safe_away"] = fail_safe == PRESENCE_AWAY

        handoff = str(raw.get("handoff") or HANDOFF_AFTER_WINDOW).strip().lower()
        values["handoff"] = handoff if handoff in HANDOFF_MODES else HANDOFF_AFTER_WINDOW

        return cls(**values)


_HEARTBEAT_BOUNDS = {
    "interval": (1.0, 600.0),
    "start_delay": (0.0, 300.0),
    "max_failures": (1, 100),
    "timeout": (1.0, 60.0),
    "retries": (0, 5),
    "retry_backoff": (0.0, 60.0),
}
_HEARTBEAT_INTS = ("max_failures", "retries")


@dataclass(frozen=True)
class HeartbeatSettings:
    """Timing for the per-session liveness reporter."""

    interval: float = 30.0
    start_delay: float = 5.0
    max_failures: int = 3
    timeout: float = 5.0
    retries: int = 2
    retry_backoff: float = 1.0

    @classmethod
    def from_config(cls, raw: dict) -> "HeartbeatSettings":
        defaults = cls()
        values = _clamped(raw, _HEARTBEAT_BOUNDS, {
            key: getattr(defaults, key) for key in _HEARTBEAT_BOUNDS
        })
        for key in _HEARTBEAT_INTS:
            if key in values:
                values[key] = int(values[key])
        return cls(**values)


@dataclass(frozen=True)
class MuteSettings:
    cache_ttl: float = 60.0

    @classmethod
    def from_config(cls, raw: dict) -> "MuteSettings":
        if raw.get("cache_ttl") is None:
            return cls()
        return cls(cache_ttl=clamp(raw["cache_ttl"], 0.0, 3600.0, 60.0))


@dataclass(frozen=True)
class Settings:
    """Everything a hook invocation or background process needs."""

    relay: Optional[RelaySettings] = None
    approvals: ApprovalSettings = field(default_factory=ApprovalSettings)
    heartbeat: HeartbeatSettings = field(default_factory=HeartbeatSettings)
    mute: MuteSettings = field(default_factory=MuteSettings)

    @property
    def configured(self) -> bool:
        return self.relay is not None
