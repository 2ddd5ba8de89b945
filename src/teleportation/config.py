"""
Configuration loading for Teleportation.

Reads ~/.teleportation/config.yaml. Every value resolves in the same
order: config file, then environment variable, then built-in default.

Example config:

    relay:
      url: https://relay.example.com
      api_key: your-secret-key
      timeout: 5

    approvals:
      poll_interval: 2
      fast_poll_window: 30
      timeout: 600
      auto_away_after: 60
      presence_fail_safe: present   # or: away
      handoff: after_window         # off | after_window | proactive

    heartbeat:
      interval: 30
      start_delay: 5
      max_failures: 3

    mute:
      cache_ttl: 60

Loading never raises. A missing or broken file behaves like an empty one,
and a relay without URL or key leaves the whole subsystem unconfigured.
"""

import logging
import os
from typing import Optional

import yaml

from .settings import (
    ApprovalSettings,
    HeartbeatSettings,
    MuteSettings,
    RelaySettings,
    Settings,
    get_config_path,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = get_config_path()

# Environment fallbacks per section key
_RELAY_ENV = {
    "url": "RELAY_API_URL",
    "api_key": "RELAY_API_KEY",
    "timeout": "TELEPORTATION_RELAY_TIMEOUT",
}
_APPROVAL_ENV = {
    "poll_interval": "TELEPORTATION_POLL_INTERVAL",
    "fast_poll_window": "TELEPORTATION_FAST_POLL_WINDOW",
    "timeout": "TELEPORTATION_APPROVAL_TIMEOUT",
    "auto_away_after": "TELEPORTATION_AUTO_AWAY_AFTER",
    "presence_fail_safe": "TELEPORTATION_PRESENCE_FAIL_SAFE",
    "handoff": "TELEPORTATION_HANDOFF",
}
_HEARTBEAT_ENV = {
    "interval": "TELEPORTATION_HEARTBEAT_INTERVAL",
    "start_delay": "TELEPORTATION_HEARTBEAT_START_DELAY",
    "max_failures": "TELEPORTATION_HEARTBEAT_MAX_FAILURES",
    "timeout": "TELEPORTATION_HEARTBEAT_TIMEOUT",
    "retries": "TELEPORTATION_HEARTBEAT_RETRIES",
    "retry_backoff": "TELEPORTATION_HEARTBEAT_RETRY_BACKOFF",
}
_MUTE_ENV = {
    "cache_ttl": "TELEPORTATION_MUTE_CACHE_TTL",
}


def load_config() -> dict:
    """Load configuration from config file.

    Returns:
        Configuration dict, or empty dict if the file doesn't exist or is invalid
    """
    if not CONFIG_PATH.exists():
        return {}

    try:
        with open(CONFIG_PATH) as f:
            config = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_PATH, e)
        return {}

    if not isinstance(config, dict):
        return {}
    return config


def save_config(config: dict) -> None:
    """Save configuration to config file."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_PATH, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)


def _section(config: dict, name: str) -> dict:
    section = config.get(name)
    return section if isinstance(section, dict) else {}


def _pick(section: dict, env_map: dict) -> dict:
    """Resolve each key: config file value, then env var, else omitted."""
    resolved = {}
    for key, env_var in env_map.items():
        value = section.get(key)
        if value is None or value == "":
            value = os.environ.get(env_var) or None
        if value is not None:
            resolved[key] = value
    return resolved


def get_relay_config(config: Optional[dict] = None) -> Optional[RelaySettings]:
    """Get relay settings, or None when the relay is disabled or incomplete.

    ``relay.enabled: false`` in the config file turns the relay off even
    when RELAY_API_URL / RELAY_API_KEY are set in the environment.
    """
    config = load_config() if config is None else config
    section = _section(config, "relay")
    if section.get("enabled", True) is False:
        return None
    return RelaySettings.from_config(_pick(section, _RELAY_ENV))


def get_approval_config(config: Optional[dict] = None) -> ApprovalSettings:
    config = load_config() if config is None else config
    return ApprovalSettings.from_config(_pick(_section(config, "approvals"), _APPROVAL_ENV))


def get_heartbeat_config(config: Optional[dict] = None) -> HeartbeatSettings:
    config = load_config() if config is None else config
    return HeartbeatSettings.from_config(_pick(_section(config, "heartbeat"), _HEARTBEAT_ENV))


def get_mute_config(config: Optional[dict] = None) -> MuteSettings:
    config = load_config() if config is None else config
    return MuteSettings.from_config(_pick(_section(config, "mute"), _MUTE_ENV))


def load_settings() -> Settings:
    """Read the config file once and build the full settings bundle."""
    config = load_config()
    return Settings(
        relay=get_relay_config(config),
        approvals=get_approval_config(config),
        heartbeat=get_heartbeat_config(config),
        mute=get_mute_config(config),
    )
