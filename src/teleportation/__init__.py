"""
Teleportation - remote approval and liveness for unattended Claude Code sessions.

Hook invocations ask a relay whether the operator is away, publish approval
records for a companion device, and poll for the remote decision. A detached
heartbeat process keeps the session record alive on the relay.
"""

from importlib.metadata import PackageNotFoundError, version as _version
from pathlib import Path

try:
    __version__ = _version("teleportation")
except PackageNotFoundError:
    # Source checkout without an install
    import tomllib

    _toml = Path(__file__).resolve().parent.parent.parent / "pyproject.toml"
    with open(_toml, "rb") as _f:
        __version__ = tomllib.load(_f)["project"]["version"]
