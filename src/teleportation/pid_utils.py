"""
Marker-file helpers for the per-session heartbeat process.

A marker is a small JSON file ``{pid, session_id, started_at}`` created
exclusively (hard-linked from a filled temp file) with mode 0600 inside a
0700 directory. Its presence means "a reporter owns this session". A
marker whose pid is dead is orphaned; it still blocks a new reporter
until explicitly cleared.
"""

import json
import os
import signal
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

MARKER_DIR_MODE = 0o700
MARKER_FILE_MODE = 0o600


def is_pid_alive(pid: int) -> bool:
    """Check whether a process with this pid exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    except OSError:
        return False
    return True


def _ensure_marker_dir(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True, mode=MARKER_DIR_MODE)
    try:
        os.chmod(directory, MARKER_DIR_MODE)
    except OSError:
        pass


def write_marker(path: Path, session_id: str, pid: Optional[int] = None) -> bool:
    """Atomically create a marker file.

    The payload is written to a private temp file first and hard-linked
    into place, so the marker never exists without its contents.

    Returns:
        True if the marker was created, False if one already exists
    """
    path = Path(path)
    _ensure_marker_dir(path.parent)

    payload = json.dumps({
        "pid": pid if pid is not None else os.getpid(),
        "session_id": session_id,
        "started_at": datetime.now(timezone.utc).isoformat(),
    })

    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    fd = os.open(tmp, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, MARKER_FILE_MODE)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(payload)
        os.chmod(tmp, MARKER_FILE_MODE)
        # link() fails if the target exists, unlike rename()
        os.link(tmp, path)
    except FileExistsError:
        return False
    finally:
        tmp.unlink(missing_ok=True)
    return True


def read_marker(path: Path) -> Optional[dict]:
    """Read a marker file.

    Returns:
        The marker dict, or None if missing, unreadable or corrupt
    """
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("pid"), int):
        return None
    return data


def get_marker_pid(path: Path) -> Optional[int]:
    """PID recorded in the marker, only if that process is alive."""
    marker = read_marker(path)
    if marker and is_pid_alive(marker["pid"]):
        return marker["pid"]
    return None


def remove_marker(path: Path, pid: Optional[int] = None) -> bool:
    """Remove a marker file.

    Args:
        path: Marker file path
        pid: If given, only remove a marker recorded with this pid

    Returns:
        True if a file was removed
    """
    path = Path(path)
    if pid is not None:
        marker = read_marker(path)
        if marker is None or marker["pid"] != pid:
            return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def stop_process(path: Path, timeout: float = 5.0) -> bool:
    """Stop the process recorded in a marker file.

    Sends SIGTERM, waits up to ``timeout`` seconds, then SIGKILL. A marker
    whose process is already gone is removed.

    Returns:
        True if a running process was signalled
    """
    path = Path(path)
    marker = read_marker(path)
    if marker is None:
        if path.exists():
            remove_marker(path)
        return False

    pid = marker["pid"]
    if not is_pid_alive(pid):
        remove_marker(path)
        return False

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        remove_marker(path)
        return False

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_pid_alive(pid):
            break
        time.sleep(0.1)
    else:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    # The reporter removes its own marker on SIGTERM; SIGKILL leaves it behind
    remove_marker(path, pid=pid)
    return True
