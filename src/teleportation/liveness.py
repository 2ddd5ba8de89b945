"""
Liveness registries: who owns the heartbeat for a session.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Optional

from .pid_utils import get_marker_pid, read_marker, remove_marker, write_marker
from .settings import get_marker_path


class MarkerFileRegistry:
    """Registry backed by one marker file per session in a temp directory.

    The marker records the owning pid. ``release`` only removes a marker
    this process owns, so a reporter that lost a race cannot delete the
    winner's marker.
    """

    def __init__(
        self,
        pid: Optional[int] = None,
        path_for: Callable[[str], Path] = get_marker_path,
    ):
        self.pid = pid if pid is not None else os.getpid()
        self._path_for = path_for

    def path(self, session_id: str) -> Path:
        return self._path_for(session_id)

    def try_acquire(self, session_id: str) -> bool:
        return write_marker(self.path(session_id), session_id, pid=self.pid)

    def release(self, session_id: str) -> None:
        remove_marker(self.path(session_id), pid=self.pid)

    def is_held(self, session_id: str) -> bool:
        return self.path(session_id).exists()

    def owner_pid(self, session_id: str) -> Optional[int]:
        """PID of a live owner, None if free or orphaned."""
        return get_marker_pid(self.path(session_id))

    def clear_orphan(self, session_id: str) -> bool:
        """Remove a marker whose process is gone.

        Returns:
            True if an orphaned marker was removed
        """
        path = self.path(session_id)
        if not path.exists() or self.owner_pid(session_id) is not None:
            return False
        marker = read_marker(path)
        if marker is None:
            return remove_marker(path)
        return remove_marker(path, pid=marker["pid"])


class InMemoryRegistry:
    """Process-local registry for tests and single-process use."""

    def __init__(self):
        self._held: set = set()
        self._lock = threading.Lock()

    def try_acquire(self, session_id: str) -> bool:
        with self._lock:
            if session_id in self._held:
                return False
            self._held.add(session_id)
            return True

    def release(self, session_id: str) -> None:
        with self._lock:
            self._held.discard(session_id)

    def is_held(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._held
