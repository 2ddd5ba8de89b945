"""
Fire-and-forget side effects.

Some relay writes must never delay or fail the caller: marking a session
away after a long wait, acknowledging already-decided approvals. They run
on daemon threads; an error is logged and dropped. A hook process that
exits before the thread finishes simply loses the write.
"""

import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Runs best-effort callables on daemon threads."""

    def __init__(self):
        self._threads: List[threading.Thread] = []

    def spawn(self, name: str, fn: Callable, *args, **kwargs) -> threading.Thread:
        def _run():
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception("Background task %s failed", name)

        thread = threading.Thread(target=_run, name=f"teleportation-{name}", daemon=True)
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        thread.start()
        return thread

    def drain(self, timeout: float = 1.0) -> None:
        """Give outstanding tasks up to ``timeout`` seconds each to finish."""
        for thread in list(self._threads):
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]

