"""
Heartbeat liveness reporter.

One detached process per session (``python -m teleportation.heartbeat``)
keeps the relay's session record alive:

    start delay -> beat -> interval -> beat -> ...

``count`` is the number of confirmed beats: it is incremented before the
call and rolled back when the call (after retries) fails. After each
successful beat a background sweep acknowledges approvals that were
already decided. After ``max_failures`` consecutive failed beats the
process removes its marker and exits.

Ownership is a marker file per session. SIGTERM/SIGINT remove the marker
before anything else so a replacement reporter can start at once.
"""

import os
import signal
import subprocess
import sys
import time
from typing import Callable, Optional

from .approval_state import STATUS_ALLOWED, ApprovalRequest
from .daemon_logging import BaseDaemonLogger
from .liveness import MarkerFileRegistry
from .pid_utils import read_marker, is_pid_alive, stop_process
from .protocols import LivenessRegistry, RelayInterface
from .retry import retry_call
from .settings import HeartbeatSettings, get_heartbeat_log_path, get_marker_path, get_trace_log_path
from .tasks import BackgroundTasks

# Exit codes for the reporter process
EXIT_OK = 0
EXIT_UNCONFIGURED = 1
EXIT_ALREADY_RUNNING = 3
EXIT_TOO_MANY_FAILURES = 4


class HeartbeatReporter:
    """Sends periodic heartbeats for one session until told to stop."""

    def __init__(
        self,
        session_id: str,
        relay: RelayInterface,
        settings: HeartbeatSettings,
        registry: LivenessRegistry,
        log: BaseDaemonLogger,
        tasks=None,
        sleep: Callable[[float], None] = time.sleep,
        pid: Optional[int] = None,
        install_signals: bool = True,
    ):
        self.session_id = session_id
        self.relay = relay
        self.settings = settings
        self.registry = registry
        self.log = log
        self.tasks = tasks if tasks is not None else BackgroundTasks()
        self.sleep = sleep
        self.pid = pid if pid is not None else os.getpid()
        self.install_signals = install_signals

        self.count = 0
        self.consecutive_failures = 0
        self.total_failures = 0
        self._shutdown = False
        self._ack_thread = None

    # --- Beats ---

    def beat(self) -> bool:
        """Send one heartbeat (with retries).

        Returns:
            True if the relay confirmed it
        """
        self.count += 1
        response = retry_call(
            lambda: self.relay.send_heartbeat(
                self.session_id, self.count, pid=self.pid, timeout=self.settings.timeout,
            ),
            retries=self.settings.retries,
            backoff=self.settings.retry_backoff,
            sleep=self.sleep,
        )

        if response.ok:
            self.consecutive_failures = 0
            self.log.debug(f"Heartbeat #{self.count} ok")
            self._schedule_ack_sweep()
            return True

        self.count -= 1
        self.consecutive_failures += 1
        self.total_failures += 1
        self.log.warn(
            f"Heartbeat failed ({self.consecutive_failures}/{self.settings.max_failures}): "
            f"{response.error or response.status}"
        )
        return False

    def best_effort_acknowledge(self) -> int:
        """Acknowledge allowed approvals that nobody acknowledged yet.

        Errors are logged and dropped; the next successful beat retries.

        Returns:
            Number of approvals acknowledged
        """
        response = self.relay.list_approvals(self.session_id, status=STATUS_ALLOWED)
        if not response.ok:
            self.log.debug(f"Approval sweep skipped: {response.error}")
            return 0

        items = response.data
        if isinstance(items, dict):
            items = items.get("approvals", [])
        if not isinstance(items, list):
            return 0

        acknowledged = 0
        for item in items:
            if not isinstance(item, dict):
                continue
            approval = ApprovalRequest.from_dict(item)
            if not approval.id or approval.acknowledged:
                continue
            ack = self.relay.acknowledge_approval(approval.id)
            if ack.ok:
                acknowledged += 1
                self.log.info(f"Acknowledged approval {approval.id}")
            else:
                self.log.debug(f"Could not acknowledge {approval.id}: {ack.error}")
        return acknowledged

    def _schedule_ack_sweep(self) -> None:
        if self._ack_thread is not None and self._ack_thread.is_alive():
            return
        self._ack_thread = self.tasks.spawn("ack-sweep", self.best_effort_acknowledge)

    # --- Loop ---

    def stop(self) -> None:
        self._shutdown = True

    def _interruptible_sleep(self, total_seconds: float) -> None:
        """Sleep in short chunks so a signal stops the loop promptly."""
        chunk_size = 1.0
        elapsed = 0.0
        while elapsed < total_seconds and not self._shutdown:
            sleep_time = min(chunk_size, total_seconds - elapsed)
            self.sleep(sleep_time)
            elapsed += sleep_time

    def _install_signal_handlers(self) -> dict:
        def handle_shutdown(signum, frame):
            # Marker first: a replacement may start while we wind down
            self.registry.release(self.session_id)
            self.log.info("Shutdown signal received")
            self._shutdown = True

        previous = {}
        for sig in (signal.SIGTERM, signal.SIGINT):
            previous[sig] = signal.signal(sig, handle_shutdown)
        return previous

    def run(self) -> int:
        """Run until a signal or ``max_failures`` consecutive failures.

        Returns:
            Process exit code
        """
        if not self.registry.try_acquire(self.session_id):
            self.log.error(
                f"Session {self.session_id} already has a heartbeat marker "
                "(clear it with 'teleportation heartbeat clear' if the reporter is gone)"
            )
            return EXIT_ALREADY_RUNNING

        previous = self._install_signal_handlers() if self.install_signals else {}
        exit_code = EXIT_OK
        try:
            self.log.section(f"Heartbeat {self.session_id}")
            self.log.info(
                f"PID {self.pid}, interval {self.settings.interval:.0f}s, "
                f"max failures {self.settings.max_failures}"
            )
            self._interruptible_sleep(self.settings.start_delay)

            while not self._shutdown:
                self.beat()
                if self.consecutive_failures >= self.settings.max_failures:
                    self.log.error(
                        f"{self.consecutive_failures} consecutive heartbeat failures, stopping"
                    )
                    exit_code = EXIT_TOO_MANY_FAILURES
                    break
                self._interruptible_sleep(self.settings.interval)
        finally:
            self.registry.release(self.session_id)
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self.log.info(f"Heartbeat stopped after {self.count} confirmed beat(s)")
        return exit_code


# --- Process management ---


def start_reporter(session_id: str) -> Optional[int]:
    """Start a detached reporter unless the session already has a marker.

    Returns:
        PID of the new process, or None if a marker (live or orphaned) exists
    """
    marker_path = get_marker_path(session_id)
    if marker_path.exists():
        return None

    proc = subprocess.Popen(
        [sys.executable, "-m", "teleportation.heartbeat", "--session", session_id],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        env=os.environ.copy(),
    )
    return proc.pid


def stop_reporter(session_id: str, timeout: float = 5.0) -> bool:
    """SIGTERM the session's reporter and wait for it.

    Returns:
        True if a running reporter was signalled
    """
    return stop_process(get_marker_path(session_id), timeout=timeout)


def reporter_status(session_id: str) -> dict:
    """Local view of the session's reporter: marker, pid, liveness."""
    path = get_marker_path(session_id)
    marker = read_marker(path)
    if marker is None:
        return {"marker": path.exists(), "pid": None, "alive": False, "started_at": None}
    return {
        "marker": True,
        "pid": marker["pid"],
        "alive": is_pid_alive(marker["pid"]),
        "started_at": marker.get("started_at"),
    }


def main() -> int:
    """CLI entrypoint for the heartbeat reporter process."""
    import argparse

    from .approvals import is_valid_session_id
    from .config import load_settings
    from .logging_config import setup_logging
    from .relay_client import RelayClient

    parser = argparse.ArgumentParser(description="Teleportation heartbeat reporter")
    parser.add_argument("--session", "-s", required=True, help="Session id")
    args = parser.parse_args()

    if not is_valid_session_id(args.session):
        return EXIT_UNCONFIGURED

    settings = load_settings()
    if settings.relay is None:
        return EXIT_UNCONFIGURED

    log_path = get_heartbeat_log_path(args.session)
    setup_logging(log_file=get_trace_log_path(log_path), console=False)

    reporter = HeartbeatReporter(
        args.session,
        RelayClient.from_settings(settings.relay),
        settings.heartbeat,
        MarkerFileRegistry(),
        BaseDaemonLogger(log_path),
    )
    return reporter.run()


if __name__ == "__main__":
    sys.exit(main())
