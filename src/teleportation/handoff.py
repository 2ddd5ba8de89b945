"""
Daemon handoff: continue polling an approval outside the hook process.

A hook invocation may only block the host for the fast poll window. When
that expires with the approval still pending, the controller starts a
detached poller (``python -m teleportation.handoff``) and records the
handoff in the session's daemon-state record. The poller keeps polling
until the approval deadline and records how it ended.

The daemon-state writes are telemetry for dashboards. Nothing in this
package reads them back to decide an approval.
"""

import os
import subprocess
import sys
from typing import Callable, Optional

from .approval_state import (
    LOCATION_DAEMON_HANDOFF,
    LOCATION_LOCAL,
    LOCATION_REMOTE,
    Allowed,
    Denied,
    Invalidated,
    Pending,
    PollResult,
    TransportError,
)
from .daemon_state import (
    STARTED_TIMEOUT,
    STATUS_RUNNING,
    STATUS_STOPPED,
    STOPPED_APPROVED,
    STOPPED_DENIED,
    STOPPED_INVALIDATED,
    STOPPED_LOCAL_APPROVAL,
    STOPPED_RELAY_ERROR,
    STOPPED_TIMEOUT,
)
from .logging_config import get_logger
from .protocols import RelayInterface

logger = get_logger("handoff")


def spawn_handoff_poller(
    session_id: str,
    approval_id: str,
    deadline_seconds: float,
    mark_away_after: Optional[float] = None,
) -> int:
    """Start the detached poller process.

    Returns:
        PID of the new process
    """
    cmd = [
        sys.executable, "-m", "teleportation.handoff",
        "--session", session_id,
        "--approval", approval_id,
        "--deadline", f"{deadline_seconds:.3f}",
    ]
    if mark_away_after is not None:
        cmd += ["--mark-away-after", f"{mark_away_after:.3f}"]

    proc = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        env=os.environ.copy(),
    )
    return proc.pid


class DaemonHandoffController:
    """Starts the detached poller and records handoff state transitions."""

    def __init__(
        self,
        relay: RelayInterface,
        spawner: Callable[..., int] = spawn_handoff_poller,
    ):
        self.relay = relay
        self.spawner = spawner

    def start(
        self,
        session_id: str,
        approval_id: str,
        deadline_seconds: float,
        mark_away_after: Optional[float] = None,
    ) -> bool:
        """Hand the approval to a detached poller.

        Returns:
            True if the poller was started
        """
        try:
            pid = self.spawner(session_id, approval_id, deadline_seconds, mark_away_after)
        except OSError as e:
            logger.error("Could not start handoff poller for %s: %s", approval_id, e)
            return False

        logger.info(
            "Handed approval %s to poller pid=%s (%.0fs left)",
            approval_id, pid, deadline_seconds,
        )
        self._write(
            session_id,
            status=STATUS_RUNNING,
            started_reason=STARTED_TIMEOUT,
            last_approval_location=LOCATION_DAEMON_HANDOFF,
        )
        return True

    def record_local_resolution(self, session_id: str) -> None:
        """The host's own dialog settled the request before the remote path."""
        self._write(
            session_id,
            status=STATUS_STOPPED,
            stopped_reason=STOPPED_LOCAL_APPROVAL,
            last_approval_location=LOCATION_LOCAL,
        )

    def record_remote_resolution(self, session_id: str, stopped_reason: str) -> None:
        fields = {"status": STATUS_STOPPED, "stopped_reason": stopped_reason}
        if stopped_reason in (STOPPED_APPROVED, STOPPED_DENIED):
            fields["last_approval_location"] = LOCATION_REMOTE
        self._write(session_id, **fields)

    def _write(self, session_id: str, **fields) -> None:
        response = self.relay.update_daemon_state(session_id, **fields)
        if not response.ok:
            logger.warning("Daemon-state update for %s failed: %s", session_id, response.error)


def stopped_reason_for(result: PollResult) -> str:
    if isinstance(result, Allowed):
        return STOPPED_APPROVED
    if isinstance(result, Denied):
        return STOPPED_DENIED
    if isinstance(result, Invalidated):
        return STOPPED_INVALIDATED
    if isinstance(result, TransportError):
        return STOPPED_RELAY_ERROR
    return STOPPED_TIMEOUT


class HandoffPoller:
    """Body of the detached poller process."""

    def __init__(self, relay: RelayInterface, poller, controller: DaemonHandoffController, log):
        self.relay = relay
        self.poller = poller
        self.controller = controller
        self.log = log

    def run(
        self,
        session_id: str,
        approval_id: str,
        deadline_seconds: float,
        mark_away_after: Optional[float] = None,
    ) -> str:
        """Poll to the deadline and record the outcome.

        Returns:
            The stopped_reason written to daemon state
        """
        self.log.info(f"Polling approval {approval_id} for up to {deadline_seconds:.0f}s")
        result = self.poller.poll(
            approval_id,
            session_id,
            deadline_seconds,
            already_away=mark_away_after is None,
            auto_away_after=mark_away_after,
        )

        reason = stopped_reason_for(result)
        if isinstance(result, Allowed):
            ack = self.relay.acknowledge_approval(approval_id)
            if not ack.ok:
                self.log.warn(f"Could not acknowledge {approval_id}: {ack.error}")
        if isinstance(result, TransportError):
            self.log.error(f"Relay unreachable, giving up on {approval_id}: {result.error}")
        elif isinstance(result, Pending):
            self.log.warn(f"Approval {approval_id} timed out")
        else:
            self.log.success(f"Approval {approval_id} finished: {reason}")

        self.controller.record_remote_resolution(session_id, reason)
        return reason


def main() -> int:
    """CLI entrypoint for the detached handoff poller."""
    import argparse

    from .approvals import ApprovalPoller, is_valid_session_id
    from .config import load_settings
    from .daemon_logging import BaseDaemonLogger
    from .logging_config import setup_logging
    from .relay_client import RelayClient
    from .settings import get_handoff_log_path, get_trace_log_path

    parser = argparse.ArgumentParser(description="Teleportation handoff poller")
    parser.add_argument("--session", required=True, help="Session id")
    parser.add_argument("--approval", required=True, help="Approval id to poll")
    parser.add_argument("--deadline", type=float, required=True, help="Seconds left before the approval times out")
    parser.add_argument(
        "--mark-away-after", type=float, default=None,
        help="Mark the session away after this many seconds (presence was not confirmed)",
    )
    args = parser.parse_args()

    if not is_valid_session_id(args.session):
        return 2

    settings = load_settings()
    if settings.relay is None:
        return 1

    log_path = get_handoff_log_path(args.session)
    setup_logging(log_file=get_trace_log_path(log_path), console=False)
    log = BaseDaemonLogger(log_path)
    log.section(f"Handoff {args.approval}")
    log.info(f"PID: {os.getpid()}  session: {args.session}")

    relay = RelayClient.from_settings(settings.relay)
    poller = ApprovalPoller(relay, settings.approvals)
    HandoffPoller(relay, poller, DaemonHandoffController(relay), log).run(
        args.session, args.approval, max(0.0, args.deadline), args.mark_away_after,
    )
    poller.tasks.drain()
    return 0


if __name__ == "__main__":
    sys.exit(main())
