"""
Approval request manager and polling loop.

One permission request from the host becomes one approval record on the
relay. If the operator is present the hook returns at once and the host's
own dialog decides. If the operator is away the hook polls the record
until it is decided, retired, or the time budget runs out; a slow decision
is handed off to a detached poller (see ``handoff``) so the hook never
blocks the host for the full approval timeout.

Every failure converges to "no decision" (abstain), which lets the host's
native flow proceed.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, Optional

from .approval_state import (
    Decision,
    Pending,
    PollResult,
    TransportError,
    classify_approval,
    decision_for,
    is_terminal,
)
from .presence import PresenceCheck, PresenceOracle
from .protocols import RelayInterface
from .settings import HANDOFF_OFF, HANDOFF_PROACTIVE, ApprovalSettings
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)

# Leading alphanumeric; ids are interpolated into relay URL paths
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_@.-]{0,255}$")

# Consecutive transport errors tolerated before the loop gives up
POLL_FAILURE_THRESHOLD = 3

SUPERSEDED_REASON = "superseded"


def is_valid_session_id(session_id: Any) -> bool:
    return (
        isinstance(session_id, str)
        and bool(SESSION_ID_PATTERN.match(session_id))
        and ".." not in session_id
    )


def best_effort_mark_away(relay: RelayInterface, session_id: str) -> None:
    """PATCH is_away=true. Failure is logged and otherwise ignored."""
    response = relay.update_daemon_state(session_id, is_away=True)
    if response.ok:
        logger.info("Marked session %s away after waiting on approval", session_id)
    else:
        logger.warning("Could not mark session %s away: %s", session_id, response.error)


class ApprovalPoller:
    """Fixed-interval polling of one approval record.

    Sleeps one interval, then fetches, until a terminal status, the
    deadline, or more than ``POLL_FAILURE_THRESHOLD`` consecutive transport
    errors. Errors never change the interval.
    """

    def __init__(
        self,
        relay: RelayInterface,
        settings: ApprovalSettings,
        tasks=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        failure_threshold: int = POLL_FAILURE_THRESHOLD,
    ):
        self.relay = relay
        self.settings = settings
        self.tasks = tasks if tasks is not None else BackgroundTasks()
        self.sleep = sleep
        self.clock = clock
        self.failure_threshold = failure_threshold

    def poll(
        self,
        approval_id: str,
        session_id: str,
        deadline_seconds: float,
        already_away: bool = True,
        auto_away_after: Optional[float] = None,
    ) -> PollResult:
        """Poll until a terminal result, the failure threshold, or the deadline.

        Args:
            approval_id: Relay approval id
            session_id: Owning session
            deadline_seconds: Time budget for this loop
            already_away: True if the relay confirmed the session is away;
                otherwise the session is marked away once the wait passes
                ``auto_away_after``
            auto_away_after: Override for the settings threshold (seconds
                from the start of this loop)

        Returns:
            The terminal result, the last ``TransportError`` when the
            threshold was exceeded, or ``Pending`` at the deadline
        """
        away_after = self.settings.auto_away_after if auto_away_after is None else auto_away_after
        interval = self.settings.poll_interval
        start = self.clock()
        deadline = start + deadline_seconds
        failures = 0
        marked_away = already_away
        last: PollResult = Pending(approval_id)

        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                logger.info("Approval %s still pending at deadline", approval_id)
                return last
            self.sleep(min(interval, remaining))

            result = classify_approval(approval_id, self.relay.get_approval(approval_id))

            if isinstance(result, TransportError):
                failures += 1
                logger.warning(
                    "Polling approval %s failed (%d in a row): %s",
                    approval_id, failures, result.error,
                )
                if failures > self.failure_threshold:
                    return result
                continue

            failures = 0
            if is_terminal(result):
                logger.info("Approval %s resolved: %s", approval_id, type(result).__name__)
                return result

            last = result
            if not marked_away and self.clock() - start >= away_after:
                marked_away = True
                self.tasks.spawn("mark-away", best_effort_mark_away, self.relay, session_id)


class ApprovalRequestManager:
    """Turns a permission request into a remote decision or an abstain."""

    def __init__(
        self,
        relay: Optional[RelayInterface],
        settings: ApprovalSettings,
        presence: Optional[PresenceOracle] = None,
        poller: Optional[ApprovalPoller] = None,
        handoff=None,
        tasks=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.relay = relay
        self.settings = settings
        self.clock = clock
        if relay is not None:
            self.presence = presence or PresenceOracle(relay, settings.fail_safe_away)
            self.poller = poller or ApprovalPoller(relay, settings, tasks=tasks, clock=clock)
        else:
            self.presence = presence
            self.poller = poller
        self.handoff = handoff

    def handle_permission_request(
        self,
        session_id: Any,
        tool_name: Any,
        tool_input: Any,
    ) -> Optional[Decision]:
        """Decide a permission request.

        Returns:
            ``Decision`` for a remote allow/deny, None to abstain
        """
        if not is_valid_session_id(session_id):
            logger.warning("Rejecting invalid session id %r", session_id)
            return None
        if self.relay is None:
            return None
        if not isinstance(tool_name, str) or not tool_name:
            logger.warning("Permission request without a tool name for %s", session_id)
            return None
        if tool_input is None:
            tool_input = {}
        if not isinstance(tool_input, dict):
            logger.warning("Malformed tool input for %s: %r", session_id, type(tool_input))
            return None

        presence = self.presence.check(session_id)

        self._invalidate_previous(session_id)

        approval_id = self._create(session_id, tool_name, tool_input)
        if approval_id is None:
            return None

        if not presence.away:
            return None

        return decision_for(self._wait_remote(session_id, approval_id, presence))

    def _invalidate_previous(self, session_id: str) -> None:
        # At most one pending approval per session; failure must not block
        response = self.relay.invalidate_approvals(session_id, SUPERSEDED_REASON)
        if not response.ok:
            logger.warning("Could not invalidate earlier approvals for %s: %s", session_id, response.error)

    def _create(self, session_id: str, tool_name: str, tool_input: Dict[str, Any]) -> Optional[str]:
        response = self.relay.create_approval(session_id, tool_name, tool_input)
        data = response.data if isinstance(response.data, dict) else {}
        approval_id = data.get("id")
        if not response.ok or not approval_id:
            logger.warning(
                "Could not create approval for %s (%s): %s",
                session_id, tool_name, response.error or "no id in response",
            )
            return None
        logger.info("Created approval %s for %s (%s)", approval_id, session_id, tool_name)
        return str(approval_id)

    def _wait_remote(self, session_id: str, approval_id: str, presence: PresenceCheck) -> PollResult:
        total = self.settings.timeout
        already_away = presence.confirmed

        if self.settings.handoff == HANDOFF_OFF or self.handoff is None:
            return self.poller.poll(approval_id, session_id, total, already_away)

        window = min(self.settings.fast_poll_window, total)
        mark_away_after = None if already_away else self.settings.auto_away_after

        if self.settings.handoff == HANDOFF_PROACTIVE:
            self.handoff.start(session_id, approval_id, total, mark_away_after)
            return self.poller.poll(approval_id, session_id, window, already_away)

        start = self.clock()
        result = self.poller.poll(approval_id, session_id, window, already_away)
        if isinstance(result, Pending):
            elapsed = self.clock() - start
            remaining = total - elapsed
            if remaining > 0:
                if mark_away_after is not None:
                    mark_away_after = max(0.0, mark_away_after - elapsed)
                self.handoff.start(session_id, approval_id, remaining, mark_away_after)
        return result
