"""
Presence oracle: is the operator away from this session?

Answers from the relay's daemon-state record on every call, with no
caching. When the relay can't be reached or returns something unusable,
the configured fail-safe answer is used (default: present, so the local
dialog stays in charge).
"""

import logging
from dataclasses import dataclass

from .protocols import RelayInterface

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceCheck:
    """Outcome of one presence query.

    ``confirmed`` is False when ``away`` is the fail-safe default rather
    than something the relay actually said.
    """

    away: bool
    confirmed: bool = True


class PresenceOracle:
    """Reads ``is_away`` from GET /api/sessions/{id}/daemon-state."""

    def __init__(self, relay: RelayInterface, fail_safe_away: bool = False):
        self.relay = relay
        self.fail_safe_away = fail_safe_away

    def check(self, session_id: str) -> PresenceCheck:
        response = self.relay.get_daemon_state(session_id)
        if not response.ok:
            logger.warning(
                "Presence check failed for %s (%s); assuming %s",
                session_id, response.error, "away" if self.fail_safe_away else "present",
            )
            return PresenceCheck(away=self.fail_safe_away, confirmed=False)

        data = response.data
        if not isinstance(data, dict):
            return PresenceCheck(away=self.fail_safe_away, confirmed=False)

        # A record without the field was never marked away
        if "is_away" not in data or data["is_away"] is None:
            return PresenceCheck(away=False)
        if not isinstance(data["is_away"], bool):
            logger.warning("Malformed is_away for %s: %r", session_id, data["is_away"])
            return PresenceCheck(away=self.fail_safe_away, confirmed=False)
        return PresenceCheck(away=data["is_away"])

    def is_away(self, session_id: str) -> bool:
        return self.check(session_id).away
