"""
Notification forwarding behind the mute gate.

Delivery to the operator's device belongs to the relay side; the default
forwarder only records the notification in the hook log.
"""

import logging
from typing import Any, Dict, Optional

from .mute import MuteGate
from .protocols import NotificationForwarder

logger = logging.getLogger(__name__)


class LogForwarder:
    """Forwarder that writes notifications to the diagnostic log."""

    def forward(self, session_id: str, message: str, payload: Dict[str, Any]) -> None:
        logger.info("Notification for %s: %s", session_id, message)


class NotificationGate:
    """Drops notifications for muted sessions, forwards the rest."""

    def __init__(self, mute: MuteGate, forwarder: Optional[NotificationForwarder] = None):
        self.mute = mute
        self.forwarder = forwarder or LogForwarder()

    def notify(self, session_id: str, message: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Forward unless muted.

        Returns:
            True if the notification was forwarded
        """
        if self.mute.is_muted(session_id):
            logger.debug("Session %s is muted; dropping notification", session_id)
            return False
        self.forwarder.forward(session_id, message, payload or {})
        return True
