"""
Unit tests for notification forwarding behind the mute gate.
"""

import logging

from teleportation.mocks import MockForwarder, ok
from teleportation.mute import MuteGate
from teleportation.notifier import LogForwarder, NotificationGate
from teleportation.protocols import NotificationForwarder


class TestNotificationGate:

    def test_forwards_when_not_muted(self, relay, clock, session_id):
        relay.script("get_session", ok({"muted": False}))
        forwarder = MockForwarder()
        gate = NotificationGate(MuteGate(relay, clock=clock), forwarder)

        assert gate.notify(session_id, "Build finished", {"level": "info"}) is True
        assert forwarder.forwarded == [(session_id, "Build finished", {"level": "info"})]

    def test_drops_when_muted(self, relay, clock, session_id):
        relay.script("get_session", ok({"muted": True}))
        forwarder = MockForwarder()
        gate = NotificationGate(MuteGate(relay, clock=clock), forwarder)

        assert gate.notify(session_id, "ping") is False
        assert forwarder.forwarded == []

    def test_default_payload(self, relay, clock, session_id):
        forwarder = MockForwarder()
        NotificationGate(MuteGate(relay, clock=clock), forwarder).notify(session_id, "ping")
        assert forwarder.forwarded[0][2] == {}

    def test_default_forwarder_logs(self, relay, clock, session_id, caplog):
        gate = NotificationGate(MuteGate(relay, clock=clock))
        with caplog.at_level(logging.INFO, logger="teleportation.notifier"):
            gate.notify(session_id, "Waiting for input")
        assert "Waiting for input" in caplog.text

    def test_forwarders_implement_protocol(self):
        assert isinstance(LogForwarder(), NotificationForwarder)
        assert isinstance(MockForwarder(), NotificationForwarder)
