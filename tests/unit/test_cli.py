"""
Unit tests for the Typer CLI.
"""

import json
import os
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from teleportation import config as config_module
from teleportation.cli import app
from teleportation.mocks import MockRelay, failure
from teleportation.pid_utils import write_marker
from teleportation.settings import get_marker_path

runner = CliRunner()


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setenv("RELAY_API_URL", "https://relay.test")
    monkeypatch.setenv("RELAY_API_KEY", "secret-relay-key")


@pytest.fixture
def mock_relay(configured):
    relay = MockRelay()
    with patch("teleportation.relay_client.RelayClient.from_settings", return_value=relay):
        yield relay


@pytest.fixture
def home(tmp_path, monkeypatch):
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.chdir(tmp_path)
    return home_dir


class TestAwayBack:

    def test_away(self, mock_relay, session_id):
        result = runner.invoke(app, ["away", "--session", session_id])
        assert result.exit_code == 0
        assert mock_relay.daemon_states[session_id] == {
            "is_away": True, "status": "running", "started_reason": "cli_away",
        }

    def test_back(self, mock_relay, session_id):
        result = runner.invoke(app, ["back", "-s", session_id])
        assert result.exit_code == 0
        state = mock_relay.daemon_states[session_id]
        assert state["is_away"] is False
        assert state["stopped_reason"] == "cli_back"

    def test_session_from_env(self, mock_relay, session_id, monkeypatch):
        monkeypatch.setenv("TELEPORTATION_SESSION_ID", session_id)
        assert runner.invoke(app, ["away"]).exit_code == 0
        assert mock_relay.daemon_states[session_id]["is_away"] is True

    def test_relay_error(self, mock_relay, session_id):
        mock_relay.script("update_daemon_state", failure(401, "unauthorized"))
        result = runner.invoke(app, ["away", "-s", session_id])
        assert result.exit_code == 1
        assert "unauthorized" in result.output

    def test_unconfigured(self, session_id):
        result = runner.invoke(app, ["away", "-s", session_id])
        assert result.exit_code == 1
        assert "CONFIG_ERROR" in result.output

    def test_missing_session(self, configured):
        result = runner.invoke(app, ["away"])
        assert result.exit_code == 1
        assert "no session id" in result.output

    def test_invalid_session(self, configured):
        assert runner.invoke(app, ["away", "-s", "../../x"]).exit_code == 1


class TestStatus:

    def test_unconfigured(self):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "not configured" in result.output

    def test_with_session(self, mock_relay, session_id):
        mock_relay.daemon_states[session_id] = {"is_away": True, "status": "running", "started_reason": "timeout"}
        result = runner.invoke(app, ["status", "-s", session_id])

        assert result.exit_code == 0
        assert "secr...-key" in result.output
        assert "away" in result.output
        assert "running" in result.output
        assert "stopped" in result.output


class TestHeartbeatCommands:

    def test_status_stopped(self, session_id):
        result = runner.invoke(app, ["heartbeat", "status", "-s", session_id])
        assert result.exit_code == 0
        assert "stopped" in result.output

    def test_status_orphaned(self, session_id):
        write_marker(get_marker_path(session_id), session_id, pid=999999999)
        result = runner.invoke(app, ["heartbeat", "status", "-s", session_id])
        assert "orphaned" in result.output

    def test_clear_orphan(self, session_id):
        write_marker(get_marker_path(session_id), session_id, pid=999999999)
        result = runner.invoke(app, ["heartbeat", "clear", "-s", session_id])
        assert result.exit_code == 0
        assert not get_marker_path(session_id).exists()

    def test_clear_refuses_live_owner(self, session_id):
        write_marker(get_marker_path(session_id), session_id, pid=os.getpid())
        result = runner.invoke(app, ["heartbeat", "clear", "-s", session_id])
        assert result.exit_code == 1
        assert get_marker_path(session_id).exists()

    def test_start(self, configured, session_id):
        with patch("teleportation.heartbeat.subprocess.Popen") as mock_popen:
            mock_popen.return_value.pid = 31337
            result = runner.invoke(app, ["heartbeat", "start", "-s", session_id])
        assert result.exit_code == 0
        assert "31337" in result.output

    def test_start_blocked_by_orphan(self, configured, session_id):
        write_marker(get_marker_path(session_id), session_id, pid=999999999)
        result = runner.invoke(app, ["heartbeat", "start", "-s", session_id])
        assert result.exit_code == 1
        assert "heartbeat clear" in result.output

    def test_start_unconfigured(self, session_id):
        assert runner.invoke(app, ["heartbeat", "start", "-s", session_id]).exit_code == 1

    def test_stop_nothing_running(self, session_id):
        result = runner.invoke(app, ["heartbeat", "stop", "-s", session_id])
        assert result.exit_code == 0
        assert "No heartbeat" in result.output


class TestHooksCommands:

    def test_install_user_level(self, home):
        result = runner.invoke(app, ["hooks", "install"])
        assert result.exit_code == 0

        data = json.loads((home / ".claude" / "settings.json").read_text())
        assert set(data["hooks"]) == {
            "SessionStart", "PermissionRequest", "PostToolUse", "Notification", "SessionEnd",
        }
        assert data["hooks"]["PermissionRequest"][0]["hooks"][0]["timeout"] == 45

    def test_install_twice(self, home):
        runner.invoke(app, ["hooks", "install"])
        result = runner.invoke(app, ["hooks", "install"])
        assert "already installed" in result.output

    def test_install_project_level(self, home, tmp_path):
        result = runner.invoke(app, ["hooks", "install", "--project"])
        assert result.exit_code == 0
        assert (tmp_path / ".claude" / "settings.json").exists()

    def test_install_invalid_settings(self, home):
        (home / ".claude").mkdir()
        (home / ".claude" / "settings.json").write_text("{bad")
        assert runner.invoke(app, ["hooks", "install"]).exit_code == 1

    def test_uninstall(self, home):
        runner.invoke(app, ["hooks", "install"])
        result = runner.invoke(app, ["hooks", "uninstall"])
        assert result.exit_code == 0
        assert "Removed 5" in result.output

    def test_status(self, home):
        runner.invoke(app, ["hooks", "install"])
        result = runner.invoke(app, ["hooks", "status"])
        assert result.exit_code == 0
        assert "PermissionRequest" in result.output
        assert "no settings file" in result.output


class TestConfigCommands:

    def test_path(self):
        result = runner.invoke(app, ["config", "path"])
        assert result.output.strip() == str(config_module.CONFIG_PATH)

    def test_init(self):
        result = runner.invoke(app, ["config", "init"])
        assert result.exit_code == 0
        assert "relay:" in config_module.CONFIG_PATH.read_text()

    def test_init_refuses_overwrite(self):
        runner.invoke(app, ["config", "init"])
        assert runner.invoke(app, ["config", "init"]).exit_code == 1
        assert runner.invoke(app, ["config", "init", "--force"]).exit_code == 0

    def test_show_masks_key(self, configured):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "secret-relay-key" not in result.output
        assert "secr...-key" in result.output
        assert "after_window" in result.output

    def test_default_is_show(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "not configured" in result.output


class TestHookHandlerCommand:

    def test_unconfigured_is_silent(self, session_id):
        payload = json.dumps({"hook_event_name": "PermissionRequest", "session_id": session_id})
        result = runner.invoke(app, ["hook-handler"], input=payload)
        assert result.exit_code == 0
        assert result.output == ""

    def test_unwritable_state_dir(self, mock_relay, session_id, tmp_path, monkeypatch):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setenv("TELEPORTATION_STATE_DIR", str(blocker / "state"))

        payload = json.dumps({"hook_event_name": "PermissionRequest", "session_id": session_id})
        result = runner.invoke(app, ["hook-handler"], input=payload)

        assert result.exit_code == 0
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert result.output == ""
