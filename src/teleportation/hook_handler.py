"""Unified hook handler for Claude Code hook events.

A single command (`teleportation hook-handler`) handles all hook events.
It reads the event JSON from stdin and dispatches on `hook_event_name`.

Hook registrations (all use the same command):
    SessionStart      -> register the session, start the heartbeat reporter
    PermissionRequest -> remote approval (prints a decision or nothing)
    PostToolUse       -> retire the pending approval for the session
    Notification      -> forward unless the session is muted
    SessionEnd        -> stop the heartbeat, retire approvals, drop mute cache

Whatever goes wrong, the handler exits 0 and prints nothing, so the host
falls back to its own permission dialog.
"""

import json
import math
import os
import socket
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

from .approval_state import Decision
from .approvals import ApprovalRequestManager, is_valid_session_id
from .config import load_settings
from .handoff import DaemonHandoffController
from .heartbeat import start_reporter, stop_reporter
from .invalidation import InvalidationHook
from .logging_config import get_structured_logger
from .mute import MuteGate
from .notifier import NotificationGate
from .protocols import RelayInterface
from .relay_client import RelayClient
from .settings import HANDOFF_OFF, ApprovalSettings, Settings, get_mute_cache_path
from .tasks import BackgroundTasks

HOOK_COMMAND = "teleportation hook-handler"

# Extra seconds the host should allow the hook beyond its own polling budget
HOOK_TIMEOUT_MARGIN = 15


def permission_hook_timeout(settings: ApprovalSettings) -> int:
    """Host-side timeout for the PermissionRequest hook, in seconds."""
    if settings.handoff == HANDOFF_OFF:
        budget = settings.timeout
    else:
        budget = min(settings.fast_poll_window, settings.timeout)
    return int(math.ceil(budget)) + HOOK_TIMEOUT_MARGIN


def teleportation_hooks(settings: Optional[ApprovalSettings] = None) -> List[Tuple[str, str, Optional[int]]]:
    """All hooks that teleportation installs: (event, command, timeout)."""
    settings = settings or ApprovalSettings()
    return [
        ("SessionStart", HOOK_COMMAND, None),
        ("PermissionRequest", HOOK_COMMAND, permission_hook_timeout(settings)),
        ("PostToolUse", HOOK_COMMAND, None),
        ("Notification", HOOK_COMMAND, None),
        ("SessionEnd", HOOK_COMMAND, None),
    ]


@dataclass
class HookContext:
    """Everything one event handler needs."""

    settings: Settings
    relay: Optional[RelayInterface]
    session_id: Optional[str]
    event: Dict[str, Any]
    tasks: BackgroundTasks = field(default_factory=BackgroundTasks)

    @property
    def log(self):
        return get_structured_logger("hooks").with_context(
            event=self.event.get("hook_event_name"), session=self.session_id,
        )


def _read_event(stdin: TextIO) -> Optional[dict]:
    try:
        raw = stdin.read()
    except (OSError, ValueError):
        return None
    if not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _mute_gate(ctx: HookContext) -> MuteGate:
    return MuteGate(ctx.relay, ttl=ctx.settings.mute.cache_ttl, cache_file=get_mute_cache_path())


def on_session_start(ctx: HookContext) -> None:
    meta = {
        "cwd": ctx.event.get("cwd") or os.getcwd(),
        "pid": os.getppid(),
        "hostname": socket.gethostname(),
        "source": ctx.event.get("source"),
    }
    response = ctx.relay.register_session(ctx.session_id, meta)
    if not response.ok:
        ctx.log.warning("Session registration failed", error=response.error)

    pid = start_reporter(ctx.session_id)
    if pid is None:
        ctx.log.info("Heartbeat reporter already registered")
    else:
        ctx.log.info("Started heartbeat reporter", pid=pid)


def on_permission_request(ctx: HookContext) -> Optional[Decision]:
    manager = ApprovalRequestManager(
        ctx.relay,
        ctx.settings.approvals,
        handoff=DaemonHandoffController(ctx.relay),
        tasks=ctx.tasks,
    )
    decision = manager.handle_permission_request(
        ctx.session_id, ctx.event.get("tool_name"), ctx.event.get("tool_input"),
    )
    ctx.log.info("Permission request handled", decision=decision.decision if decision else "abstain")
    return decision


def on_post_tool_use(ctx: HookContext) -> None:
    InvalidationHook(ctx.relay, DaemonHandoffController(ctx.relay)).on_tool_executed(ctx.session_id)


def on_notification(ctx: HookContext) -> None:
    message = ctx.event.get("message") or ""
    NotificationGate(_mute_gate(ctx)).notify(ctx.session_id, message, ctx.event)


def on_session_end(ctx: HookContext) -> None:
    if stop_reporter(ctx.session_id):
        ctx.log.info("Stopped heartbeat reporter")
    InvalidationHook(ctx.relay).on_session_end(ctx.session_id)
    _mute_gate(ctx).clear_mute_cache(ctx.session_id)


EVENT_HANDLERS: Dict[str, Callable[[HookContext], Optional[Decision]]] = {
    "SessionStart": on_session_start,
    "PermissionRequest": on_permission_request,
    "PreToolUse": on_permission_request,
    "PostToolUse": on_post_tool_use,
    "Notification": on_notification,
    "SessionEnd": on_session_end,
}


def handle_hook_event(
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    settings: Optional[Settings] = None,
    relay: Optional[RelayInterface] = None,
) -> int:
    """Main entry point: read stdin JSON, dispatch, print a decision if any.

    Silent exit (code 0) if the relay is unconfigured, stdin is empty or
    invalid, the session id is malformed, or a handler fails.
    """
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout

    data = _read_event(stdin)
    if data is None:
        return 0

    event = data.get("hook_event_name")
    handler = EVENT_HANDLERS.get(event) if isinstance(event, str) else None
    if handler is None:
        return 0

    settings = settings or load_settings()
    if settings.relay is None:
        return 0
    if relay is None:
        relay = RelayClient.from_settings(settings.relay)

    session_id = data.get("session_id") or os.environ.get("TELEPORTATION_SESSION_ID")
    if not is_valid_session_id(session_id):
        get_structured_logger("hooks").warning("Ignoring event with invalid session id", session=repr(session_id))
        return 0

    ctx = HookContext(settings=settings, relay=relay, session_id=session_id, event=data)
    try:
        decision = handler(ctx)
    except Exception:
        ctx.log.exception("Hook handler failed")
        return 0
    finally:
        ctx.tasks.drain(timeout=1.0)

    if decision is not None:
        stdout.write(json.dumps(decision.to_dict()) + "\n")
        stdout.flush()
    return 0
