"""
Heartbeat commands: start, stop, status, clear, run.
"""

import typer
from rich import print as rprint

from ._shared import heartbeat_app, SessionOption, _require_relay, _resolve_session


@heartbeat_app.command("start")
def heartbeat_start(session: SessionOption = None):
    """Start a detached heartbeat reporter for the session."""
    from ..heartbeat import reporter_status, start_reporter

    session_id = _resolve_session(session)
    _require_relay()

    pid = start_reporter(session_id)
    if pid is None:
        hb = reporter_status(session_id)
        if hb["alive"]:
            rprint(f"[yellow]Heartbeat already running[/yellow] (PID {hb['pid']})")
        else:
            rprint("[red]Orphaned heartbeat marker[/red] blocks a new reporter")
            rprint("[dim]Run 'teleportation heartbeat clear' first[/dim]")
        raise typer.Exit(1)
    rprint(f"[green]✓[/green] Heartbeat started (PID {pid}) for session '{session_id}'")


@heartbeat_app.command("stop")
def heartbeat_stop(session: SessionOption = None):
    """Stop the session's heartbeat reporter."""
    from ..heartbeat import stop_reporter

    session_id = _resolve_session(session)
    if stop_reporter(session_id):
        rprint(f"[green]✓[/green] Heartbeat stopped for session '{session_id}'")
    else:
        rprint(f"[dim]No heartbeat running for session '{session_id}'[/dim]")


@heartbeat_app.command("status")
def heartbeat_status(session: SessionOption = None):
    """Show the local heartbeat marker for the session."""
    from ..heartbeat import reporter_status
    from ..settings import get_heartbeat_log_path

    session_id = _resolve_session(session)
    hb = reporter_status(session_id)
    if hb["alive"]:
        rprint(f"[green]Heartbeat ({session_id}):[/green] ● running (PID {hb['pid']})")
        if hb["started_at"]:
            rprint(f"  Started: {hb['started_at']}")
    elif hb["marker"]:
        rprint(f"[red]Heartbeat ({session_id}):[/red] orphaned marker (PID {hb['pid']} is gone)")
    else:
        rprint(f"[dim]Heartbeat ({session_id}):[/dim] ○ stopped")
    rprint(f"  [dim]Log: {get_heartbeat_log_path(session_id)}[/dim]")


@heartbeat_app.command("clear")
def heartbeat_clear(session: SessionOption = None):
    """Remove an orphaned marker left by a reporter that died."""
    from ..liveness import MarkerFileRegistry

    session_id = _resolve_session(session)
    registry = MarkerFileRegistry()
    owner = registry.owner_pid(session_id)
    if owner is not None:
        rprint(f"[yellow]Reporter is alive[/yellow] (PID {owner}); use 'teleportation heartbeat stop'")
        raise typer.Exit(1)
    if registry.clear_orphan(session_id):
        rprint(f"[green]✓[/green] Cleared orphaned marker for session '{session_id}'")
    else:
        rprint(f"[dim]No marker for session '{session_id}'[/dim]")


@heartbeat_app.command("run")
def heartbeat_run(session: SessionOption = None):
    """Run the reporter in the foreground (Ctrl-C to stop)."""
    from ..config import get_heartbeat_config
    from ..daemon_logging import BaseDaemonLogger
    from ..heartbeat import HeartbeatReporter
    from ..liveness import MarkerFileRegistry
    from ..settings import get_heartbeat_log_path

    session_id = _resolve_session(session)
    relay = _require_relay()

    reporter = HeartbeatReporter(
        session_id,
        relay,
        get_heartbeat_config(),
        MarkerFileRegistry(),
        BaseDaemonLogger(get_heartbeat_log_path(session_id)),
    )
    raise typer.Exit(reporter.run())
