"""
Session commands: away, back, status.
"""

import typer
from rich import print as rprint

from ._shared import app, SessionOption, _require_relay, _resolve_session


@app.command()
def away(session: SessionOption = None):
    """Mark the session away: permission requests go to your device."""
    from ..daemon_state import STARTED_CLI_AWAY, STATUS_RUNNING
    from ..exceptions import NetworkError, format_error

    session_id = _resolve_session(session)
    relay = _require_relay()
    try:
        relay.update_daemon_state(
            session_id, is_away=True, status=STATUS_RUNNING, started_reason=STARTED_CLI_AWAY,
        ).raise_for_status()
    except NetworkError as e:
        rprint(f"[red]Error:[/red] {format_error(e)}")
        raise typer.Exit(1)
    rprint(f"[green]✓[/green] Session [bold]{session_id}[/bold] marked away")
    rprint("[dim]Approvals will be routed to the relay[/dim]")


@app.command()
def back(session: SessionOption = None):
    """Mark the session present: the local dialog decides again."""
    from ..daemon_state import STATUS_STOPPED, STOPPED_CLI_BACK
    from ..exceptions import NetworkError, format_error

    session_id = _resolve_session(session)
    relay = _require_relay()
    try:
        relay.update_daemon_state(
            session_id, is_away=False, status=STATUS_STOPPED, stopped_reason=STOPPED_CLI_BACK,
        ).raise_for_status()
    except NetworkError as e:
        rprint(f"[red]Error:[/red] {format_error(e)}")
        raise typer.Exit(1)
    rprint(f"[green]✓[/green] Session [bold]{session_id}[/bold] marked present")


@app.command()
def status(session: SessionOption = None):
    """Show relay configuration, daemon state and the local heartbeat."""
    from ..config import get_relay_config
    from ..daemon_state import SessionDaemonState
    from ..heartbeat import reporter_status
    from ..relay_client import RelayClient

    relay_settings = get_relay_config()
    if relay_settings is None:
        rprint("[yellow]Relay:[/yellow] not configured (hooks abstain)")
    else:
        rprint(f"[green]Relay:[/green] {relay_settings.url}  key {relay_settings.masked_key}")

    if not session:
        rprint("[dim]No session given (use --session or set TELEPORTATION_SESSION_ID)[/dim]")
        return
    session_id = _resolve_session(session)
    rprint(f"\n[bold]Session[/bold] {session_id}")

    if relay_settings is not None:
        response = RelayClient.from_settings(relay_settings).get_daemon_state(session_id)
        if response.ok and isinstance(response.data, dict):
            state = SessionDaemonState.from_dict(response.data)
            presence = "[yellow]away[/yellow]" if state.is_away else "[green]present[/green]"
            rprint(f"  Presence: {presence}")
            rprint(f"  Daemon:   {state.status}")
            if state.started_reason:
                rprint(f"  Started:  {state.started_reason}")
            if state.stopped_reason:
                rprint(f"  Stopped:  {state.stopped_reason}")
            if state.last_approval_location:
                rprint(f"  Last approval: {state.last_approval_location}")
        else:
            rprint(f"  [red]Daemon state unavailable:[/red] {response.error}")

    hb = reporter_status(session_id)
    if hb["alive"]:
        rprint(f"  Heartbeat: [green]● running[/green] (PID {hb['pid']})")
    elif hb["marker"]:
        rprint("  Heartbeat: [red]orphaned marker[/red] (run 'teleportation heartbeat clear')")
    else:
        rprint("  Heartbeat: [dim]○ stopped[/dim]")
