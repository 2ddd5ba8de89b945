"""
Shared CLI state: Typer apps, console, options, and utilities.
"""

from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Console

# Main app
app = typer.Typer(
    name="teleportation",
    help="Remote approval and liveness for unattended Claude Code sessions",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Hooks subcommand group
hooks_app = typer.Typer(
    name="hooks",
    help="Manage Claude Code hook integration.",
    no_args_is_help=True,
)
app.add_typer(hooks_app, name="hooks")

# Heartbeat subcommand group
heartbeat_app = typer.Typer(
    name="heartbeat",
    help="Manage the per-session heartbeat reporter.",
    no_args_is_help=True,
)
app.add_typer(heartbeat_app, name="heartbeat")

# Config subcommand group
config_app = typer.Typer(
    name="config",
    help="Manage configuration",
    no_args_is_help=False,
    invoke_without_command=True,
)
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

SessionOption = Annotated[
    Optional[str],
    typer.Option(
        "--session",
        "-s",
        envvar="TELEPORTATION_SESSION_ID",
        help="Session id (defaults to $TELEPORTATION_SESSION_ID)",
    ),
]


def _resolve_session(session: Optional[str]) -> str:
    """Validate the session id or exit with an error."""
    from ..approvals import is_valid_session_id
    from ..exceptions import ValidationError, format_error

    if not session:
        rprint("[red]Error:[/red] no session id (use --session or set TELEPORTATION_SESSION_ID)")
        raise typer.Exit(1)
    if not is_valid_session_id(session):
        error = ValidationError(f"invalid session id: {session!r}")
        rprint(f"[red]Error:[/red] {format_error(error)}")
        raise typer.Exit(1)
    return session


def _require_relay():
    """Relay client from config, or exit when the relay is not configured."""
    from ..config import get_relay_config
    from ..exceptions import ConfigurationError, format_error
    from ..relay_client import RelayClient

    relay_settings = get_relay_config()
    if relay_settings is None:
        rprint(f"[red]Error:[/red] {format_error(ConfigurationError('Relay is not configured'))}")
        raise typer.Exit(1)
    return RelayClient.from_settings(relay_settings)
