"""
Config commands: init, show, path.
"""

from typing import Annotated

import typer
from rich import print as rprint

from ._shared import config_app


CONFIG_TEMPLATE = """\
# Teleportation configuration
# Location: ~/.teleportation/config.yaml
# Each value falls back to its environment variable, then to the default.

# Relay service (env: RELAY_API_URL, RELAY_API_KEY)
# relay:
#   enabled: true
#   url: https://relay.example.com
#   api_key: your-secret-key
#   timeout: 5              # seconds per request

# Remote approvals
# approvals:
#   poll_interval: 2        # seconds between status checks
#   fast_poll_window: 30    # inline polling before handing off
#   timeout: 600            # overall approval deadline
#   auto_away_after: 60     # mark the session away after this long
#   presence_fail_safe: present   # present | away, used when the relay can't answer
#   handoff: after_window   # off | after_window | proactive

# Heartbeat reporter
# heartbeat:
#   interval: 30
#   start_delay: 5
#   max_failures: 3         # consecutive failed beats before the reporter exits
#   timeout: 5
#   retries: 2
#   retry_backoff: 1        # linear: backoff * attempt

# Notification mute cache
# mute:
#   cache_ttl: 60
"""


@config_app.callback(invoke_without_command=True)
def config_default(ctx: typer.Context):
    """Show current configuration (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        _config_show()


@config_app.command("init")
def config_init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing config file")
    ] = False,
):
    """Create a config file with documented defaults."""
    from .. import config as config_module

    path = config_module.CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists() and not force:
        rprint(f"[yellow]Config file already exists:[/yellow] {path}")
        rprint("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    path.write_text(CONFIG_TEMPLATE)
    rprint(f"[green]✓[/green] Created config file: [bold]{path}[/bold]")


@config_app.command("show")
def config_show():
    """Show effective configuration (file, environment, defaults)."""
    _config_show()


def _config_show():
    from .. import config as config_module

    path = config_module.CONFIG_PATH
    settings = config_module.load_settings()

    source = str(path) if path.exists() else f"{path} (not found, using environment/defaults)"
    rprint(f"[bold]Configuration[/bold] ({source}):\n")

    if settings.relay is None:
        rprint("  relay: [yellow]not configured[/yellow]")
    else:
        rprint("  relay:")
        rprint(f"    url: {settings.relay.url}")
        rprint(f"    api_key: {settings.relay.masked_key}")
        rprint(f"    timeout: {settings.relay.timeout:g}s")

    a = settings.approvals
    rprint("  approvals:")
    rprint(f"    poll_interval: {a.poll_interval:g}s")
    rprint(f"    fast_poll_window: {a.fast_poll_window:g}s")
    rprint(f"    timeout: {a.timeout:g}s")
    rprint(f"    auto_away_after: {a.auto_away_after:g}s")
    rprint(f"    presence_fail_safe: {'away' if a.fail_safe_away else 'present'}")
    rprint(f"    handoff: {a.handoff}")

    h = settings.heartbeat
    rprint("  heartbeat:")
    rprint(f"    interval: {h.interval:g}s, start_delay: {h.start_delay:g}s")
    rprint(f"    max_failures: {h.max_failures}, timeout: {h.timeout:g}s")
    rprint(f"    retries: {h.retries}, retry_backoff: {h.retry_backoff:g}s")

    rprint("  mute:")
    rprint(f"    cache_ttl: {settings.mute.cache_ttl:g}s")


@config_app.command("path")
def config_path():
    """Show the config file path."""
    from .. import config as config_module

    print(config_module.CONFIG_PATH)
