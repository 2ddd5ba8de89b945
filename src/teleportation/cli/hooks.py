"""
Hook commands: hook-handler, hooks install/uninstall/status.
"""

import sys
from typing import Annotated

import typer
from rich import print as rprint

from ._shared import app, hooks_app


@app.command("hook-handler", hidden=True)
def hook_handler_cmd():
    """Handle Claude Code hook events (internal).

    Called by Claude Code hooks, not by users directly. Reads event JSON
    from stdin and prints a decision for permission requests.
    """
    from ..hook_handler import handle_hook_event
    from ..logging_config import setup_hook_logging

    setup_hook_logging()
    sys.exit(handle_hook_event())


def _editor(project: bool):
    from ..claude_config import ClaudeConfigEditor

    if project:
        return ClaudeConfigEditor.project_level(), "project"
    return ClaudeConfigEditor.user_level(), "user"


ProjectOption = Annotated[
    bool,
    typer.Option("--project", "-p", help="Use project-level .claude/settings.json instead of user-level"),
]


@hooks_app.command("install")
def hooks_install(project: ProjectOption = False):
    """Install all teleportation hooks into Claude Code settings.

    Installs hooks for: SessionStart, PermissionRequest, PostToolUse,
    Notification, SessionEnd. All use the unified 'teleportation hook-handler'.
    The PermissionRequest timeout is derived from the approval settings.
    """
    from ..config import get_approval_config
    from ..hook_handler import teleportation_hooks

    editor, level = _editor(project)
    try:
        editor.load()
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    hooks = teleportation_hooks(get_approval_config())
    changed = 0
    for event, command, timeout in hooks:
        if editor.add_hook(event, command, timeout=timeout):
            changed += 1

    if changed > 0:
        events = ", ".join(event for event, _, _ in hooks)
        rprint(f"[green]✓[/green] Installed or updated {changed} hook(s) in {level} settings")
        rprint(f"  [dim]{editor.path}[/dim]")
        rprint(f"\n  Events: {events}")
        rprint("  All hooks run 'teleportation hook-handler' (reads event from stdin).")
    else:
        rprint(f"[green]✓[/green] All {len(hooks)} hooks already installed in {level} settings")


@hooks_app.command("uninstall")
def hooks_uninstall(project: ProjectOption = False):
    """Remove all teleportation hooks from Claude Code settings."""
    from ..hook_handler import teleportation_hooks

    editor, level = _editor(project)
    try:
        editor.load()
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    removed = 0
    for event, command, _ in teleportation_hooks():
        if editor.remove_hook(event, command):
            removed += 1

    if removed > 0:
        rprint(f"[green]✓[/green] Removed {removed} hook(s) from {level} settings")
    else:
        rprint(f"[dim]No teleportation hooks found in {level} settings[/dim]")


@hooks_app.command("status")
def hooks_status():
    """Show which teleportation hooks are installed."""
    from ..claude_config import ClaudeConfigEditor
    from ..hook_handler import teleportation_hooks

    for level_name, editor in [
        ("User-level", ClaudeConfigEditor.user_level()),
        ("Project-level", ClaudeConfigEditor.project_level()),
    ]:
        rprint(f"\n{level_name} ({editor.path}):")
        if not editor.path.exists():
            rprint("  [dim](no settings file)[/dim]")
            continue
        try:
            editor.load()
        except ValueError:
            rprint("  [red](invalid JSON)[/red]")
            continue

        for event, command, _ in teleportation_hooks():
            if editor.has_hook(event, command):
                timeout = editor.hook_timeout(event, command)
                suffix = f" [dim](timeout {timeout}s)[/dim]" if timeout else ""
                rprint(f"  {event:<20} {command}{suffix}  [green]✓[/green]")
            else:
                rprint(f"  {event:<20} [dim]not installed[/dim]")
