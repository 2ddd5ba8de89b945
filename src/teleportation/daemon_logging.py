"""
Rich-based logging for the detached background processes.

The heartbeat reporter and the handoff poller run with their stdio
detached, so each line is mirrored into a per-process log file. That file
is the only place a remote-path failure is visible.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme


DAEMON_THEME = Theme({
    "info": "cyan",
    "warn": "yellow",
    "error": "bold red",
    "success": "bold green",
    "dim": "dim white",
    "highlight": "bold white",
})


class BaseDaemonLogger:
    """Console + file logger shared by the background processes."""

    def __init__(self, log_file: Path, theme: Optional[Theme] = None):
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self.console = Console(theme=theme or DAEMON_THEME, stderr=True)

    def _write_to_file(self, message: str, level: str) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            with open(self.log_file, "a") as f:
                f.write(f"[{timestamp}] [{level}] {message}\n")
        except OSError:
            # Logging must never take the process down
            pass

    def _log(self, style: str, label: str, message: str, level: str) -> None:
        self._write_to_file(message, level)
        now = datetime.now().strftime("%H:%M:%S")
        self.console.print(f"[dim]{now}[/dim] [{style}]{label}[/{style}] {escape(message)}")

    def info(self, message: str) -> None:
        self._log("info", "INFO ", message, "INFO")

    def warn(self, message: str) -> None:
        self._log("warn", "WARN ", message, "WARN")

    def error(self, message: str) -> None:
        self._log("error", "ERROR", message, "ERROR")

    def success(self, message: str) -> None:
        self._log("success", "OK   ", message, "INFO")

    def debug(self, message: str) -> None:
        """File only."""
        self._write_to_file(message, "DEBUG")

    def section(self, title: str) -> None:
        self._write_to_file(f"=== {title} ===", "INFO")
        self.console.print()
        self.console.rule(f"[bold]{escape(title)}[/bold]", style="dim")
