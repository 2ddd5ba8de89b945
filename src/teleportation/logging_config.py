"""
Centralized logging configuration for Teleportation.

Usage:
    from teleportation.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Approval created")

Hook invocations log to a file only: the host reads hook stdout as the
decision, so nothing else may be written there.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .settings import get_log_dir

ROOT_LOGGER = "teleportation"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the teleportation namespace.

    Args:
        name: Component name; a leading "teleportation." is not repeated

    Returns:
        Logger named teleportation.<name>
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    rich_console: bool = True,
) -> None:
    """Configure the teleportation logger.

    Args:
        level: Logging level
        log_file: Optional file to also write logs to
        console: Whether to log to stderr
        rich_console: Use rich formatting for console output
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    if console:
        if rich_console:
            handler = RichHandler(
                console=Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, DEFAULT_DATE_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, DEFAULT_DATE_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)


def setup_hook_logging(log_file: Optional[Path] = None) -> logging.Logger:
    """Logging for a hook invocation: file only, stdout stays clean.

    TELEPORTATION_DEBUG=1 lowers the level to DEBUG. If the log file
    cannot be opened the hook runs without logging.
    """
    level = logging.DEBUG if os.environ.get("TELEPORTATION_DEBUG") else logging.INFO
    try:
        setup_logging(
            level=level,
            log_file=log_file or get_log_dir() / "hooks.log",
            console=False,
        )
    except OSError:
        root = logging.getLogger(ROOT_LOGGER)
        root.handlers.clear()
        root.addHandler(logging.NullHandler())
    return get_logger("hooks")


class StructuredLogger:
    """Logger wrapper that appends key=value context to every message.

    Usage:
        log = get_structured_logger("approvals").with_context(session_id=sid)
        log.info("Approval created", approval_id=aid)
    """

    def __init__(self, logger: logging.Logger, context: Optional[dict] = None):
        self._logger = logger
        self._context = context or {}

    def with_context(self, **kwargs) -> "StructuredLogger":
        return StructuredLogger(self._logger, {**self._context, **kwargs})

    def _format_message(self, msg: str, kwargs: dict) -> str:
        context = {**self._context, **kwargs}
        if not context:
            return msg
        context_str = " ".join(f"{k}={v}" for k, v in context.items())
        return f"{msg} [{context_str}]"

    def debug(self, msg: str, **kwargs) -> None:
        self._logger.debug(self._format_message(msg, kwargs))

    def info(self, msg: str, **kwargs) -> None:
        self._logger.info(self._format_message(msg, kwargs))

    def warning(self, msg: str, **kwargs) -> None:
        self._logger.warning(self._format_message(msg, kwargs))

    def error(self, msg: str, **kwargs) -> None:
        self._logger.error(self._format_message(msg, kwargs))

    def exception(self, msg: str, **kwargs) -> None:
        self._logger.exception(self._format_message(msg, kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))
