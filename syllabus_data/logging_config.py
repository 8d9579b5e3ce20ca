"""
Logging setup for the syllabus engine.

Library modules only create loggers; applications (CLI, MCP server, REST
service) call :func:`configure_logging` once at startup.
"""
from __future__ import annotations

import logging
import typing as t

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAMES = ("syllabus_data", "syllabus_sync", "local_host", "syllabus_server", "services")


def configure_logging(level: t.Optional[str] = None, console: t.Optional[Console] = None) -> None:
    """Route the package loggers through a rich handler on stderr.

    Args:
        level: Level name such as ``"DEBUG"``. Defaults to ``SYLLABUS_LOG_LEVEL``.
        console: Optional console to render to (the CLI passes its own).
    """
    if level is None:
        from .config import SyllabusConfig
        level = SyllabusConfig.from_env().log_level

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level.upper())
        # Replace handlers installed by a previous call
        for existing in list(logger.handlers):
            if isinstance(existing, RichHandler):
                logger.removeHandler(existing)
        logger.addHandler(handler)
        logger.propagate = False
