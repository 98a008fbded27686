"""Logging setup for the CLI.

Library modules only create ``logging.getLogger(__name__)`` loggers; the
CLI calls configure_logging() once to attach handlers to the root logger.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_HANDLER_MARKER = "_alpine_imagegen_handler"


def configure_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    console: Console | None = None,
) -> None:
    """Attach console (and optional file) handlers to the root logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        level: Logging level name.
        log_file: Optional path for a plain-text log file.
        console: Rich console for log output (stderr if not provided).
    """
    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
    ]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(FILE_LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
        )
        handlers.append(file_handler)

    for handler in handlers:
        setattr(handler, _HANDLER_MARKER, True)
        root.addHandler(handler)

    logging.getLogger(__name__).debug(
        "Logging initialized (level=%s, file=%s)", level, log_file
    )


__all__ = ["FILE_LOG_FORMAT", "configure_logging"]
