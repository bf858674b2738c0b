"""Logging setup for the nuker CLI."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = (
    "botocore",
    "boto3",
    "urllib3",
    "s3transfer",
)


def verbosity_to_level(verbosity: int) -> int:
    """Map the number of ``-v`` flags to a log level for the nuker loggers."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(verbosity: int = 0, console: Optional[Console] = None) -> None:
    """Configure root logging with a Rich handler on stderr.

    Args:
        verbosity: Count of ``-v`` flags (0 = warnings, 1 = info, 2 = debug,
            3 = debug including botocore)
        console: Console to log to (default: a new stderr console)
    """
    level = verbosity_to_level(verbosity)

    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=verbosity >= 2,
        show_path=verbosity >= 3,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("nuker").setLevel(level)

    # Third party loggers stay quiet unless -vvv
    noisy_level = logging.DEBUG if verbosity >= 3 else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
