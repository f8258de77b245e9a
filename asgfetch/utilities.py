"""generic utility objects for asgfetch"""
from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
import re
from socket import gethostname
from typing import Any, Optional, Union

import rich.console
from rich.style import Style

from asgfetch.config import GENERAL_DEFAULTS

LOGGER = logging.getLogger("asgfetch")


def stamp() -> str:
    """create standardized text event stamp"""
    return f"{gethostname()} {dt.datetime.now(dt.UTC).isoformat()[:-13]}: "


def filestamp() -> str:
    """shorthand for standardized event stamp that is also a legal filename"""
    return re.sub(r"[-: ]", "_", stamp()[:-2])


ASGFETCH_CONSOLE = rich.console.Console()
"""convenient shared rich console"""


def console_and_log(
    message: Any,
    level: str = "info",
    style: Optional[Union[str, Style]] = None,
):
    """
    print a message to console and log it with asgfetch's logger.

    Args:
        message: object to print and log. must be compatible with both the
            logger and rich.console.Console.print. strings or numbers are
            recommended.
        level: logging level as a string ("info", "warning", etc.)
        style: optional rich Style or string description of one, e.g. "red"
    """
    ASGFETCH_CONSOLE.print(message, style=style)
    getattr(LOGGER, level)(message)


def init_logging(
    level: Union[int, str] = logging.INFO,
    log_path: Optional[Union[str, Path]] = None,
) -> Path:
    """
    write asgfetch's log messages to a timestamped file.

    Args:
        level: minimum level of messages to write
        log_path: directory for the log file. if not specified, use
            GENERAL_DEFAULTS['log_path'].

    Returns:
        path to the new log file.
    """
    log_path = GENERAL_DEFAULTS["log_path"] if log_path is None else log_path
    Path(log_path).mkdir(exist_ok=True, parents=True)
    logfile = Path(log_path, f"asgfetch_{filestamp()}.log")
    handler = logging.FileHandler(logfile)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    LOGGER.addHandler(handler)
    LOGGER.setLevel(level)
    return logfile
