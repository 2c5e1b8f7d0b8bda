"""Logging configuration for the inventory scanner entry points."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    level: str = "INFO",
    path: Optional[str] = None,
    fmt: str = DEFAULT_FORMAT,
) -> None:
    """
    Configure root logging.

    Logs go to stderr, and are also appended to path when one is given.
    Unknown level names fall back to INFO.
    """
    log_level = getattr(logging, str(level).upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if path:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a"))

    logging.basicConfig(
        level=log_level,
        format=fmt,
        handlers=handlers,
        force=True,
    )
