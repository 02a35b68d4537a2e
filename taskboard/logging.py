"""
Logging setup for taskboard.

Call ``configure_logging()`` once at startup, before the first request or
board session, to install the shared handler configuration.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional


_CONFIGURED = False

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(
    level: Optional[str] = None,
    fmt: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
) -> None:
    """Configure the root logger exactly once.

    ``level`` falls back to the ``LOG_LEVEL`` environment variable, then INFO.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    env_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    resolved = _LEVEL_MAP.get(level.upper() if level else env_level, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.setLevel(resolved)

    # uvicorn may already have installed its own handlers
    if not root.handlers:
        root.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _CONFIGURED = True
