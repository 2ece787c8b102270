"""
Logging setup for the relay server and the terminal client
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime

NOISY_LOGGERS = ("asyncio", "aiohttp.access", "httpx", "urllib3")


class _ConsoleFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\x1b[36m",
        "INFO": "\x1b[32m",
        "WARNING": "\x1b[33m",
        "ERROR": "\x1b[31m",
        "CRITICAL": "\x1b[41m",
    }
    RESET = "\x1b[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat(timespec="seconds")
        base = f"{timestamp} | {record.levelname:<8} | {record.name} | {record.getMessage()}"
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        color = self.COLORS.get(record.levelname, "")
        if color and sys.stderr.isatty():
            return f"{color}{base}{self.RESET}"
        return base


def init_logging(level: str = "INFO") -> None:
    """Install a single console handler on the root logger"""
    root = logging.getLogger()
    # Clear old handlers to support re-init in tests
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_ConsoleFormatter())
    root.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialized at %s", level.upper())
