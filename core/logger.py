import logging
import sys
from typing import Optional


COLOR_MAP = {
    "TX": "\033[36m",       # cyan
    "CHAIN": "\033[33m",    # gold
    "INDEX": "\033[34m",    # blue
    "REP": "\033[35m",      # purple
    "WALLET": "\033[32m",   # green
    "SCRIPT": "\033[31m",   # red
}
RESET = "\033[0m"


def colorize(msg: str) -> str:
    for key, color in COLOR_MAP.items():
        if f"[{key}]" in msg:
            return f"{color}{msg}{RESET}"
    return msg


class TagFormatter(logging.Formatter):
    """Formatter that colours [TAG]-prefixed messages on a terminal."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, use_color: bool = True):
        super().__init__(fmt, datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if self.use_color:
            return colorize(msg)
        return msg


def configure_logging(
    level: str = "INFO",
    fmt: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
) -> None:
    """Install a stderr handler with tag colouring on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(TagFormatter(fmt, datefmt, use_color=sys.stderr.isatty()))
    logging.basicConfig(level=getattr(logging, level, logging.INFO), handlers=[handler], force=True)
