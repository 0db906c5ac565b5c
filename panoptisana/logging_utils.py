"""Logging setup for the menu-bar process and the developer CLI.

The tray process keeps running after its launching terminal goes away, so
stdout can be closed underneath the stream handler. SafeStreamHandler drops
those writes instead of raising from inside the poll loop.
"""
import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that ignores broken pipe and closed file errors."""

    def emit(self, record):
        try:
            super().emit(record)
        except BrokenPipeError:
            pass  # stdout closed
        except ValueError:
            pass  # I/O operation on closed file


def resolve_level(default=logging.INFO):
    """Level from PANOPTISANA_LOG_LEVEL (name or number), else default."""
    raw = os.getenv("PANOPTISANA_LOG_LEVEL")
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def configure_safe_logging(level=None):
    """Attach one SafeStreamHandler to the root logger.

    Safe to call multiple times (guards against duplicate handlers).
    """
    level = resolve_level() if level is None else level
    logger = logging.getLogger()
    if not any(isinstance(h, SafeStreamHandler) for h in logger.handlers):
        handler = SafeStreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    # aiohttp logs every connection at DEBUG
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))
