"""
Console logging for the wallet stream.
"""
import logging
from typing import Optional, Union

from colorama import Fore, Style, init

init(autoreset=True)

LEVEL_COLORS = {
    logging.DEBUG: Style.DIM + Fore.WHITE,
    logging.INFO: Fore.CYAN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Style.BRIGHT + Fore.RED,
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


class ColorFormatter(logging.Formatter):
    """Colours the level name; the message itself is left untouched."""

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno, "")
        original = record.levelname
        record.levelname = f"{color}{original:<7}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(level: Union[str, int, None] = "INFO",
                  logger_name: Optional[str] = None) -> logging.Logger:
    """
    Install a coloured console handler (idempotent).

    Args:
        level: Level name or number
        logger_name: Logger to configure; root logger by default

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    target = logging.getLogger(logger_name)
    target.setLevel(level or logging.INFO)

    for handler in target.handlers:
        if isinstance(handler.formatter, ColorFormatter):
            return target

    handler = logging.StreamHandler()
    handler.setFormatter(ColorFormatter(LOG_FORMAT, DATE_FORMAT))
    target.addHandler(handler)
    return target
