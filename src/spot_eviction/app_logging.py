"""
Logging utilities for the spot eviction tool.

All loggers are children of the 'spot_eviction' root logger. Library code
only ever calls get_logger(); the CLI decides where output goes by calling
setup_logging() once at startup.
"""

import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


_LOG_THEME = Theme({
    "logging.level.debug": "dim cyan",
    "logging.level.info": "green",
    "logging.level.warning": "yellow",
    "logging.level.error": "bold red",
    "logging.level.critical": "bold white on red",
    "log.time": "dim",
    "log.path": "dim",
})

# Logs go to stderr so tables on stdout stay clean
_console = Console(theme=_LOG_THEME, stderr=True)

ROOT_LOGGER_NAME = 'spot_eviction'

_loggers: dict[str, logging.Logger] = {}


def setup_logging(
    level: str = 'WARNING',
    log_format: Optional[str] = None,
    dev_mode: bool = False,
    show_path: bool = False,
) -> None:
    """
    Configure the 'spot_eviction' logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string for the plain handler. If None, uses default format.
        dev_mode: Use a Rich console handler instead of a plain stream handler
        show_path: Show source path in Rich output
    """
    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    level_value = getattr(logging, level.upper())

    if dev_mode:
        handler: logging.Handler = RichHandler(
            console=_console,
            level=level_value,
            show_path=show_path,
            rich_tracebacks=True,
            markup=False,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(log_format))
    handler.setLevel(level_value)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level_value)
    logger.handlers.clear()
    logger.addHandler(handler)
    # Prevent propagation to root logger
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a component, e.g. get_logger('retry').

    The name is prefixed with 'spot_eviction.' automatically.
    """
    full_name = f"{ROOT_LOGGER_NAME}.{name}" if name else ROOT_LOGGER_NAME

    if full_name not in _loggers:
        logger = logging.getLogger(full_name)

        # Add NullHandler to prevent "No handler found" warnings
        # when setup_logging hasn't been called
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())

        _loggers[full_name] = logger

    return _loggers[full_name]


def sanitize_token(token: Optional[str], show_chars: int = 4) -> str:
    """Mask a token for logging, keeping only its first and last characters."""
    if not token:
        return "<empty>"

    if len(token) <= show_chars * 2:
        return "***"

    return f"{token[:show_chars]}...{token[-show_chars:]}"
