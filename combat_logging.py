"""
Logging configuration for the combat math library.

The library only creates named loggers; applications call setup_logging()
once to get colored output through rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: int = logging.INFO) -> None:
    """
    Install a rich handler on the root logger.

    Args:
        level: The logging level to set. Defaults to logging.INFO.
    """
    console = Console(width=120, stderr=True)

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setFormatter(logging.Formatter("%(name)s - %(message)s", datefmt="[%X]"))

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[rich_handler],
    )


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a library module"""
    return logging.getLogger(name)
