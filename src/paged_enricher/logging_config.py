"""Logging configuration for the application."""

import logging
from typing import Dict, Optional
from rich.logging import RichHandler
from .config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Install a rich handler on the root logger."""
    level_name = (level or settings.log_level).upper()

    logging.basicConfig(
        level=getattr(logging, level_name),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
        ],
        force=True,
    )

    # Connector libraries log every request at INFO
    quiet_loggers: Dict[str, str] = {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "asyncio": "WARNING",
    }

    for logger_name, quiet_level in quiet_loggers.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, quiet_level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)
