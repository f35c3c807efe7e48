import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def get_log_level(provided_level: Optional[str] = None) -> str:
    """
    Determine log level based on priority:
    1. Environment variable LOG_LEVEL
    2. Provided level parameter
    3. Default to INFO
    """
    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        return env_level.upper()

    if provided_level:
        return provided_level.upper()

    return "INFO"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Route the root logger through a RichHandler on stderr.

    Safe to call repeatedly; an existing RichHandler is reused.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(get_log_level(level))

    if not any(isinstance(handler, RichHandler) for handler in root_logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
            log_time_format="[%X]",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return root_logger
