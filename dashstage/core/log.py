"""
Logging setup for processes embedding the engine.

Library modules only create module loggers; the host decides whether to call
configure_logging().
"""

import logging

from dashstage.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """
    Configure root logging with the engine's format.

    Args:
        level: Log level name or number; defaults to settings.log_level
    """
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("dashstage").setLevel(level)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
