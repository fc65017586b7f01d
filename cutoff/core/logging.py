from __future__ import annotations

import logging

from cutoff.core.config import settings

LOG_FORMAT = "[%(levelname)s] %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    level = level or settings.LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)
