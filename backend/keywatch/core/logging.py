"""Logging configuration for the backend."""
import logging
import sys
from typing import Optional
from keywatch.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure application logging.

    Args:
        level: Level name overriding `settings.log_level`
    """
    resolved = getattr(logging, (level or settings.log_level).upper())
    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # websockets logs every frame at DEBUG; audio chunks would flood the output
    logging.getLogger("websockets").setLevel(max(resolved, logging.INFO))


logger = logging.getLogger("keywatch")
