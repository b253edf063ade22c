"""
Logging setup shared by the API, converters and cleanup jobs
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger("magick_api")


def setup_logger(level: str = "INFO") -> logging.Logger:
    """Attach a stdout handler once and set the level"""
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
