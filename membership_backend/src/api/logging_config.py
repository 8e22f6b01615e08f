"""
Loguru sinks for the API process.

- stderr sink at LOG_LEVEL
- optional daily-rotated file sink under LOG_DIR (zip compressed, 30 day retention)
"""
import sys
from pathlib import Path

from loguru import logger

from src.api import config

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"


# PUBLIC_INTERFACE
def configure_logging(level: str = None, log_dir: str = None):
    """Replace loguru's default handler with the application sinks."""
    level = level or config.LOG_LEVEL
    log_dir = log_dir if log_dir is not None else config.LOG_DIR

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            sink=str(path / "api_{time:YYYY_MM_DD}.log"),
            rotation="00:00",
            retention="30 days",
            compression="zip",
            level=level,
            format=LOG_FORMAT,
            enqueue=True,
        )
    return logger


def sanitize_headers(headers) -> dict:
    """Copy request headers, redacting credentials."""
    cleaned = dict(headers)
    if "authorization" in cleaned:
        cleaned["authorization"] = "[REDACTED]"
    return cleaned
