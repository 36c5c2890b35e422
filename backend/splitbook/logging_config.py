"""Logging setup for the API server.

Level comes from the app's LOG_LEVEL setting (env var LOG_LEVEL, default INFO).
"""
import logging
import sys

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(name: str) -> int:
    return LOG_LEVEL_MAP.get((name or "INFO").upper(), logging.INFO)


def configure_logging(app) -> None:
    """Attach a stdout handler to the ``splitbook`` logger tree."""
    level = get_log_level(app.config.get("LOG_LEVEL"))

    logger = logging.getLogger("splitbook")
    logger.setLevel(level)

    if not any(getattr(h, "_splitbook", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._splitbook = True
        logger.addHandler(handler)

    app.logger.setLevel(level)
