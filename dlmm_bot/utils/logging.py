"""Root logger configuration."""

import logging

from dlmm_bot.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_NOISY_LOGGERS = ("apscheduler", "httpx", "telegram", "aiohttp.access")


def setup_logging(level: str | None = None):
    """Configure the root logger once from settings.log_level."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(level=level_name, format=LOG_FORMAT, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
