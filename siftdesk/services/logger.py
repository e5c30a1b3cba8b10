"""Logging setup shared by the API server and scripts."""

import logging

from siftdesk.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty libraries are kept at WARNING unless the app itself is debugging.
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "aiosqlite", "asyncio")


def configure_logging(level: str | None = None) -> None:
    app_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    logging.basicConfig(level=app_level, format=LOG_FORMAT)
    noisy_level = logging.DEBUG if app_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
