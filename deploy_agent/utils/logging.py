"""Root logger setup for the agent process.

``DEPLOY_AGENT_LOG_LEVEL`` (level name or number) wins over
``DEPLOY_AGENT_DEBUG``; without either the caller's default applies.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
LEVEL_ENV = "DEPLOY_AGENT_LOG_LEVEL"
DEBUG_ENV = "DEPLOY_AGENT_DEBUG"
# HTTP client loggers stay at WARNING unless the agent itself logs DEBUG
_HTTP_LOGGERS = ("urllib3", "requests")


def env_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_level(value: int | str) -> Optional[int]:
    if isinstance(value, int):
        return value
    text = value.strip()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    return level if isinstance(level, int) else None


def _env_level(environ: Mapping[str, str]) -> Optional[int]:
    raw = environ.get(LEVEL_ENV, "").strip()
    if raw:
        level = _parse_level(raw)
        if level is not None:
            return level
    if env_truthy(environ.get(DEBUG_ENV)):
        return logging.DEBUG
    return None


def configure_root(default_level: int | str = logging.INFO, environ: Optional[Mapping[str, str]] = None) -> int:
    """Install the agent log format on the root logger and return the level in effect."""
    level = _env_level(os.environ if environ is None else environ)
    if level is None:
        level = _parse_level(default_level) or logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=_FORMAT, datefmt=_DATEFMT)
    root.setLevel(level)
    http_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    return level


__all__ = ["DEBUG_ENV", "LEVEL_ENV", "configure_root", "env_truthy"]
