from __future__ import annotations

import logging
import os
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_DATEFMT = "%H:%M:%S"
_LEVEL_ENV = "RAIDPANEL_LOG_LEVEL"
_DEBUG_ENV = "RAIDPANEL_DEBUG"
# transport libraries that flood DEBUG with frame dumps
_CHATTY_LOGGERS = ("urllib3", "socketio", "engineio", "websocket")


def _parse_level(value: Optional[str]) -> Optional[int]:
    text = (value or "").strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    candidate = logging.getLevelName(text.upper())
    return candidate if isinstance(candidate, int) else None


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def env_level() -> Optional[int]:
    """Level forced by the environment, if any.

    ``RAIDPANEL_LOG_LEVEL`` (name or number) wins over ``RAIDPANEL_DEBUG``.
    """
    explicit = _parse_level(os.getenv(_LEVEL_ENV))
    if explicit is not None:
        return explicit
    if _truthy(os.getenv(_DEBUG_ENV)):
        return logging.DEBUG
    return None


def configure_root(default_level: int | str = logging.INFO) -> int:
    """Configure the root logger with a compact format; returns the level used."""
    if isinstance(default_level, str):
        fallback = _parse_level(default_level) or logging.INFO
    else:
        fallback = int(default_level)
    effective = env_level() or fallback

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=effective, format=_FORMAT, datefmt=_DATEFMT)
    root.setLevel(effective)
    _tame_transport_loggers(effective)
    return effective


def apply_gui_preferences(debug_enabled: bool) -> int:
    """Apply the settings toggle unless the environment pinned a level."""
    forced = env_level()
    level = forced if forced is not None else (logging.DEBUG if debug_enabled else logging.INFO)
    logging.getLogger().setLevel(level)
    _tame_transport_loggers(level)
    return level


def env_requests_debug() -> bool:
    forced = env_level()
    return forced is not None and forced <= logging.DEBUG


def _tame_transport_loggers(level: int) -> None:
    floor = max(level, logging.INFO)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(floor)
