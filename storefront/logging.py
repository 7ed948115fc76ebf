"""
Logging for the storefront cart.

Every module logs through ``get_logger(__name__)``. Output goes to stdout;
the level comes from ``STOREFRONT_LOG_LEVEL`` (or ``LOG_LEVEL``) and
``STOREFRONT_ENV=production`` switches to the short format without
timestamps, since the hosting platform stamps lines itself.

Shopper and row ids reach log lines only through ``sanitize_id_for_logging``
or ``describe_shopper``.
"""

import logging
import os
import sys
from functools import cache
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Transport and auth libraries under supabase-py / upstash-redis
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "gotrue")

ID_LOG_LENGTH = 8

# C0 control characters, escaped so an id cannot start a forged log line (CWE-117)
_CONTROL_ESCAPES = {code: f"\\x{code:02x}" for code in range(32)}
_CONTROL_ESCAPES.update({ord("\n"): "\\n", ord("\r"): "\\r", ord("\t"): "\\t", 0: None})


def _level_from_env() -> int:
    name = os.environ.get("STOREFRONT_LOG_LEVEL") or os.environ.get("LOG_LEVEL") or "INFO"
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[int] = None, production: Optional[bool] = None) -> logging.Handler:
    """
    Attach the storefront handler to the root logger.

    Safe to call repeatedly: the handler installed by an earlier call is
    reused and only its level and format are refreshed. Handlers installed
    by the host application are left alone.

    Args:
        level: Logging level; read from the environment when omitted
        production: Use the short format; read from STOREFRONT_ENV when omitted

    Returns:
        The storefront handler
    """
    if level is None:
        level = _level_from_env()
    if production is None:
        production = os.environ.get("STOREFRONT_ENV") == "production"

    root = logging.getLogger()
    handler = next((h for h in root.handlers if getattr(h, "_storefront", False)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler._storefront = True
        root.addHandler(handler)

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if production else LOG_FORMAT))
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


if not logging.getLogger().handlers:
    configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: Optional[str]) -> str:
    """Escape control characters in an id and shorten it to a loggable prefix."""
    if not id_value:
        return "N/A"
    return str(id_value).translate(_CONTROL_ESCAPES)[:ID_LOG_LENGTH]


def describe_shopper(user_id: Optional[str]) -> str:
    """Log label for a cart owner: a shortened user id, or "anonymous"."""
    if user_id:
        return f"user {sanitize_id_for_logging(user_id)}"
    return "anonymous"


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "configure_logging",
    "describe_shopper",
    "get_logger",
    "sanitize_id_for_logging",
]
