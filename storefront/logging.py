"""
Logging for the storefront.

One stdout handler on the root logger, configured at import; every module
takes a named logger:

    from storefront.logging import get_logger
    logger = get_logger(__name__)

Raw catalog prices and cart line ids reach the log only through the
sanitizers below.
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Longest cart line id prefix worth keeping in a log line
MAX_ID_LENGTH = 32


def _log_level() -> int:
    return getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)


def _configure_root_logger() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    level = _log_level()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    # Vercel adds its own timestamps
    handler.setFormatter(logging.Formatter(
        LOG_FORMAT_SIMPLE if os.environ.get("VERCEL") == "1" else LOG_FORMAT
    ))

    root.setLevel(level)
    root.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """Named logger (pass ``__name__``)."""
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    """Neutralize control characters so one value cannot forge log lines (CWE-117)."""
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: object) -> str:
    """
    Product or cart line id, escaped and cut to ``MAX_ID_LENGTH``.

    Returns "N/A" for None or an empty string.
    """
    if id_value is None or id_value == "":
        return "N/A"
    return _escape_log_injection(str(id_value))[:MAX_ID_LENGTH]


def sanitize_string_for_logging(value: object, max_length: int = 50) -> str:
    """
    Raw value (typically a catalog price) as escaped text of at most
    ``max_length`` chars plus "...". Non-strings are shown via ``repr`` so
    ``"10"`` and ``10`` stay distinguishable.
    """
    if value is None:
        return "N/A"
    text = value if isinstance(value, str) else repr(value)
    safe_value = _escape_log_injection(text)
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
