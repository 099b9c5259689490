"""
Utility functions for the guestbook API.
"""

import logging
import time

from fastapi import Request

from guestbook.config import settings
from guestbook.schemas import VisitorContext

logger = logging.getLogger(__name__)


# Largest first; humanize_elapsed picks the first unit that fits
_UNITS = (
    ("day", 24 * 60 * 60 * 1000),
    ("hour", 60 * 60 * 1000),
    ("minute", 60 * 1000),
    ("second", 1000),
)


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def humanize_elapsed(elapsed_ms: int) -> str:
    """
    Render a duration in its largest applicable unit, rounded.

    Examples:
        640_000 -> "11 minutes"
        3_600_000 -> "1 hour"
        400 -> "0 seconds"
        59_600 -> "1 minute"
    """
    elapsed_ms = max(0, elapsed_ms)
    for i, (name, size) in enumerate(_UNITS):
        if elapsed_ms >= size or size == 1000:
            # round half up, not Python's banker's rounding
            value = int(elapsed_ms / size + 0.5)
            # rounding up to a whole larger unit, e.g. 60 minutes
            if i > 0 and value * size == _UNITS[i - 1][1]:
                name, value = _UNITS[i - 1][0], 1
            return f"{value} {name}" if value == 1 else f"{value} {name}s"


def extract_visitor(request: Request) -> VisitorContext:
    """
    Pull identity and geolocation out of the proxy headers.

    Missing headers fall back to settings.UNKNOWN_VALUE.
    """
    headers = request.headers
    visitor = VisitorContext(
        identity=headers.get(settings.IP_HEADER) or settings.UNKNOWN_VALUE,
        city=headers.get(settings.CITY_HEADER) or settings.UNKNOWN_VALUE,
        country=headers.get(settings.COUNTRY_HEADER) or settings.UNKNOWN_VALUE,
    )
    logger.debug(f"Visitor extracted: ip={visitor.identity}, city={visitor.city}, country={visitor.country}")
    return visitor
