"""
Exception types raised by the guestbook core.

The HTTP layer maps ValidationError to a 400 response; everything else
ends up in the top-level handler in main.py.
"""


class GuestbookError(Exception):
    """Base class for guestbook errors."""


class ValidationError(GuestbookError):
    """Author or message missing/empty on write. Nothing is written."""


class StoreError(GuestbookError):
    """A store statement failed or the database is unreachable."""


class RenderError(GuestbookError):
    """Timeline markup conversion failed."""
