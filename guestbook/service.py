"""
The two operations exposed to the HTTP layer: view and write.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from guestbook.config import settings
from guestbook.dedup import record_message, record_view
from guestbook.errors import ValidationError
from guestbook.metrics import record_visit_outcome
from guestbook.schemas import VisitorContext, WriteOutcome
from guestbook.timeline import build_timeline, render_timeline_html

logger = logging.getLogger(__name__)


def view(db: Session, visitor: VisitorContext, now: Optional[int] = None) -> str:
    """Record a page view, then return the rendered timeline HTML."""
    record_view(db, visitor.identity, visitor.city, visitor.country, now=now)
    return render_timeline_html(build_timeline(db, now=now))


def write(
    db: Session,
    visitor: VisitorContext,
    author: Optional[str],
    message: Optional[str],
    now: Optional[int] = None,
) -> WriteOutcome:
    """
    Validate and record a signed message.

    Raises:
        ValidationError: author or message missing or empty; the store is not touched
    """
    if not author or not message:
        logger.warning(f"Rejected write from ip={visitor.identity}: missing author or message")
        record_visit_outcome("message", "validation_error")
        raise ValidationError("Missing author or message")

    result = record_message(
        db,
        visitor.identity,
        author,
        message,
        visitor.city,
        visitor.country,
        now=now,
    )
    return WriteOutcome(redirect_url=settings.REDIRECT_URL, result=result)
