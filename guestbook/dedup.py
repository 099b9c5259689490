"""
Visit deduplication.

Each request either refreshes the visitor's open anonymous row or inserts
a new one. A row is "open" while it carries no author/message and was last
active inside the trailing window (settings.VISIT_WINDOW_MINUTES).

Both operations issue a predicate UPDATE first and fall back to an INSERT
only when nothing matched. The two statements share one session
transaction; a failing update rolls back and the insert is never issued.
Two concurrent requests for the same ip can still both miss the update
and insert one row each.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from guestbook.config import settings
from guestbook.metrics import record_visit_outcome
from guestbook.storage import commit, insert_visit, update_open_visits
from guestbook.utils import now_ms

logger = logging.getLogger(__name__)


def window_start(now: int) -> int:
    """Start of the collapsing window ending at `now` (ms)."""
    return now - settings.VISIT_WINDOW_MINUTES * 60 * 1000


def record_view(
    db: Session,
    ip: str,
    city: Optional[str],
    country: Optional[str],
    now: Optional[int] = None,
) -> str:
    """
    Record an anonymous page view.

    Refreshes visited_at on the open anonymous row of `ip` if there is one,
    otherwise inserts a new anonymous row with the given geolocation.

    Returns:
        "updated" or "inserted"
    """
    now = now_ms() if now is None else now
    logger.info(f"Recording view: ip={ip}")

    matched = update_open_visits(db, ip, window_start(now), {"visited_at": now})
    if matched:
        result = "updated"
    else:
        insert_visit(db, ip=ip, visited_at=now, city=city, country=country)
        result = "inserted"
    commit(db)

    logger.info(f"View recorded: ip={ip}, result={result}")
    record_visit_outcome("view", result)
    return result


def record_message(
    db: Session,
    ip: str,
    author: str,
    message: str,
    city: Optional[str],
    country: Optional[str],
    now: Optional[int] = None,
) -> str:
    """
    Attach a signed message for `ip`.

    The open anonymous row, if any, is promoted in place: author, message
    and visited_at are set, the original city/country stay. Otherwise a
    fully populated row is inserted. Authored rows are never overwritten,
    so a second message inside the window lands in a new row.

    Returns:
        "promoted" or "inserted"
    """
    now = now_ms() if now is None else now
    logger.info(f"Recording message: ip={ip}, author={author}")

    matched = update_open_visits(
        db,
        ip,
        window_start(now),
        {"author": author, "message": message, "visited_at": now},
    )
    if matched:
        result = "promoted"
    else:
        insert_visit(
            db,
            ip=ip,
            visited_at=now,
            city=city,
            country=country,
            author=author,
            message=message,
        )
        result = "inserted"
    commit(db)

    logger.info(f"Message recorded: ip={ip}, result={result}")
    record_visit_outcome("message", result)
    return result
