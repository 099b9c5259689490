"""
Timeline assembly and rendering.

The timeline shows every authored visit from the last RECENT_HOURS plus
the RECENT_LIMIT most recent authored visits of any age, newest first.
"""

import html
import logging
from typing import List, Optional

import markdown
from sqlalchemy.orm import Session

from guestbook.config import settings
from guestbook.errors import RenderError
from guestbook.schemas import DisplayEntry
from guestbook.storage import get_authored_visits_since, get_latest_authored_visits
from guestbook.utils import humanize_elapsed, now_ms

logger = logging.getLogger(__name__)


def build_timeline(db: Session, now: Optional[int] = None) -> List[DisplayEntry]:
    """
    Select, merge and order the authored visits to display.

    Args:
        db: Database session
        now: Reference time in ms (defaults to the wall clock)

    Returns:
        DisplayEntry list ordered by visited_at descending, no duplicates
    """
    now = now_ms() if now is None else now
    since = now - settings.RECENT_HOURS * 60 * 60 * 1000

    recent = get_authored_visits_since(db, since)
    latest = get_latest_authored_visits(db, settings.RECENT_LIMIT)
    logger.debug(f"Timeline candidates: {len(recent)} recent, {len(latest)} latest")

    entries = []
    seen = set()
    for visit in [*recent, *latest]:
        entry = DisplayEntry(
            ip=visit.ip,
            author=visit.author,
            message=visit.message,
            visited_at=visit.visited_at,
            elapsed=humanize_elapsed(now - visit.visited_at),
        )
        if entry.key in seen:
            continue
        seen.add(entry.key)
        entries.append(entry)

    # sorted() is stable, ties keep selection order
    entries = sorted(entries, key=lambda e: e.visited_at, reverse=True)
    logger.info(f"Timeline built: {len(entries)} entries")
    return entries


def render_entry(entry: DisplayEntry) -> str:
    quoted = "\n".join(f"> {line}" for line in html.escape(entry.message, quote=False).split("\n"))
    return f"{html.escape(entry.author, quote=False)} wrote {entry.elapsed} ago:\n{quoted}"


def render_timeline_markdown(entries: List[DisplayEntry]) -> str:
    """Entries as markdown, separated by blank lines."""
    return "\n\n".join(render_entry(entry) for entry in entries)


def render_timeline_html(entries: List[DisplayEntry]) -> str:
    """
    Convert the timeline to HTML (paragraphs and blockquotes).

    Raises:
        RenderError: if the markdown conversion fails
    """
    source = render_timeline_markdown(entries)
    try:
        rendered = markdown.markdown(source)
    except Exception as e:
        logger.error(f"Timeline rendering failed: {e}")
        raise RenderError("timeline rendering failed") from e
    logger.debug(f"Timeline rendered: {len(rendered)} chars")
    return rendered
