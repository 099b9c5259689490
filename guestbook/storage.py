import logging
from typing import Generator, List, Optional

from sqlalchemy import create_engine, text, inspect
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import SQLAlchemyError

from guestbook.config import settings
from guestbook.errors import StoreError

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from guestbook.models import Visit  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and the visits table exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

        if not inspect(engine).has_table("visits"):
            logger.error("Database schema not applied: 'visits' table not found")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Visit Repository Functions
# =============================================================================

def _fail(db: Session, action: str, error: Exception) -> StoreError:
    db.rollback()
    logger.error(f"Store statement failed ({action}): {error}")
    return StoreError(f"{action} failed")


def update_open_visits(db: Session, ip: str, window_start: int, values: dict) -> int:
    """
    Apply `values` to the open anonymous visits of `ip`.

    A visit is open when it has neither author nor message and was last
    active after `window_start`. The update is a single predicate statement;
    authored rows can never match it.

    Args:
        db: Database session
        ip: Visitor identity
        window_start: Exclusive lower bound on visited_at (ms since epoch)
        values: Column values to set

    Returns:
        Number of rows matched
    """
    from guestbook.models import Visit

    logger.debug(f"Updating open visits: ip={ip}, window_start={window_start}, columns={sorted(values)}")
    try:
        matched = (
            db.query(Visit)
            .filter(
                Visit.ip == ip,
                Visit.visited_at > window_start,
                Visit.author.is_(None),
                Visit.message.is_(None),
            )
            .update(values, synchronize_session=False)
        )
    except SQLAlchemyError as e:
        raise _fail(db, "update open visits", e) from e

    logger.debug(f"Open visits matched: {matched}")
    return matched


def insert_visit(
    db: Session,
    ip: str,
    visited_at: int,
    city: Optional[str],
    country: Optional[str],
    author: Optional[str] = None,
    message: Optional[str] = None,
):
    """
    Insert a new visit row. Author and message are stored together or not at all.

    Returns:
        The pending Visit object (flushed, not committed)
    """
    from guestbook.models import Visit

    if (author is None) != (message is None):
        raise ValueError("author and message must be set together")

    visit = Visit(
        ip=ip,
        visited_at=visited_at,
        visited_from_city=city,
        visited_from_country=country,
        author=author,
        message=message,
    )
    logger.debug(f"Inserting visit: ip={ip}, visited_at={visited_at}, authored={author is not None}")
    try:
        db.add(visit)
        db.flush()
    except SQLAlchemyError as e:
        raise _fail(db, "insert visit", e) from e
    return visit


def commit(db: Session) -> None:
    """Commit the session, rolling back and raising StoreError on failure."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        raise _fail(db, "commit", e) from e


def get_authored_visits_since(db: Session, since: int) -> List:
    """
    Authored visits with visited_at > since, most recent first.
    """
    from guestbook.models import Visit

    logger.debug(f"Querying authored visits since {since}")
    try:
        return (
            db.query(Visit)
            .filter(
                Visit.visited_at > since,
                Visit.author.isnot(None),
                Visit.message.isnot(None),
            )
            .order_by(Visit.visited_at.desc())
            .all()
        )
    except SQLAlchemyError as e:
        raise _fail(db, "select recent authored visits", e) from e


def get_latest_authored_visits(db: Session, limit: int) -> List:
    """
    The `limit` most recent authored visits regardless of age, most recent first.
    """
    from guestbook.models import Visit

    logger.debug(f"Querying latest {limit} authored visits")
    try:
        return (
            db.query(Visit)
            .filter(
                Visit.author.isnot(None),
                Visit.message.isnot(None),
            )
            .order_by(Visit.visited_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        raise _fail(db, "select latest authored visits", e) from e
