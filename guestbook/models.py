"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Column, Index, Integer, String, Text

from guestbook.storage import Base


class Visit(Base):
    """
    SQLAlchemy model for a guestbook visit.

    Table: visits
    A row starts out anonymous (author and message NULL) and may later be
    promoted to an authored entry. City/country are written once at insert.
    """
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip = Column(String, nullable=False, index=True)
    visited_at = Column(BigInteger, nullable=False, index=True)  # ms since epoch
    visited_from_city = Column(String, nullable=True)
    visited_from_country = Column(String, nullable=True)
    author = Column(String, nullable=True)
    message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_visits_ip_visited_at", "ip", "visited_at"),
    )

    def __repr__(self) -> str:
        return f"<Visit id={self.id} ip={self.ip} visited_at={self.visited_at} author={self.author!r}>"
