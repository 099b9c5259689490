"""
Pydantic schemas shared by the guestbook core and the HTTP layer.

This module contains:
- The visitor context extracted from request headers
- Timeline display entries
- Operation outcomes and health responses
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Core Models
# =============================================================================

class VisitorContext(BaseModel):
    """
    Who is visiting and from where.

    Produced by utils.extract_visitor from the edge proxy headers; the
    core never looks at the request itself.
    """
    identity: str = Field(..., description="Visitor network identity (IP)")
    city: Optional[str] = Field(None, description="Geolocated city")
    country: Optional[str] = Field(None, description="Geolocated country")


class DisplayEntry(BaseModel):
    """One authored visit as shown on the timeline."""
    ip: str = Field(..., description="Visitor identity")
    author: str = Field(..., description="Author name")
    message: str = Field(..., description="Message text")
    visited_at: int = Field(..., description="Last activity, ms since epoch")
    elapsed: str = Field(..., description="Humanized age, e.g. '3 hours'")

    @property
    def key(self) -> tuple:
        """Composite identity used to drop duplicate selections."""
        return (self.ip, self.visited_at, self.message, self.author)


class WriteOutcome(BaseModel):
    """Result of a successful write: where to send the visitor next."""
    redirect_url: str = Field(..., description="Redirect target")
    result: str = Field(..., description="promoted or inserted")


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
