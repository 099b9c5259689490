import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import FastAPI, Response, Request, Depends, Form, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from sqlalchemy.orm import Session

from guestbook.config import settings
from guestbook.errors import GuestbookError, ValidationError
from guestbook.storage import init_db, check_db_health, get_db
from guestbook.logging_utils import setup_logging, RequestLoggingMiddleware, log_visit_data
from guestbook.metrics import get_metrics, get_metrics_content_type
from guestbook.schemas import HealthResponse
from guestbook.service import view, write
from guestbook.utils import extract_visitor


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Guestbook API",
    description="Anonymous visit log with signed guestbook messages",
    version="1.0.0",
    lifespan=lifespan,
)


class PreflightNoContentMiddleware(CORSMiddleware):
    """CORSMiddleware whose successful preflight answers are 204 No Content."""

    def preflight_response(self, request_headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != status.HTTP_200_OK:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)


# Reflect the caller's origin, without credentials
app.add_middleware(
    PreflightNoContentMiddleware,
    allow_origin_regex=".*",
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(GuestbookError)
async def guestbook_error_handler(request: Request, exc: GuestbookError) -> Response:
    cause = exc.__cause__
    logger.error(f"{type(exc).__name__}: {exc}" + (f" (cause: {cause})" if cause else ""))
    return PlainTextResponse("Error!", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
    logger.error(f"Unhandled error: {exc}")
    return PlainTextResponse("Error!", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    visits table exists, 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Guestbook Routes
# =============================================================================

@app.options("/{path:path}")
async def preflight(path: str) -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/view", response_class=HTMLResponse)
async def view_guestbook(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    """
    Record an anonymous visit and return the guestbook timeline as HTML.

    Visits from the same IP within the collapsing window refresh the
    existing row instead of adding a new one.
    """
    visitor = extract_visitor(request)
    log_visit_data(request, ip=visitor.identity)

    return HTMLResponse(view(db, visitor))


@app.post("/write")
async def write_guestbook(
    request: Request,
    author: Annotated[Optional[str], Form()] = None,
    message: Annotated[Optional[str], Form()] = None,
    db: Session = Depends(get_db),
) -> Response:
    """
    Sign the guestbook.

    Form fields:
        - author: name to show
        - message: text, rendered line by line as a blockquote

    Redirects to REDIRECT_URL on success, 400 if a field is missing.
    """
    visitor = extract_visitor(request)

    try:
        outcome = write(db, visitor, author, message)
    except ValidationError:
        log_visit_data(request, ip=visitor.identity, result="validation_error")
        return HTMLResponse("<h1>Missing author or message</h1>", status_code=status.HTTP_400_BAD_REQUEST)

    log_visit_data(request, ip=visitor.identity, result=outcome.result)
    return RedirectResponse(outcome.redirect_url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
