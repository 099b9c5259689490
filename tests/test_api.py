"""
Tests for the HTTP endpoints.

Tests cover:
- GET /view records a visit and renders the timeline
- POST /write validation (400, no store mutation) and redirect
- Visitor headers and their fallbacks
- Top-level error handling
- Health, metrics and CORS preflight
"""

from unittest import mock

import pytest
from fastapi.testclient import TestClient

from guestbook.config import settings
from guestbook.errors import StoreError
from guestbook.main import app
from guestbook.models import Visit
from guestbook.storage import SessionLocal, Base, engine


VISITOR_HEADERS = {
    "x-real-ip": "1.2.3.4",
    "cf-ipcity": "Berlin",
    "cf-ipcountry": "DE",
}


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


def all_visits():
    with SessionLocal() as db:
        return db.query(Visit).order_by(Visit.id).all()


class TestView:
    """GET /view"""

    def test_view_records_visit(self, client):
        response = client.get("/view", headers=VISITOR_HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        rows = all_visits()
        assert len(rows) == 1
        assert (rows[0].ip, rows[0].visited_from_city, rows[0].visited_from_country) == ("1.2.3.4", "Berlin", "DE")

    def test_repeated_views_collapse(self, client):
        client.get("/view", headers=VISITOR_HEADERS)
        client.get("/view", headers=VISITOR_HEADERS)

        assert len(all_visits()) == 1

    def test_missing_headers_fall_back_to_unknown(self, client):
        client.get("/view")

        row = all_visits()[0]
        assert row.ip == "unknown"
        assert row.visited_from_city == "unknown"
        assert row.visited_from_country == "unknown"

    def test_view_shows_messages(self, client):
        client.post("/write", data={"author": "Bob", "message": "hi"}, headers=VISITOR_HEADERS, follow_redirects=False)

        response = client.get("/view", headers={"x-real-ip": "5.6.7.8"})

        assert response.status_code == 200
        assert "Bob wrote" in response.text
        assert "<blockquote>" in response.text

    def test_response_includes_request_id_header(self, client):
        response = client.get("/view", headers=VISITOR_HEADERS)

        assert "x-request-id" in response.headers


class TestWrite:
    """POST /write"""

    def test_write_redirects(self, client):
        response = client.post(
            "/write",
            data={"author": "Bob", "message": "hi"},
            headers=VISITOR_HEADERS,
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == settings.REDIRECT_URL
        rows = all_visits()
        assert len(rows) == 1
        assert (rows[0].author, rows[0].message) == ("Bob", "hi")

    def test_write_promotes_viewed_row(self, client):
        client.get("/view", headers={**VISITOR_HEADERS, "cf-ipcity": "Hamburg"})
        client.post(
            "/write",
            data={"author": "Bob", "message": "hi"},
            headers=VISITOR_HEADERS,
            follow_redirects=False,
        )

        rows = all_visits()
        assert len(rows) == 1
        assert rows[0].author == "Bob"
        assert rows[0].visited_from_city == "Hamburg"

    @pytest.mark.parametrize(
        "data",
        [
            {"author": "", "message": "hi"},
            {"author": "Bob", "message": ""},
            {"author": "Bob"},
            {"message": "hi"},
            {},
        ],
    )
    def test_missing_fields_rejected_without_writes(self, client, data):
        response = client.post("/write", data=data, headers=VISITOR_HEADERS, follow_redirects=False)

        assert response.status_code == 400
        assert "Missing author or message" in response.text
        assert all_visits() == []

    def test_whitespace_fields_are_not_empty(self, client):
        response = client.post(
            "/write",
            data={"author": " ", "message": " "},
            headers=VISITOR_HEADERS,
            follow_redirects=False,
        )

        assert response.status_code == 302
        rows = all_visits()
        assert len(rows) == 1
        assert (rows[0].author, rows[0].message) == (" ", " ")


class TestErrors:
    """Top-level error handler."""

    def test_store_error_returns_generic_500(self, client):
        with mock.patch("guestbook.service.record_view", side_effect=StoreError("update open visits failed")):
            response = client.get("/view", headers=VISITOR_HEADERS)

        assert response.status_code == 500
        assert response.text == "Error!"


class TestOperational:
    """Health, metrics and CORS."""

    def test_health_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "reason": None}

    def test_health_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_health_not_ready_without_schema(self, client):
        Base.metadata.drop_all(bind=engine)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_metrics_count_visits(self, client):
        client.get("/view", headers=VISITOR_HEADERS)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "guestbook_visits_total" in response.text
        assert "http_requests_total" in response.text

    def test_options_returns_no_content(self, client):
        response = client.options("/write")

        assert response.status_code == 204

    def test_cors_reflects_origin(self, client):
        response = client.get("/view", headers={**VISITOR_HEADERS, "Origin": "https://bprp.xyz"})

        assert response.headers["access-control-allow-origin"] == "https://bprp.xyz"

    def test_cors_preflight_returns_no_content(self, client):
        response = client.options(
            "/write",
            headers={
                "Origin": "https://bprp.xyz",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "https://bprp.xyz"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_cors_does_not_allow_credentials(self, client):
        response = client.get("/view", headers={**VISITOR_HEADERS, "Origin": "https://evil.example"})

        assert response.headers["access-control-allow-origin"] == "https://evil.example"
        assert "access-control-allow-credentials" not in response.headers
