"""
Tests for the application shell: health check, caller identity and the
error responses every endpoint shares.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from library_api.app import API_PREFIX, create_app
from library_api.database import BookRepository
from library_api.models.user import Role


class TestHealth:
    def test_health_ok(self, client):
        response = client.get(f"{API_PREFIX}/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "service": "test-library-api",
            "version": "0.0.1-test",
            "database": "connected",
        }

    def test_health_degraded_without_database(self, client, db_manager, monkeypatch):
        monkeypatch.setattr(db_manager, "verify_connection", lambda: False)

        response = client.get(f"{API_PREFIX}/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["database"] == "unavailable"


class TestIdentity:
    def test_anonymous_caller_can_browse(self, client, book):
        response = client.get(f"{API_PREFIX}/books")

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_anonymous_caller_cannot_borrow(self, client, book):
        response = client.post(f"{API_PREFIX}/books/borrow/request", json={"book_id": book.id})

        assert response.status_code == 403
        assert response.json() == {"message": "Authentication required"}

    def test_reader_cannot_use_staff_endpoints(self, client, auth, users):
        response = client.get(f"{API_PREFIX}/borrow-requests", headers=auth(users["reader"]))

        assert response.status_code == 403
        assert response.json() == {"message": "This action requires the staff role"}

    def test_staff_cannot_use_admin_endpoints(self, client, auth, users):
        response = client.post(
            f"{API_PREFIX}/categories",
            json={"name": "Poetry"},
            headers=auth(users["staff"], Role.STAFF),
        )

        assert response.status_code == 403
        assert response.json() == {"message": "This action requires the admin role"}

    def test_admin_can_use_staff_endpoints(self, client, auth, users):
        response = client.get(f"{API_PREFIX}/borrow-requests", headers=auth(users["admin"], Role.ADMIN))

        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_unknown_role_rejected(self, client, users):
        response = client.get(
            f"{API_PREFIX}/fines/my-fines",
            headers={"X-User-Id": users["reader"], "X-User-Role": "librarian"},
        )

        assert response.status_code == 403
        assert response.json() == {"message": "Unknown role 'librarian'"}

    def test_role_defaults_to_user(self, client, users):
        response = client.get(f"{API_PREFIX}/fines/my-fines", headers={"X-User-Id": users["reader"]})

        assert response.status_code == 200
        assert response.json() == {"fines": [], "total_unpaid_amount": 0}


class TestErrorResponses:
    def test_not_found(self, client):
        response = client.get(f"{API_PREFIX}/books/book_missing01")

        assert response.status_code == 404
        assert "not found" in response.json()["message"]

    def test_validation_error(self, client, auth, users):
        response = client.post(
            f"{API_PREFIX}/books/borrow/request", json={}, headers=auth(users["reader"])
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation error"
        assert body["errors"][0]["loc"][-1] == "book_id"

    def test_invalid_query_parameter(self, client):
        response = client.get(f"{API_PREFIX}/books", params={"sort_by": "popularity"})

        assert response.status_code == 400
        assert response.json()["message"] == "Validation error"

    def test_conflict(self, client, auth, users, book):
        headers = auth(users["reader"])
        client.post(f"{API_PREFIX}/books/borrow/request", json={"book_id": book.id}, headers=headers)

        response = client.post(
            f"{API_PREFIX}/books/borrow/request", json={"book_id": book.id}, headers=headers
        )

        assert response.status_code == 400
        assert response.json() == {
            "message": "You already have a pending or active borrow request for this book"
        }

    def test_unknown_route(self, client):
        response = client.get(f"{API_PREFIX}/nothing-here")

        assert response.status_code == 404
        assert response.json() == {"message": "Not Found"}

    def test_unexpected_error_hides_details(self, db_manager, test_config, clock, monkeypatch):
        def explode(self, *args, **kwargs):
            raise RuntimeError("secret connection string")

        monkeypatch.setattr(BookRepository, "search", explode)
        # Debug mode only raises log verbosity; it never exposes tracebacks
        assert test_config.debug is True
        app = create_app(db_manager=db_manager, config=test_config, clock=clock)

        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.get(f"{API_PREFIX}/books")

        assert response.status_code == 500
        assert response.json() == {"message": "Internal server error"}
        assert "secret" not in response.text
        assert app.debug is False


@pytest.mark.asyncio
async def test_async_client_round_trip(db_manager, test_config, clock, users, book):
    app = create_app(db_manager=db_manager, config=test_config, clock=clock)
    transport = httpx.ASGITransport(app=app)

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as async_client:
        detail = await async_client.get(f"{API_PREFIX}/books/{book.id}")
        requested = await async_client.post(
            f"{API_PREFIX}/books/borrow/request",
            json={"book_id": book.id, "is_read_on_site": True},
            headers={"X-User-Id": users["reader"], "X-User-Role": "user"},
        )

    assert detail.status_code == 200
    assert detail.json()["inventory"]["available"] == 2
    assert requested.status_code == 201
    assert requested.json()["borrow_request"]["status"] == "pending"
    assert requested.json()["borrow_request"]["is_read_on_site"] is True
