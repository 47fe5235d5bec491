from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from fastapi import status

if TYPE_CHECKING:
    from fastapi.testclient import TestClient


class TestCorrelationIdMiddleware:
    """Test request id propagation."""

    def test_request_id_generated(self, secure_client: TestClient) -> None:
        response = secure_client.get("/healthz")
        request_id = response.headers["X-Request-ID"]
        assert uuid.UUID(request_id)

    def test_request_id_echoed(self, secure_client: TestClient) -> None:
        response = secure_client.get("/books", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    def test_request_id_on_errors(self, secure_client: TestClient) -> None:
        response = secure_client.get("/books/bad", headers={"X-Request-ID": "err-1"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.headers["X-Request-ID"] == "err-1"


class TestSecurityHeadersMiddleware:
    """Test hardening headers."""

    def test_headers_present(self, secure_client: TestClient) -> None:
        response = secure_client.get("/healthz")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert response.headers["Referrer-Policy"] == "no-referrer"


class TestServiceEndpoints:
    """Test health, banner and documentation endpoints."""

    def test_healthz(self, secure_client: TestClient) -> None:
        response = secure_client.get("/healthz")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok"}

    def test_root(self, secure_client: TestClient) -> None:
        response = secure_client.get("/")
        assert response.status_code == status.HTTP_200_OK
        assert response.text == "Library API is up"

    def test_unknown_route(self, secure_client: TestClient) -> None:
        response = secure_client.get("/nowhere")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"message": "Not Found"}

    def test_openapi_document(self, secure_client: TestClient) -> None:
        """Test the schema declares the oauth2 scheme, scopes and every route."""
        response = secure_client.get("/swagger.json")
        assert response.status_code == status.HTTP_200_OK
        document = response.json()

        scheme = document["components"]["securitySchemes"]["OAuth2AuthorizationCodeBearer"]
        assert set(scheme["flows"]["authorizationCode"]["scopes"]) == {"read:library", "write:library"}

        assert set(document["paths"]) == {"/books", "/books/{book_id}", "/authors", "/authors/{author_id}"}
        post = document["paths"]["/books"]["post"]
        assert {"OAuth2AuthorizationCodeBearer": ["write:library"]} in post["security"]
        body_schema = post["requestBody"]["content"]["application/json"]["schema"]
        assert "publishedYear" in body_schema["properties"]
        assert set(post["responses"]) >= {"201", "400", "401", "403", "415"}

    def test_docs_ui(self, secure_client: TestClient) -> None:
        response = secure_client.get("/api-docs")
        assert response.status_code == status.HTTP_200_OK
        assert "swagger" in response.text.lower()

    def test_cors_preflight(self, secure_client: TestClient) -> None:
        response = secure_client.options(
            "/books",
            headers={
                "Origin": "https://catalog.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.headers["access-control-allow-origin"] == "*"
