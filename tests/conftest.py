import copy
import time
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

import httpx
import pytest
from bson import ObjectId
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwk, jwt
from pymongo.errors import ServerSelectionTimeoutError

from library_api.api.common import get_today
from library_api.core.config import Settings
from library_api.core.security import (
    READ_SCOPE,
    WRITE_SCOPE,
    AuthorizationGate,
    EnforcementMode,
    JWKSKeySet,
    JWTVerifier,
)
from library_api.main import create_app

ISSUER = "https://library-test.auth0.com/"
AUDIENCE = "https://library.example.com/api"
JWKS_URL = f"{ISSUER}.well-known/jwks.json"
KID = "test-key"
FIXED_TODAY = date(2025, 6, 15)


class InMemoryDocumentStore:
    """DocumentStore kept in dicts; documents are copied in and out."""

    def __init__(self):
        self.collections: dict[str, dict[ObjectId, dict[str, Any]]] = {}

    def _coll(self, name: str) -> dict[ObjectId, dict[str, Any]]:
        return self.collections.setdefault(name, {})

    def find(self, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(doc) for doc in self._coll(collection).values()]

    def find_one(self, collection: str, oid: ObjectId) -> dict[str, Any] | None:
        doc = self._coll(collection).get(oid)
        return copy.deepcopy(doc) if doc is not None else None

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> ObjectId:
        oid = ObjectId()
        self._coll(collection)[oid] = {"_id": oid, **copy.deepcopy(dict(document))}
        return oid

    def replace_one(self, collection: str, oid: ObjectId, document: Mapping[str, Any]) -> int:
        coll = self._coll(collection)
        if oid not in coll:
            return 0
        coll[oid] = {"_id": oid, **copy.deepcopy(dict(document))}
        return 1

    def delete_one(self, collection: str, oid: ObjectId) -> int:
        return 1 if self._coll(collection).pop(oid, None) is not None else 0


class FailingDocumentStore:
    """Every call fails the way an unreachable MongoDB does."""

    def _fail(self, *args: object, **kwargs: object):
        raise ServerSelectionTimeoutError("mongo-internal:27017 timed out, secret detail")

    find = find_one = insert_one = replace_one = delete_one = _fail


def _generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _private_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def signing_key() -> dict[str, Any]:
    """RSA key pair: PEM private key for signing, public JWK for the JWKS."""
    key = _generate_private_key()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk.update({"kid": KID, "use": "sig", "alg": "RS256"})
    return {"private_pem": _private_pem(key), "public_jwk": public_jwk}


@pytest.fixture(scope="session")
def rogue_private_pem() -> str:
    """A key the issuer never published."""
    return _private_pem(_generate_private_key())


@pytest.fixture
def jwks_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def jwks_http_client(signing_key, jwks_requests) -> httpx.Client:
    """httpx client answering the issuer's JWKS endpoint."""

    def handler(request: httpx.Request) -> httpx.Response:
        jwks_requests.append(request)
        if str(request.url) != JWKS_URL:
            return httpx.Response(404)
        return httpx.Response(200, json={"keys": [signing_key["public_jwk"]]})

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def make_token(signing_key) -> Callable[..., str]:
    """Mint an RS256 access token; keyword arguments override claims."""

    def _make(
        scope: str | None = WRITE_SCOPE,
        *,
        private_pem: str | None = None,
        kid: str = KID,
        algorithm: str = "RS256",
        **claims: Any,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "aud": AUDIENCE,
            "sub": "auth0|librarian",
            "iat": now,
            "exp": now + 3600,
        }
        if scope is not None:
            payload["scope"] = scope
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        key = private_pem or signing_key["private_pem"]
        return jwt.encode(payload, key, algorithm=algorithm, headers={"kid": kid})

    return _make


@pytest.fixture
def verifier(jwks_http_client) -> JWTVerifier:
    return JWTVerifier(
        issuer=ISSUER,
        audience=AUDIENCE,
        key_set=JWKSKeySet(JWKS_URL, cache_ttl=3600, client=jwks_http_client),
    )


@pytest.fixture
def secure_gate(verifier) -> AuthorizationGate:
    return AuthorizationGate(EnforcementMode.SECURE, verifier)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(ENVIRONMENT="test", LOG_LEVEL="WARNING", AUTH_DISABLE=False)


@pytest.fixture
def build_app(test_settings) -> Callable[..., FastAPI]:
    """App with gate and store injected directly (lifespan not run)."""

    def _build(gate: AuthorizationGate, store: object) -> FastAPI:
        app = create_app(test_settings)
        app.state.gate = gate
        app.state.store = store
        app.dependency_overrides[get_today] = lambda: FIXED_TODAY
        return app

    return _build


@pytest.fixture
def secure_client(build_app, secure_gate, store) -> TestClient:
    """Client for an app enforcing Auth0 tokens."""
    return TestClient(build_app(secure_gate, store))


@pytest.fixture
def write_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(WRITE_SCOPE)}"}


@pytest.fixture
def read_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(READ_SCOPE)}"}


@pytest.fixture
def book_payload() -> dict[str, Any]:
    return {
        "title": "The Hobbit",
        "isbn": "9780547928227",
        "authorId": "665f6a0f2c3d4b1a9f0a1234",
        "publishedYear": 1937,
        "genres": ["Fantasy"],
        "pages": 310,
        "inStock": True,
        "price": 14.99,
    }


@pytest.fixture
def author_payload() -> dict[str, Any]:
    return {
        "firstName": "  J.R.R. ",
        "lastName": "Tolkien",
        "email": "Tolkien@Example.com",
        "birthdate": "1892-01-03",
        "nationality": "British",
        "website": "https://tolkien.co.uk",
    }


@pytest.fixture
def sample_book(secure_client, write_headers, book_payload) -> dict[str, Any]:
    """Create a book through the API and return its id and payload."""
    response = secure_client.post("/books", json=book_payload, headers=write_headers)
    assert response.status_code == 201, f"Failed to create sample book: {response.text}"
    return {"id": response.json()["id"], **book_payload}


@pytest.fixture
def sample_author(secure_client, write_headers, author_payload) -> dict[str, Any]:
    """Create an author through the API and return its id and payload."""
    response = secure_client.post("/authors", json=author_payload, headers=write_headers)
    assert response.status_code == 201, f"Failed to create sample author: {response.text}"
    return {"id": response.json()["id"], **author_payload}


@pytest.fixture
def failing_client(build_app, secure_gate) -> TestClient:
    """Client whose store is unreachable."""
    return TestClient(build_app(secure_gate, FailingDocumentStore()))
