"""
Bearer-token authorization for the library endpoints.

Three enforcement modes are resolved once at startup:

- secure:       Auth0 RS256 tokens are verified against the tenant's JWKS;
                mutations require the `write:library` scope.
- disabled:     AUTH_DISABLE=true, every request is authorized. Never for prod.
- unconfigured: no AUTH0_* settings; permissive outside production, refuses
                to start in production.

Required for secure mode:
- AUTH0_AUDIENCE            e.g. https://api.yourdomain.com
- AUTH0_ISSUER_BASE_URL     e.g. https://your-tenant.us.auth0.com
  (or AUTH0_DOMAIN          e.g. your-tenant.us.auth0.com)
"""

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Final

import httpx
from fastapi import Depends, Request, Security
from fastapi.security import OAuth2AuthorizationCodeBearer
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from library_api.core.config import Settings
from library_api.core.errors import ConfigurationError, Unauthenticated, Unauthorized
from library_api.core.logging import get_logger

logger = get_logger(__name__)

READ_SCOPE: Final[str] = "read:library"
WRITE_SCOPE: Final[str] = "write:library"
SCOPES: Final[dict[str, str]] = {
    READ_SCOPE: "Read access to library resources",
    WRITE_SCOPE: "Write access to library resources",
}

# Placeholder keeps the docs "Authorize" button rendering before Auth0 is set up
_PLACEHOLDER_ISSUER: Final[str] = "https://YOUR_DOMAIN.auth0.com/"


def authorization_urls(settings: Settings | None = None) -> dict[str, str]:
    """Auth0 authorize and token endpoints advertised in the OpenAPI document."""
    issuer = (settings.issuer if settings is not None else None) or _PLACEHOLDER_ISSUER
    return {"authorizationUrl": f"{issuer}authorize", "tokenUrl": f"{issuer}oauth/token"}


# Real endpoints are filled in per app from its Settings
oauth2_scheme = OAuth2AuthorizationCodeBearer(
    **authorization_urls(),
    scopes=SCOPES,
    auto_error=False,
)


class EnforcementMode(str, Enum):
    SECURE = "secure"
    DISABLED = "disabled"
    UNCONFIGURED = "unconfigured"


@dataclass(frozen=True)
class Principal:
    """Caller resolved from a bearer token, or the anonymous bypass caller."""

    subject: str | None
    scopes: frozenset[str] = frozenset()
    bypass: bool = False

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Principal":
        return cls(subject=claims.get("sub"), scopes=_claim_scopes(claims))

    def has_scope(self, scope: str) -> bool:
        return self.bypass or scope in self.scopes


ANONYMOUS: Final[Principal] = Principal(subject=None, bypass=True)


def _claim_scopes(claims: dict[str, Any]) -> frozenset[str]:
    scopes: set[str] = set()
    raw = claims.get("scope")
    if isinstance(raw, str):
        scopes.update(raw.split())
    elif isinstance(raw, Iterable):
        scopes.update(s for s in raw if isinstance(s, str))
    # Auth0 RBAC puts granted permissions here
    permissions = claims.get("permissions")
    if isinstance(permissions, list):
        scopes.update(p for p in permissions if isinstance(p, str))
    return frozenset(scopes)


def resolve_enforcement_mode(settings: Settings) -> EnforcementMode:
    """Pick the enforcement mode; raises ConfigurationError in the unsafe case."""
    if settings.AUTH_DISABLE:
        logger.warning("[AUTH] AUTH_DISABLE=true -> JWT & scope checks are DISABLED.")
        return EnforcementMode.DISABLED
    if settings.has_auth_config:
        return EnforcementMode.SECURE
    if settings.is_production:
        raise ConfigurationError(
            "Missing AUTH0_AUDIENCE / AUTH0_ISSUER_BASE_URL in production. "
            "Set AUTH_DISABLE=true only if running without auth is intentional."
        )
    logger.warning(
        "[AUTH] Missing AUTH0_* env vars. JWT validation disabled. "
        "Set AUTH_DISABLE=true if this is intentional for local dev."
    )
    return EnforcementMode.UNCONFIGURED


class JWKSKeySet:
    """
    Signing keys published by the issuer, fetched lazily and cached.

    An unknown `kid` triggers one refetch (at most once per minute) to
    pick up key rotation.
    """

    _MIN_REFRESH_SECONDS: Final[float] = 60.0

    def __init__(
        self,
        url: str,
        cache_ttl: float = 3600,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url: str = url
        self.cache_ttl: float = cache_ttl
        self._client: httpx.Client = client or httpx.Client(timeout=10.0)
        self._clock: Callable[[], float] = clock
        self._keys: dict[str, dict[str, Any]] = {}
        self._fetched_at: float | None = None
        self._lock: threading.Lock = threading.Lock()

    def _fetch(self) -> None:
        response = self._client.get(self.url)
        _ = response.raise_for_status()
        # raises ValueError on a non-JSON body (an error or maintenance page)
        body = response.json()
        if not isinstance(body, dict) or not isinstance(body.get("keys", []), list):
            raise ValueError(f"Malformed key set document from {self.url}")
        keys = body.get("keys", [])
        self._keys = {k["kid"]: k for k in keys if isinstance(k, dict) and "kid" in k}
        self._fetched_at = self._clock()
        logger.info("Fetched %d signing keys from %s", len(self._keys), self.url)

    def _refresh(self) -> None:
        """Refetch after the TTL; keeps serving the previous keys if that fails."""
        try:
            self._fetch()
        except (httpx.HTTPError, ValueError) as exc:
            if not self._keys:
                raise
            logger.warning("Key set refresh failed, using cached keys: %s", exc)

    def _age(self) -> float:
        if self._fetched_at is None:
            return float("inf")
        return self._clock() - self._fetched_at

    def get_key(self, kid: str | None) -> dict[str, Any]:
        """Return the JWK for `kid`; raises LookupError, ValueError or httpx.HTTPError."""
        with self._lock:
            if self._age() >= self.cache_ttl:
                self._refresh()
            key = self._keys.get(kid or "")
            if key is None and self._age() >= self._MIN_REFRESH_SECONDS:
                self._fetch()
                key = self._keys.get(kid or "")
        if key is None:
            raise LookupError(f"Unknown signing key: {kid}")
        return key


class JWTVerifier:
    """Validates issuer, audience, expiry and signature of a bearer token."""

    def __init__(
        self,
        issuer: str,
        audience: str,
        key_set: JWKSKeySet,
        algorithms: tuple[str, ...] = ("RS256",),
    ):
        self.issuer: str = issuer
        self.audience: str = audience
        self.key_set: JWKSKeySet = key_set
        self.algorithms: tuple[str, ...] = algorithms

    def verify(self, token: str) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise Unauthenticated("Invalid token")

        if header.get("alg") not in self.algorithms:
            raise Unauthenticated("Invalid token")

        try:
            key = self.key_set.get_key(header.get("kid"))
        except LookupError:
            raise Unauthenticated("Invalid token")
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to fetch signing keys: %s", exc)
            raise Unauthenticated("Unable to verify token")

        try:
            return jwt.decode(
                token,
                key,
                algorithms=list(self.algorithms),
                audience=self.audience,
                issuer=self.issuer,
                options={"require_aud": True, "require_iss": True, "require_exp": True},
            )
        except ExpiredSignatureError:
            raise Unauthenticated("Token has expired")
        except JWTClaimsError:
            raise Unauthenticated("Invalid token claims")
        except JWTError:
            raise Unauthenticated("Invalid token")


class AuthorizationGate:
    """
    Two independent checks composed by the routes:
    `authenticate` (is there a valid credential) and
    `authorize` (does it carry the scope).
    """

    def __init__(
        self,
        mode: EnforcementMode,
        verifier: JWTVerifier | None = None,
        require_read_scope: bool = False,
    ):
        if mode is EnforcementMode.SECURE and verifier is None:
            raise ConfigurationError("secure mode needs a token verifier")
        self.mode: EnforcementMode = mode
        self.verifier: JWTVerifier | None = verifier
        self.require_read_scope: bool = require_read_scope

    @property
    def enforcing(self) -> bool:
        return self.mode is EnforcementMode.SECURE

    def authenticate(self, token: str | None) -> Principal:
        if not self.enforcing or self.verifier is None:
            return ANONYMOUS
        if not token:
            raise Unauthenticated("Missing bearer token")
        return Principal.from_claims(self.verifier.verify(token))

    def authorize(self, principal: Principal, scope: str) -> None:
        if not self.enforcing:
            return
        if not principal.has_scope(scope):
            raise Unauthorized(f"Insufficient scope: {scope} required")


def build_gate(settings: Settings) -> AuthorizationGate:
    mode = resolve_enforcement_mode(settings)
    verifier: JWTVerifier | None = None
    if mode is EnforcementMode.SECURE:
        issuer = settings.issuer or ""
        verifier = JWTVerifier(
            issuer=issuer,
            audience=settings.AUTH0_AUDIENCE or "",
            key_set=JWKSKeySet(f"{issuer}.well-known/jwks.json", settings.JWKS_CACHE_TTL),
        )
    logger.info("Authorization mode: %s", mode.value)
    return AuthorizationGate(mode, verifier, require_read_scope=settings.REQUIRE_READ_SCOPE)


# Get the process-wide gate built at startup.
def get_gate(request: Request) -> AuthorizationGate:
    return request.app.state.gate


def require_scope(scope: str) -> Callable[..., Principal]:
    """Dependency factory: valid credential carrying `scope`."""

    def dependency(
        gate: Annotated[AuthorizationGate, Depends(get_gate)],
        token: Annotated[str | None, Security(oauth2_scheme, scopes=[scope])],
    ) -> Principal:
        principal = gate.authenticate(token)
        gate.authorize(principal, scope)
        return principal

    return dependency


require_write = require_scope(WRITE_SCOPE)


def read_access(
    gate: Annotated[AuthorizationGate, Depends(get_gate)],
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal:
    """Reads are open unless the deployment turns on REQUIRE_READ_SCOPE."""
    if not gate.require_read_scope:
        return ANONYMOUS
    principal = gate.authenticate(token)
    gate.authorize(principal, READ_SCOPE)
    return principal
