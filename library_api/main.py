from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from library_api.core.config import Settings, get_settings
from library_api.core.middleware import CorrelationIdMiddleware, SecurityHeadersMiddleware
from library_api.core.logging import get_logger, setup_logging
from library_api.core.errors import register_exception_handlers
from library_api.core.security import SCOPES, authorization_urls, build_gate, oauth2_scheme
from library_api.db.store import connect_store


# Routers
from library_api.api.routes.authors import router as authors_router
from library_api.api.routes.books import router as books_router


def _lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Resolve the auth mode and open the store once per process."""
        logger = get_logger(__name__)
        logger.info(
            "Boot vars: has_uri=%s db=%s env=%s",
            bool(settings.MONGODB_URI),
            settings.DB_NAME,
            settings.ENVIRONMENT,
        )
        # Both raise and abort startup on misconfiguration
        app.state.gate = build_gate(settings)
        app.state.store = connect_store(settings)
        try:
            yield
        finally:
            app.state.store.close()
            logger.info("MongoDB connection closed")

    return lifespan


def _openapi(app: FastAPI, settings: Settings) -> Callable[[], dict[str, Any]]:
    """OpenAPI document whose OAuth2 flow points at this app's Auth0 tenant."""

    def openapi() -> dict[str, Any]:
        if app.openapi_schema is None:
            schema = FastAPI.openapi(app)
            schemes = schema.get("components", {}).get("securitySchemes", {})
            scheme = schemes.get(oauth2_scheme.scheme_name)
            if scheme is not None:
                scheme["flows"]["authorizationCode"].update(authorization_urls(settings))
        return app.openapi_schema

    return openapi


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="OAuth2-protected CRUD API for books and authors",
        version="1.0.0",
        lifespan=_lifespan(settings),
        docs_url="/api-docs",
        redoc_url=None,
        openapi_url="/swagger.json",
        swagger_ui_oauth2_redirect_url="/api-docs/oauth2-redirect",
        swagger_ui_parameters={"persistAuthorization": True},
        swagger_ui_init_oauth={
            "clientId": settings.AUTH0_CLIENT_ID or "YOUR_CLIENT_ID",
            "usePkceWithAuthorizationCodeGrant": True,
            "scopes": " ".join(SCOPES),
            "additionalQueryStringParams": (
                {"audience": settings.AUTH0_AUDIENCE} if settings.AUTH0_AUDIENCE else {}
            ),
        },
    )
    app.state.settings = settings

    # CORS middleware - allow browser clients of the API and docs UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGIN.split(",")],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middlewares
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"status": "ok"}

    # Root endpoint
    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def root():
        return "Library API is up"

    register_exception_handlers(app)

    # Mount routers
    app.include_router(books_router)
    app.include_router(authors_router)
    app.openapi = _openapi(app, settings)

    return app


app = create_app()
