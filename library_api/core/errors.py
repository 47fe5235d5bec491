from collections.abc import Mapping, Sequence
from typing import Any
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    HTTP_500_INTERNAL_SERVER_ERROR,
)
from pydantic import BaseModel

from library_api.core.logging import get_logger


class FieldError(BaseModel):
    """A single violation, keyed by the JSON field path."""
    field: str
    message: str
    type: str


class ErrorBody(BaseModel):
    """Structured error body."""
    message: str
    errors: list[FieldError] | None = None


class LibraryError(Exception):
    """Base for every error that maps onto an HTTP response."""

    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal Server Error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def body(self) -> ErrorBody:
        return ErrorBody(message=self.message)

    def headers(self) -> dict[str, str] | None:
        return None


class InvalidIdentifier(LibraryError):
    status_code = HTTP_400_BAD_REQUEST
    message = "Invalid id format"


class ValidationFailed(LibraryError):
    status_code = HTTP_400_BAD_REQUEST
    message = "Validation error"

    def __init__(self, errors: Sequence[FieldError], message: str | None = None):
        super().__init__(message)
        self.errors: list[FieldError] = list(errors)

    def fields(self) -> list[str]:
        return [e.field for e in self.errors]

    def body(self) -> ErrorBody:
        return ErrorBody(message=self.message, errors=self.errors)


class MalformedBody(LibraryError):
    status_code = HTTP_400_BAD_REQUEST
    message = "Malformed JSON body"


class UnsupportedMediaType(LibraryError):
    status_code = HTTP_415_UNSUPPORTED_MEDIA_TYPE
    message = "Content-Type must be application/json"


class Unauthenticated(LibraryError):
    status_code = HTTP_401_UNAUTHORIZED
    message = "Unauthorized"

    def headers(self) -> dict[str, str] | None:
        return {"WWW-Authenticate": "Bearer"}


class Unauthorized(LibraryError):
    status_code = HTTP_403_FORBIDDEN
    message = "Forbidden"


class NotFound(LibraryError):
    status_code = HTTP_404_NOT_FOUND
    message = "Not Found"


class StoreFailure(LibraryError):
    """Opaque persistence failure; the cause is logged, never returned."""
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal Server Error"


class ConfigurationError(RuntimeError):
    """Raised at startup when the process must not serve requests."""


def _serialize_validation_errors(errors: Sequence[Mapping[Any, Any]]) -> list[FieldError]:
    """Flatten FastAPI request validation errors into field errors."""

    serialized_errors: list[FieldError] = []

    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "path", "query")]
        serialized_errors.append(
            FieldError(
                field=".".join(loc) or "body",
                message=str(error.get("msg", "Invalid value")),
                type=str(error.get("type", "value_error")),
            )
        )
    return serialized_errors


def _render(exc: LibraryError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.body().model_dump(exclude_none=True),
        headers=exc.headers(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception."""

    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
        logger = get_logger(__name__, request)
        if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Request failed", extra={"status_code": exc.status_code})
        elif isinstance(exc, ValidationFailed):
            logger.info(
                "Request rejected: %s (%s)",
                exc.message,
                ", ".join(exc.fields()),
                extra={"status_code": exc.status_code},
            )
        else:
            logger.info(
                "Request rejected: %s", exc.message, extra={"status_code": exc.status_code}
            )
        return _render(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger = get_logger(__name__, request)
        logger.warning("HTTP error", extra={"status_code": exc.status_code})
        message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
        body = ErrorBody(message=message)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(exclude_none=True),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger = get_logger(__name__, request)
        logger.info("Validation error")
        body = ErrorBody(
            message="Validation error",
            errors=_serialize_validation_errors(exc.errors()),
        )
        return JSONResponse(
            status_code=HTTP_400_BAD_REQUEST, content=body.model_dump(exclude_none=True)
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger = get_logger(__name__, request)
        logger.exception("Unhandled server error", exc_info=exc)
        body = ErrorBody(message="Internal Server Error")
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(exclude_none=True)
        )
