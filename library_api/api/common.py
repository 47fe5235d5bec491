from datetime import date
from typing import Any, Final

from fastapi import Request
from pydantic import BaseModel

from library_api.core.errors import ErrorBody, MalformedBody, UnsupportedMediaType
from library_api.schemas.validation import DocumentIn, utc_today


class CreatedId(BaseModel):
    id: str


# Reference date for moving validation bounds; tests override it.
def get_today() -> date:
    return utc_today()


async def json_body(request: Request) -> Any:
    """
    Decode the request body as JSON.

    Declared after the auth dependency in each route so a request that
    fails both reports the auth failure.
    """
    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if media_type != "application/json":
        raise UnsupportedMediaType()
    try:
        return await request.json()
    except (ValueError, RecursionError):
        # RecursionError: nesting deeper than the decoder can follow
        raise MalformedBody()


def json_request_body(model: type[DocumentIn]) -> dict[str, Any]:
    """openapi_extra documenting a body that is read by `json_body`."""
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema(by_alias=True)}},
        }
    }


def _error(description: str) -> dict[str, Any]:
    return {"model": ErrorBody, "description": description}


READ_ERRORS: Final[dict[int | str, dict[str, Any]]] = {
    400: _error("Invalid id"),
    404: _error("Not found"),
}

WRITE_ERRORS: Final[dict[int | str, dict[str, Any]]] = {
    400: _error("Validation/ID error"),
    401: _error("Unauthorized"),
    403: _error("Forbidden (missing scope)"),
    404: _error("Not found"),
    415: _error("Unsupported Media Type"),
}
