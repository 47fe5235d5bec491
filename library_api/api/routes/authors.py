from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response
from starlette.status import HTTP_201_CREATED, HTTP_204_NO_CONTENT

from library_api.api.common import (
    READ_ERRORS,
    WRITE_ERRORS,
    CreatedId,
    get_today,
    json_body,
    json_request_body,
)
from library_api.core.security import Principal, read_access, require_write
from library_api.db.store import DocumentStore, get_store
from library_api.schemas.author import AuthorIn, AuthorRead
from library_api.services.author_service import author_service

router = APIRouter(prefix="/authors", tags=["Authors"])


@router.get("", response_model=list[AuthorRead], summary="Get all authors")
def list_authors(
    _: Annotated[Principal, Depends(read_access)],
    store: Annotated[DocumentStore, Depends(get_store)],
):
    return author_service.list(store)


@router.get(
    "/{author_id}",
    response_model=AuthorRead,
    summary="Get an author by id",
    responses=READ_ERRORS,
)
def get_author(
    author_id: str,
    _: Annotated[Principal, Depends(read_access)],
    store: Annotated[DocumentStore, Depends(get_store)],
):
    return author_service.get(store, author_id)


@router.post(
    "",
    status_code=HTTP_201_CREATED,
    response_model=CreatedId,
    summary="Create a new author",
    responses={k: v for k, v in WRITE_ERRORS.items() if k != 404},
    openapi_extra=json_request_body(AuthorIn),
)
def create_author(
    response: Response,
    _: Annotated[Principal, Depends(require_write)],
    payload: Annotated[Any, Depends(json_body)],
    store: Annotated[DocumentStore, Depends(get_store)],
    today: Annotated[date, Depends(get_today)],
):
    oid = author_service.create(store, payload, today)
    response.headers["Location"] = f"{router.prefix}/{oid}"
    return CreatedId(id=str(oid))


@router.put(
    "/{author_id}",
    status_code=HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Replace an author",
    responses=WRITE_ERRORS,
    openapi_extra=json_request_body(AuthorIn),
)
def replace_author(
    author_id: str,
    _: Annotated[Principal, Depends(require_write)],
    payload: Annotated[Any, Depends(json_body)],
    store: Annotated[DocumentStore, Depends(get_store)],
    today: Annotated[date, Depends(get_today)],
):
    author_service.replace(store, author_id, payload, today)
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.delete(
    "/{author_id}",
    status_code=HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete an author",
    responses={k: v for k, v in WRITE_ERRORS.items() if k != 415},
)
def delete_author(
    author_id: str,
    _: Annotated[Principal, Depends(require_write)],
    store: Annotated[DocumentStore, Depends(get_store)],
):
    author_service.delete(store, author_id)
    return Response(status_code=HTTP_204_NO_CONTENT)
