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
from library_api.schemas.book import BookIn, BookRead
from library_api.services.book_service import book_service

router = APIRouter(prefix="/books", tags=["Books"])


@router.get("", response_model=list[BookRead], summary="Get all books")
def list_books(
    _: Annotated[Principal, Depends(read_access)],
    store: Annotated[DocumentStore, Depends(get_store)],
):
    return book_service.list(store)


@router.get(
    "/{book_id}",
    response_model=BookRead,
    summary="Get a book by id",
    responses=READ_ERRORS,
)
def get_book(
    book_id: str,
    _: Annotated[Principal, Depends(read_access)],
    store: Annotated[DocumentStore, Depends(get_store)],
):
    return book_service.get(store, book_id)


@router.post(
    "",
    status_code=HTTP_201_CREATED,
    response_model=CreatedId,
    summary="Create a new book",
    responses={k: v for k, v in WRITE_ERRORS.items() if k != 404},
    openapi_extra=json_request_body(BookIn),
)
def create_book(
    response: Response,
    _: Annotated[Principal, Depends(require_write)],
    payload: Annotated[Any, Depends(json_body)],
    store: Annotated[DocumentStore, Depends(get_store)],
    today: Annotated[date, Depends(get_today)],
):
    oid = book_service.create(store, payload, today)
    response.headers["Location"] = f"{router.prefix}/{oid}"
    return CreatedId(id=str(oid))


@router.put(
    "/{book_id}",
    status_code=HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Replace a book",
    responses=WRITE_ERRORS,
    openapi_extra=json_request_body(BookIn),
)
def replace_book(
    book_id: str,
    _: Annotated[Principal, Depends(require_write)],
    payload: Annotated[Any, Depends(json_body)],
    store: Annotated[DocumentStore, Depends(get_store)],
    today: Annotated[date, Depends(get_today)],
):
    book_service.replace(store, book_id, payload, today)
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.delete(
    "/{book_id}",
    status_code=HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a book",
    responses={k: v for k, v in WRITE_ERRORS.items() if k != 415},
)
def delete_book(
    book_id: str,
    _: Annotated[Principal, Depends(require_write)],
    store: Annotated[DocumentStore, Depends(get_store)],
):
    book_service.delete(store, book_id)
    return Response(status_code=HTTP_204_NO_CONTENT)
