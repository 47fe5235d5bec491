from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any, Generic, TypeVar

from bson import ObjectId
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from library_api.core.errors import NotFound, StoreFailure, ValidationFailed
from library_api.core.logging import get_logger
from library_api.db.store import DocumentStore
from library_api.schemas.validation import DocumentIn, RecordValidator
from library_api.utils.identifiers import parse_identifier

InT = TypeVar("InT", bound=DocumentIn)
ReadT = TypeVar("ReadT", bound=BaseModel)

logger = get_logger(__name__)


@contextmanager
def _store_call(operation: str, collection: str) -> Iterator[None]:
    """Log store faults with detail; callers only ever see StoreFailure."""
    try:
        yield
    except PyMongoError as exc:
        logger.exception("Store %s on %s failed: %s", operation, collection, exc)
        raise StoreFailure()


class ResourceService(Generic[InT, ReadT]):
    """
    CRUD pipeline for one collection: identifier parsing, payload
    validation, persistence and mapping of empty results to NotFound.

    Authorization and media-type checks happen in the routes, before
    any of these methods run.
    """

    def __init__(
        self,
        collection: str,
        validator: RecordValidator[InT],
        read_model: type[ReadT],
        not_found_message: str,
    ):
        self.collection: str = collection
        self.validator: RecordValidator[InT] = validator
        self.read_model: type[ReadT] = read_model
        self.not_found_message: str = not_found_message

    def _validated(self, payload: object, today: date | None) -> dict[str, Any]:
        outcome = self.validator.validate(payload, today=today)
        if outcome.record is None:
            raise ValidationFailed(outcome.errors)
        return outcome.record.to_document()

    # List records
    def list(self, store: DocumentStore) -> list[ReadT]:
        with _store_call("find", self.collection):
            docs = store.find(self.collection)
        return [self.read_model.model_validate(doc) for doc in docs]

    # Get a record by id
    def get(self, store: DocumentStore, raw_id: str) -> ReadT:
        oid = parse_identifier(raw_id)
        with _store_call("find_one", self.collection):
            doc = store.find_one(self.collection, oid)
        if doc is None:
            raise NotFound(self.not_found_message)
        return self.read_model.model_validate(doc)

    # Create a record, returns the new id
    def create(self, store: DocumentStore, payload: object, today: date | None = None) -> ObjectId:
        document = self._validated(payload, today)
        with _store_call("insert_one", self.collection):
            oid = store.insert_one(self.collection, document)
        logger.info("Created %s %s", self.collection, oid)
        return oid

    # Replace a record (full overwrite)
    def replace(
        self,
        store: DocumentStore,
        raw_id: str,
        payload: object,
        today: date | None = None,
    ) -> None:
        oid = parse_identifier(raw_id)
        document = self._validated(payload, today)
        with _store_call("replace_one", self.collection):
            matched = store.replace_one(self.collection, oid, document)
        if matched == 0:
            raise NotFound(self.not_found_message)
        logger.info("Replaced %s %s", self.collection, oid)

    # Delete a record
    def delete(self, store: DocumentStore, raw_id: str) -> None:
        oid = parse_identifier(raw_id)
        with _store_call("delete_one", self.collection):
            deleted = store.delete_one(self.collection, oid)
        if deleted == 0:
            raise NotFound(self.not_found_message)
        logger.info("Deleted %s %s", self.collection, oid)

