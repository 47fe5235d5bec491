from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from bson import ObjectId
from fastapi import Request
from pymongo import MongoClient
from pymongo.database import Database

from library_api.core.config import Settings
from library_api.core.logging import get_logger

Document = dict[str, Any]


class DocumentStore(Protocol):
    """Collection-scoped persistence used by the resource services."""

    def find(self, collection: str) -> list[Document]: ...

    def find_one(self, collection: str, oid: ObjectId) -> Document | None: ...

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> ObjectId: ...

    # Returns the matched count
    def replace_one(self, collection: str, oid: ObjectId, document: Mapping[str, Any]) -> int: ...

    # Returns the deleted count
    def delete_one(self, collection: str, oid: ObjectId) -> int: ...


class MongoDocumentStore:
    """DocumentStore over a pymongo database. Thread safe via the client pool."""

    def __init__(self, database: Database[Document], client: MongoClient[Document] | None = None):
        self.database: Database[Document] = database
        self.client: MongoClient[Document] | None = client

    def find(self, collection: str) -> list[Document]:
        return list(self.database[collection].find({}))

    def find_one(self, collection: str, oid: ObjectId) -> Document | None:
        return self.database[collection].find_one({"_id": oid})

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> ObjectId:
        # insert_one mutates its argument with the new _id
        result = self.database[collection].insert_one(dict(document))
        return result.inserted_id

    def replace_one(self, collection: str, oid: ObjectId, document: Mapping[str, Any]) -> int:
        result = self.database[collection].replace_one({"_id": oid}, dict(document))
        return result.matched_count

    def delete_one(self, collection: str, oid: ObjectId) -> int:
        result = self.database[collection].delete_one({"_id": oid})
        return result.deleted_count

    def ping(self) -> None:
        _ = self.database.command("ping")

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


def connect_store(settings: Settings) -> MongoDocumentStore:
    """Open a client and verify the server answers; raises on failure."""
    logger = get_logger(__name__)
    client: MongoClient[Document] = MongoClient(
        settings.MONGODB_URI,
        serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS,
        tz_aware=True,
    )
    store = MongoDocumentStore(client[settings.DB_NAME], client)
    try:
        store.ping()
    except Exception:
        client.close()
        raise
    logger.info("Connected to MongoDB database %s", settings.DB_NAME)
    return store


# Get the process-wide store set up at startup.
def get_store(request: Request) -> DocumentStore:
    return request.app.state.store
