# =============================================================================
# Record Store — Document Persistence for Agents and Users
# =============================================================================
#
# Thin async layer over two MongoDB collections. Every operation is a single
# document read or write; no multi-document transactions are used.
#
# DESIGN DECISION: Protocol (structural typing) for the collection interface.
# The upload pipeline and the route handlers only depend on CollectionStore,
# so tests can pass an in-memory fake without a running MongoDB.
#
# DESIGN DECISION: Unique indexes are the final arbiter of uniqueness.
# Handlers pre-check email / mobileNumber / officialEmail with find_one()
# to fail fast with a precise message, but two concurrent requests can both
# pass the pre-check. The unique index rejects the later insert, and the
# DuplicateKeyError is surfaced as a ConflictError naming the field.
#
# DESIGN DECISION: Explicit client ownership. The AsyncMongoClient is built
# once in the application lifespan (RecordStore.from_settings), shared by all
# requests through FastAPI dependencies, and closed at shutdown.
#
# ARCHITECTURE:
#   RecordStore
#   ├── agents: MongoCollectionStore(id_field="agentId")
#   └── users:  MongoCollectionStore(id_field="userId")
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Protocol

from bson import ObjectId
from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.config import Settings
from app.errors import ConflictError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

Record = dict[str, Any]

# Messages shared by the handler pre-checks and the unique-index fallback,
# so a client sees the same text whichever one catches the duplicate.
AGENT_CONFLICT_MESSAGES = {
    "email": "Email already exists",
    "mobileNumber": "Mobile number already exists",
}
USER_CONFLICT_MESSAGES = {
    "email": "Email already exists. Please use a different email.",
    "officialEmail": "Official Email already exists. Please use a different email.",
}


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class CollectionStore(Protocol):
    """Operations available on one record collection."""

    async def insert(self, record: Record) -> str:
        """Persist a new record. Returns the store-generated id."""
        ...

    async def find_one(self, filter: Record) -> Record | None:
        """Return the first record matching a single-field equality filter."""
        ...

    async def find_by_id(self, record_id: str) -> Record | None:
        ...

    async def find_all(self) -> list[Record]:
        ...

    async def update_by_id(self, record_id: str, partial: Record) -> Record:
        """Merge `partial` into the record. Raises NotFoundError."""
        ...

    async def delete_by_id(self, record_id: str) -> None:
        """Remove the record. Raises NotFoundError."""
        ...


# ---------------------------------------------------------------------------
# MongoDB Implementation
# ---------------------------------------------------------------------------


class MongoCollectionStore:
    """
    CollectionStore backed by a pymongo async collection.

    Records are looked up by their public identifier field (agentId, userId).
    When `accept_object_id` is set, a 24-char ObjectId hex string is also
    accepted as the identifier, so clients holding the store id keep working.

    The MongoDB `_id` is exposed to callers as a string `id` field. The public
    identifier, `_id` and `id` are never touched by updates.
    """

    def __init__(
        self,
        collection: Any,
        id_field: str,
        unique_fields: tuple[str, ...] = (),
        conflict_messages: dict[str, str] | None = None,
        accept_object_id: bool = False,
        label: str = "Record",
    ) -> None:
        self._collection = collection
        self.id_field = id_field
        self.label = label
        self.unique_fields = unique_fields
        self._conflict_messages = conflict_messages or {}
        self._accept_object_id = accept_object_id

    async def ensure_indexes(self) -> None:
        """Create unique indexes on the identifier and each unique field."""
        try:
            for field_name in (self.id_field, *self.unique_fields):
                await self._collection.create_index(field_name, unique=True)
        except PyMongoError as exc:
            raise PersistenceError(
                f"Failed to create indexes on '{self._collection.name}'", exc,
            ) from exc

    async def insert(self, record: Record) -> str:
        document = dict(record)
        try:
            result = await self._collection.insert_one(document)
        except DuplicateKeyError as exc:
            raise self._conflict_from(exc) from exc
        except PyMongoError as exc:
            raise PersistenceError("Failed to insert record", exc) from exc
        return str(result.inserted_id)

    async def find_one(self, filter: Record) -> Record | None:
        try:
            document = await self._collection.find_one(filter)
        except PyMongoError as exc:
            raise PersistenceError("Failed to query records", exc) from exc
        return _to_record(document)

    async def find_by_id(self, record_id: str) -> Record | None:
        return await self.find_one(self._id_filter(record_id))

    async def find_all(self) -> list[Record]:
        try:
            documents = await self._collection.find({}).to_list(None)
        except PyMongoError as exc:
            raise PersistenceError("Failed to list records", exc) from exc
        return [_to_record(d) for d in documents]

    async def update_by_id(self, record_id: str, partial: Record) -> Record:
        changes = {
            key: value
            for key, value in partial.items()
            if key not in (self.id_field, "_id", "id")
        }

        if not changes:
            record = await self.find_by_id(record_id)
            if record is None:
                raise NotFoundError(f"{self.label} not found")
            return record

        try:
            document = await self._collection.find_one_and_update(
                self._id_filter(record_id),
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise self._conflict_from(exc) from exc
        except PyMongoError as exc:
            raise PersistenceError("Failed to update record", exc) from exc

        if document is None:
            raise NotFoundError(f"{self.label} not found")
        return _to_record(document)

    async def delete_by_id(self, record_id: str) -> None:
        try:
            result = await self._collection.delete_one(self._id_filter(record_id))
        except PyMongoError as exc:
            raise PersistenceError("Failed to delete record", exc) from exc
        if result.deleted_count == 0:
            raise NotFoundError(f"{self.label} not found")

    # --- internals ---

    def _id_filter(self, record_id: str) -> Record:
        if self._accept_object_id and ObjectId.is_valid(record_id):
            return {
                "$or": [
                    {self.id_field: record_id},
                    {"_id": ObjectId(record_id)},
                ]
            }
        return {self.id_field: record_id}

    def _conflict_from(self, exc: DuplicateKeyError) -> ConflictError:
        details = exc.details or {}
        key_pattern = details.get("keyPattern") or {}
        field_name = next(iter(key_pattern), None)
        message = self._conflict_messages.get(
            field_name, f"Duplicate value for '{field_name or 'unknown field'}'",
        )
        logger.info(
            "Unique index rejected write on '%s' (field=%s)",
            self._collection.name, field_name,
        )
        return ConflictError(message, field=field_name, cause=exc)


# ---------------------------------------------------------------------------
# Record Store — both collections behind one handle
# ---------------------------------------------------------------------------


class RecordStore:
    """Owns the Mongo client and exposes one CollectionStore per record type."""

    def __init__(
        self,
        client: Any,
        database_name: str,
        agents_collection: str = "agents",
        users_collection: str = "users",
    ) -> None:
        self._client = client
        database = client[database_name]

        self.agents = MongoCollectionStore(
            database[agents_collection],
            id_field="agentId",
            unique_fields=("email", "mobileNumber"),
            conflict_messages=AGENT_CONFLICT_MESSAGES,
            accept_object_id=True,
            label="Agent",
        )
        self.users = MongoCollectionStore(
            database[users_collection],
            id_field="userId",
            unique_fields=("email", "officialEmail"),
            conflict_messages=USER_CONFLICT_MESSAGES,
            label="User",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> RecordStore:
        client = AsyncMongoClient(settings.mongo_uri)
        return cls(
            client,
            settings.mongo_db_name,
            agents_collection=settings.agents_collection,
            users_collection=settings.users_collection,
        )

    async def ensure_indexes(self) -> None:
        await self.agents.ensure_indexes()
        await self.users.ensure_indexes()
        logger.info("Record store indexes ensured")

    async def close(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _to_record(document: Record | None) -> Record | None:
    """Replace the BSON `_id` with a string `id`."""
    if document is None:
        return None
    record = dict(document)
    object_id = record.pop("_id", None)
    if object_id is not None:
        record["id"] = str(object_id)
    return record
