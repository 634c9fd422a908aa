"""
Document Backend.

Storage contract on MongoDB through Motor. Users and notes are plain
documents keyed by integer ids drawn from a counters collection, so the
ids callers see have the same shape as the relational backend's.

Collections (optionally prefixed, e.g. "test_users"):
    users     - {_id, username, phone, password_hash, created_at, updated_at}
    notes     - {_id, user_id, text, created_at}
    counters  - {_id: <collection name>, seq}
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from smscp.core.exceptions import ConflictError, DatabaseError
from smscp.core.security import PasswordHasher, TokenService
from smscp.core.utils import utc_now
from smscp.schemas.note import Note
from smscp.schemas.user import User
from smscp.storage.base import StorageBackend

T = TypeVar("T")

_USER_FIELDS = {"id": "_id", "username": "username", "phone": "phone"}


class DocumentBackend(StorageBackend):
    """
    MongoDB implementation of the storage contract.

    Args:
        client: Motor client; the backend owns it and closes it on close().
        db_name: Name of the MongoDB database to use.
        collection_prefix: Prepended to every collection name.

    Example:
        .. code-block:: python

            backend = DocumentBackend(
                AsyncIOMotorClient("mongodb://localhost:27017"),
                "smscp",
                hasher=hasher,
                tokens=tokens,
                migration_key=key,
            )
            await backend.migrate(key)
    """

    name = "document"

    def __init__(
        self,
        client: AsyncIOMotorClient,
        db_name: str,
        hasher: PasswordHasher,
        tokens: TokenService,
        migration_key: str,
        collection_prefix: str = "",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(hasher, tokens, migration_key, clock)
        self.client = client
        self.db = client[db_name]
        self.users: AsyncIOMotorCollection = self.db[f"{collection_prefix}users"]
        self.notes: AsyncIOMotorCollection = self.db[f"{collection_prefix}notes"]
        self.counters: AsyncIOMotorCollection = self.db[f"{collection_prefix}counters"]

    async def _execute_db_operation(self, operation: str, coro: Awaitable[T]) -> T:
        """
        Await a Motor operation, converting PyMongo exceptions.

        Raises:
            ConflictError: For unique index violations
            DatabaseError: For other database errors
        """
        try:
            return await coro
        except DuplicateKeyError as e:
            self._logger.warning(
                "Duplicate key",
                extra={"operation": operation, "error": str(e)},
            )
            raise ConflictError("Username or phone number already in use") from e
        except PyMongoError as e:
            self._logger.error(
                "Database error",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(f"Database operation failed: {operation}") from e

    async def _next_id(self, sequence: str) -> int:
        counter = await self._execute_db_operation(
            "next_id",
            self.counters.find_one_and_update(
                {"_id": sequence},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            ),
        )
        return int(counter["seq"])

    @staticmethod
    def _to_user(doc: dict[str, Any]) -> User:
        return User(
            id=doc["_id"],
            username=doc["username"],
            phone=doc["phone"],
            password_hash=doc["password_hash"],
        )

    @staticmethod
    def _to_note(doc: dict[str, Any]) -> Note:
        return Note(
            id=doc["_id"],
            user_id=doc["user_id"],
            text=doc["text"],
            created_at=doc["created_at"],
        )

    # =========================================================================
    # Primitives
    # =========================================================================

    async def _insert_user(self, username: str, password_hash: str, phone: str) -> User:
        now = self._clock()
        doc = {
            "_id": await self._next_id("users"),
            "username": username,
            "phone": phone,
            "password_hash": password_hash,
            "created_at": now,
            "updated_at": now,
        }
        await self._execute_db_operation("insert_user", self.users.insert_one(doc))
        return self._to_user(doc)

    async def _find_user(self, field: str, value: Any) -> User | None:
        doc = await self._execute_db_operation(
            "find_user",
            self.users.find_one({_USER_FIELDS[field]: value}),
        )
        return self._to_user(doc) if doc is not None else None

    async def _update_user(self, user_id: int, changes: dict[str, str]) -> bool:
        result = await self._execute_db_operation(
            "update_user",
            self.users.update_one(
                {"_id": user_id},
                {"$set": {**changes, "updated_at": self._clock()}},
            ),
        )
        return result.matched_count > 0

    async def _delete_user(self, user_id: int) -> bool:
        result = await self._execute_db_operation(
            "delete_user",
            self.users.delete_one({"_id": user_id}),
        )
        return result.deleted_count > 0

    async def _insert_note(self, user_id: int, text: str, created_at: datetime) -> Note:
        doc = {
            "_id": await self._next_id("notes"),
            "user_id": user_id,
            "text": text,
            "created_at": created_at,
        }
        await self._execute_db_operation("insert_note", self.notes.insert_one(doc))
        return self._to_note(doc)

    async def _note_window(self, user_id: int, offset: int, limit: int) -> list[Note]:
        cursor = (
            self.notes.find({"user_id": user_id})
            .sort("_id", DESCENDING)
            .skip(offset)
            .limit(limit)
        )
        docs = await self._execute_db_operation("note_window", cursor.to_list(length=limit))
        return [self._to_note(doc) for doc in docs]

    async def _first_note(self, user_id: int, since: datetime | None) -> Note | None:
        query: dict[str, Any] = {"user_id": user_id}
        if since is not None:
            query["created_at"] = {"$gte": since}
        cursor = (
            self.notes.find(query)
            .sort([("created_at", ASCENDING), ("_id", ASCENDING)])
            .limit(1)
        )
        docs = await self._execute_db_operation("first_note", cursor.to_list(length=1))
        return self._to_note(docs[0]) if docs else None

    async def _all_notes(self, user_id: int) -> list[Note]:
        cursor = self.notes.find({"user_id": user_id}).sort("_id", ASCENDING)
        docs = await self._execute_db_operation("all_notes", cursor.to_list(length=None))
        return [self._to_note(doc) for doc in docs]

    async def _delete_notes(self, user_id: int) -> int:
        result = await self._execute_db_operation(
            "delete_notes",
            self.notes.delete_many({"user_id": user_id}),
        )
        return result.deleted_count

    async def _provision(self) -> None:
        await self._execute_db_operation(
            "provision",
            self.users.create_index([("username", ASCENDING)], unique=True, name="uniq_username"),
        )
        await self._execute_db_operation(
            "provision",
            self.users.create_index([("phone", ASCENDING)], unique=True, name="uniq_phone"),
        )
        await self._execute_db_operation(
            "provision",
            self.notes.create_index(
                [("user_id", ASCENDING), ("_id", ASCENDING)],
                name="user_notes",
            ),
        )
        await self._execute_db_operation(
            "provision",
            self.notes.create_index(
                [("user_id", ASCENDING), ("created_at", ASCENDING)],
                name="user_notes_by_time",
            ),
        )

    async def close(self) -> None:
        self.client.close()
