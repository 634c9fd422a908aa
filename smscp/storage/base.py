"""
Storage Contract.

Base class for persistence backends. The public coroutines here are the
contract every backend satisfies identically; subclasses only implement
the primitive reads and writes (equality and range filters, ordering,
offset/limit), so no operation depends on a backend-specific feature.

Usage:
    class SomeBackend(StorageBackend):
        async def _insert_user(self, username, password_hash, phone) -> User: ...
        ...

    backend = SomeBackend(hasher=hasher, tokens=tokens, migration_key=key)
    await backend.migrate(key)
    user = await backend.user_create("alice", hasher.hash("pw123"), "+15551234567")
"""

import asyncio
import hmac
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from smscp.core.exceptions import (
    AuthenticationError,
    DatabaseError,
    NotFoundError,
    PartialDeletionError,
    ValidationError,
)
from smscp.core.logging import get_logger
from smscp.core.security import PasswordHasher, TokenService
from smscp.core.utils import truncate_to_millis, utc_now
from smscp.schemas.note import Note, NotePage
from smscp.schemas.user import User

logger = get_logger(__name__)

USER_LOOKUP_FIELDS = frozenset({"id", "username", "phone"})


class StorageBackend(ABC):
    """
    Backend-agnostic storage contract.

    Entities returned from every public method are value copies carrying a
    freshly minted claim token. Tokens are never stored.
    """

    name: str = "abstract"

    def __init__(
        self,
        hasher: PasswordHasher,
        tokens: TokenService,
        migration_key: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.hasher = hasher
        self.tokens = tokens
        self._migration_key = migration_key
        self._clock = clock
        self._logger = get_logger(self.__class__.__module__)

    # =========================================================================
    # Users
    # =========================================================================

    async def user_create(self, username: str, password_hash: str, phone: str) -> User:
        """
        Persist a new user.

        Raises:
            ConflictError: If the username or phone number is taken
        """
        user = await self._insert_user(username, password_hash, phone)
        self._logger.info("User created", extra={"backend": self.name, "user_id": user.id})
        return self._user_with_token(user)

    async def user_by_token(self, token: str) -> User:
        """
        Resolve a user claim token against storage.

        Raises:
            InvalidTokenError: If the token is bad or does not name a user
            NotFoundError: If the named user no longer exists
        """
        return await self.user_by_id(self.tokens.user_id_from(token))

    async def user_by_id(self, user_id: int) -> User:
        """Exact-match lookup by storage identity."""
        return await self._require_user("id", user_id)

    async def user_by_phone(self, phone: str) -> User:
        """Exact-match lookup by phone number."""
        return await self._require_user("phone", phone)

    async def user_by_username(self, username: str) -> User:
        """Exact-match lookup by username."""
        return await self._require_user("username", username)

    async def user_login(self, username: str, plaintext: str) -> User:
        """
        Load a user by username and check the password.

        Raises:
            NotFoundError: If the username does not exist
            AuthenticationError: If the password does not match
        """
        user = await self._require_user("username", username)
        try:
            await asyncio.to_thread(self.hasher.compare, plaintext, user.password_hash)
        except AuthenticationError:
            self._logger.info("Login rejected", extra={"backend": self.name, "user_id": user.id})
            raise AuthenticationError("Failed to log in; password did not match")
        return user

    async def user_update(
        self,
        user: User,
        username: str | None = None,
        phone: str | None = None,
        password_hash: str | None = None,
    ) -> User:
        """
        Persist changed account fields in place.

        Raises:
            ConflictError: If the new username or phone number is taken
            NotFoundError: If the user row no longer exists
        """
        changes = {
            key: value
            for key, value in (
                ("username", username),
                ("phone", phone),
                ("password_hash", password_hash),
            )
            if value is not None
        }
        if changes:
            updated = await self._update_user(user.id, changes)
            if not updated:
                raise NotFoundError("User not found")
            self._logger.info(
                "User updated",
                extra={"backend": self.name, "user_id": user.id, "fields": sorted(changes)},
            )
        return await self._require_user("id", user.id)

    async def user_delete(self, user: User) -> None:
        """
        Delete all of a user's notes, then the user.

        The two phases are not one transaction. If the first fails the user
        is untouched; if the second fails the notes are already gone.

        Raises:
            DatabaseError: If deleting the notes fails
            PartialDeletionError: If the notes were deleted but the user was not
            NotFoundError: If the user row does not exist
        """
        try:
            removed = await self._delete_notes(user.id)
        except DatabaseError as e:
            self._logger.error(
                "Account deletion failed before any data was removed",
                extra={"backend": self.name, "user_id": user.id, "error": e.message},
            )
            raise DatabaseError("Failed to delete any data") from e

        try:
            deleted = await self._delete_user(user.id)
        except DatabaseError as e:
            self._logger.error(
                "Notes deleted but user deletion failed",
                extra={
                    "backend": self.name,
                    "user_id": user.id,
                    "notes_deleted": removed,
                    "error": e.message,
                },
            )
            raise PartialDeletionError(
                "Deleted notes successfully but failed to delete user",
                user_id=user.id,
                notes_deleted=removed,
            ) from e

        if not deleted:
            raise NotFoundError("User not found")
        self._logger.info(
            "User deleted",
            extra={"backend": self.name, "user_id": user.id, "notes_deleted": removed},
        )

    async def user_all_notes(self, user: User) -> list[Note]:
        """All of a user's notes oldest first, each with a fresh note token."""
        notes = await self._all_notes(user.id)
        return [self._note_with_token(note) for note in notes]

    # =========================================================================
    # Notes
    # =========================================================================

    async def note_create(self, user: User, text: str) -> Note:
        """Persist a note owned by user, stamped with the storage clock to the millisecond."""
        created_at = truncate_to_millis(self._clock())
        note = await self._insert_note(user.id, text, created_at)
        self._logger.debug("Note created", extra={"backend": self.name, "note_id": note.id})
        return self._note_with_token(note)

    async def note_list_page(self, user: User, page: int, page_size: int) -> NotePage:
        """
        Return one page of notes, newest first.

        Reads page_size + 1 rows so that the presence of a following page
        is known without a separate count query.

        Raises:
            ValidationError: If page is negative or page_size is not positive
        """
        if page < 0 or page_size < 1:
            raise ValidationError(
                "Invalid page request",
                details={"page": page, "page_size": page_size},
            )
        notes = await self._note_window(user.id, offset=page * page_size, limit=page_size + 1)
        has_more = len(notes) > page_size
        if has_more:
            notes = notes[:page_size]
        return NotePage(notes=notes, has_more=has_more)

    async def note_latest(self, user: User) -> Note | None:
        """
        Return the earliest-created note in the user's whole history.

        The name is historical: the ordering is ascending creation time.
        No note is not an error.
        """
        return await self._first_note(user.id, since=None)

    async def note_latest_within(self, user: User, window: timedelta) -> Note | None:
        """Same ordering as note_latest, limited to notes created within window of now."""
        since = truncate_to_millis(self._clock() - window)
        return await self._first_note(user.id, since=since)

    # =========================================================================
    # Schema
    # =========================================================================

    async def migrate(self, key: str) -> None:
        """
        Provision tables or collections if key matches the migration key.

        Safe to run repeatedly.

        Raises:
            AuthenticationError: If key does not match; storage is not touched
        """
        if not hmac.compare_digest(key.encode("utf-8"), self._migration_key.encode("utf-8")):
            self._logger.warning("Migration refused", extra={"backend": self.name})
            raise AuthenticationError("Invalid migration key")
        await self._provision()
        self._logger.info("Migration applied", extra={"backend": self.name})

    @abstractmethod
    async def close(self) -> None:
        """Release connection pools."""

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_user(self, field: str, value: Any) -> User:
        if field not in USER_LOOKUP_FIELDS:
            raise ValueError(f"Unsupported user lookup field: {field}")
        user = await self._find_user(field, value)
        if user is None:
            raise NotFoundError("User not found")
        return self._user_with_token(user)

    def _user_with_token(self, user: User) -> User:
        token = self.tokens.issue(self.tokens.user_claims(user.id))
        return user.model_copy(update={"token": token})

    def _note_with_token(self, note: Note) -> Note:
        token = self.tokens.issue(self.tokens.note_claims(note.id))
        return note.model_copy(update={"token": token})

    # =========================================================================
    # Primitives
    # =========================================================================

    @abstractmethod
    async def _insert_user(self, username: str, password_hash: str, phone: str) -> User:
        """Insert a user row; raise ConflictError on a uniqueness violation."""

    @abstractmethod
    async def _find_user(self, field: str, value: Any) -> User | None:
        """Return the user whose field equals value, or None."""

    @abstractmethod
    async def _update_user(self, user_id: int, changes: dict[str, str]) -> bool:
        """Apply changes to a user row; False if no such row."""

    @abstractmethod
    async def _delete_user(self, user_id: int) -> bool:
        """Hard-delete a user row; False if no such row."""

    @abstractmethod
    async def _insert_note(self, user_id: int, text: str, created_at: datetime) -> Note:
        """Insert a note row."""

    @abstractmethod
    async def _note_window(self, user_id: int, offset: int, limit: int) -> list[Note]:
        """Notes for user ordered by descending id, after skipping offset rows."""

    @abstractmethod
    async def _first_note(self, user_id: int, since: datetime | None) -> Note | None:
        """Earliest note by (created_at, id), optionally created at or after since."""

    @abstractmethod
    async def _all_notes(self, user_id: int) -> list[Note]:
        """All notes for user ordered by ascending id."""

    @abstractmethod
    async def _delete_notes(self, user_id: int) -> int:
        """Hard-delete all notes for user; return how many were removed."""

    @abstractmethod
    async def _provision(self) -> None:
        """Create tables, indexes or collections idempotently."""
