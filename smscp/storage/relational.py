"""
Relational Backend.

Storage contract on SQLAlchemy's asyncio extension. Runs on PostgreSQL
(asyncpg) in production and SQLite (aiosqlite) in tests. Every primitive
runs in its own session and transaction.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from smscp.core.exceptions import ConflictError, DatabaseError
from smscp.core.security import PasswordHasher, TokenService
from smscp.core.utils import utc_now
from smscp.models.base import Base
from smscp.models.note import NoteRow
from smscp.models.user import UserRow
from smscp.schemas.note import Note
from smscp.schemas.user import User
from smscp.storage.base import StorageBackend

T = TypeVar("T")


class RelationalBackend(StorageBackend):
    """
    SQLAlchemy implementation of the storage contract.

    Args:
        engine: Async engine; the backend owns it and disposes it on close().
    """

    name = "relational"

    def __init__(
        self,
        engine: AsyncEngine,
        hasher: PasswordHasher,
        tokens: TokenService,
        migration_key: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(hasher, tokens, migration_key, clock)
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def _execute_db_operation(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """
        Run work in a transaction, converting SQLAlchemy exceptions.

        Raises:
            ConflictError: For unique constraint violations
            DatabaseError: For other database errors
        """
        try:
            async with self._session() as session:
                return await work(session)
        except IntegrityError as e:
            self._logger.warning(
                "Database integrity error",
                extra={"operation": operation, "error": str(e.orig)},
            )
            error_str = str(e).lower()
            if "unique" in error_str or "duplicate" in error_str:
                raise ConflictError("Username or phone number already in use") from e
            raise DatabaseError(f"Database constraint violation: {operation}") from e
        except SQLAlchemyError as e:
            self._logger.error(
                "Database error",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(f"Database operation failed: {operation}") from e

    # =========================================================================
    # Primitives
    # =========================================================================

    async def _insert_user(self, username: str, password_hash: str, phone: str) -> User:
        async def work(session: AsyncSession) -> User:
            now = self._clock()
            row = UserRow(
                username=username,
                password_hash=password_hash,
                phone=phone,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            return User.model_validate(row)

        return await self._execute_db_operation("insert_user", work)

    async def _find_user(self, field: str, value: Any) -> User | None:
        async def work(session: AsyncSession) -> User | None:
            result = await session.execute(
                select(UserRow).where(getattr(UserRow, field) == value)
            )
            row = result.scalar_one_or_none()
            return User.model_validate(row) if row is not None else None

        return await self._execute_db_operation("find_user", work)

    async def _update_user(self, user_id: int, changes: dict[str, str]) -> bool:
        async def work(session: AsyncSession) -> bool:
            result = await session.execute(
                update(UserRow)
                .where(UserRow.id == user_id)
                .values(**changes, updated_at=self._clock())
            )
            return result.rowcount > 0

        return await self._execute_db_operation("update_user", work)

    async def _delete_user(self, user_id: int) -> bool:
        async def work(session: AsyncSession) -> bool:
            result = await session.execute(delete(UserRow).where(UserRow.id == user_id))
            return result.rowcount > 0

        return await self._execute_db_operation("delete_user", work)

    async def _insert_note(self, user_id: int, text: str, created_at: datetime) -> Note:
        async def work(session: AsyncSession) -> Note:
            row = NoteRow(
                user_id=user_id,
                text=text,
                created_at=created_at,
                updated_at=created_at,
            )
            session.add(row)
            await session.flush()
            return Note.model_validate(row)

        return await self._execute_db_operation("insert_note", work)

    async def _note_window(self, user_id: int, offset: int, limit: int) -> list[Note]:
        async def work(session: AsyncSession) -> list[Note]:
            result = await session.execute(
                select(NoteRow)
                .where(NoteRow.user_id == user_id)
                .order_by(NoteRow.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [Note.model_validate(row) for row in result.scalars().all()]

        return await self._execute_db_operation("note_window", work)

    async def _first_note(self, user_id: int, since: datetime | None) -> Note | None:
        async def work(session: AsyncSession) -> Note | None:
            query = select(NoteRow).where(NoteRow.user_id == user_id)
            if since is not None:
                query = query.where(NoteRow.created_at >= since)
            result = await session.execute(
                query.order_by(NoteRow.created_at.asc(), NoteRow.id.asc()).limit(1)
            )
            row = result.scalars().first()
            return Note.model_validate(row) if row is not None else None

        return await self._execute_db_operation("first_note", work)

    async def _all_notes(self, user_id: int) -> list[Note]:
        async def work(session: AsyncSession) -> list[Note]:
            result = await session.execute(
                select(NoteRow)
                .where(NoteRow.user_id == user_id)
                .order_by(NoteRow.id.asc())
            )
            return [Note.model_validate(row) for row in result.scalars().all()]

        return await self._execute_db_operation("all_notes", work)

    async def _delete_notes(self, user_id: int) -> int:
        async def work(session: AsyncSession) -> int:
            result = await session.execute(delete(NoteRow).where(NoteRow.user_id == user_id))
            return result.rowcount

        return await self._execute_db_operation("delete_notes", work)

    async def _provision(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            self._logger.error("Schema provisioning failed", extra={"error": str(e)})
            raise DatabaseError("Database operation failed: provision") from e

    async def close(self) -> None:
        await self.engine.dispose()
