"""
Account Service.

Business logic for accounts and notes. Composes the password hasher,
the claim token service and a storage backend into the operations the
outer surfaces (CLI, web handlers, SMS webhook) call.

Every operation that starts from a caller token re-resolves that token
against storage; holding a token for a deleted user gets NotFoundError.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from smscp.core.exceptions import ApplicationError, UpstreamError
from smscp.core.security import PasswordHasher, TokenService
from smscp.core.utils import utc_now
from smscp.schemas.note import Dashboard, Note, NotePage
from smscp.schemas.user import User
from smscp.services.base import BaseService
from smscp.services.interfaces import ExportFormatter, NotificationSender
from smscp.storage.base import StorageBackend

DEFAULT_PAGE_SIZE = 20
DEFAULT_RECENT_WINDOW = timedelta(minutes=5)


class AccountService(BaseService):
    """
    Service for account and note business logic.

    Args:
        storage: Backend implementing the storage contract
        hasher: Password hasher
        tokens: Claim token service
        notifier: Outbound message sender (SMS in production)
        base_url: Public URL prefix used in password reset links
        page_size: Notes per listing page
        recent_window: Default window for recent_note()
    """

    def __init__(
        self,
        storage: StorageBackend,
        hasher: PasswordHasher,
        tokens: TokenService,
        notifier: NotificationSender,
        base_url: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        recent_window: timedelta = DEFAULT_RECENT_WINDOW,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(storage)
        self.hasher = hasher
        self.tokens = tokens
        self.notifier = notifier
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.recent_window = recent_window
        self._clock = clock

    # =========================================================================
    # Accounts
    # =========================================================================

    async def login(self, username: str, password: str) -> User:
        """
        Check credentials and return the user with a fresh token.

        Raises:
            NotFoundError: If the username does not exist
            AuthenticationError: If the password does not match
        """
        self._log_debug("Login attempt", username=username)
        return await self._execute_operation(
            "login",
            self.storage.user_login(username, password),
        )

    async def create_account(self, username: str, password: str, verify: str, phone: str) -> User:
        """
        Register a new user.

        Raises:
            ValidationError: If fields are empty or the passwords differ
            UpstreamError: If the password cannot be hashed
            ConflictError: If the username or phone number is taken
        """
        async def run() -> User:
            self._validate_required({"username": username, "phone": phone}, ["username", "phone"])
            self._validate_new_password(password, verify, required=True)
            password_hash = await self._hash(password)
            return await self.storage.user_create(username, password_hash, phone)

        user = await self._execute_operation("create_account", run())
        self._log_operation("Account created", user_id=user.id)
        return user

    async def current_user(self, token: str) -> User:
        """Resolve a caller's user token."""
        return await self._execute_operation("current_user", self.storage.user_by_token(token))

    async def update_account(
        self,
        token: str,
        username: str | None = None,
        password: str | None = None,
        verify: str | None = None,
        phone: str | None = None,
    ) -> User:
        """
        Change any of username, password and phone.

        Empty values leave a field unchanged. The returned user carries a
        fresh token so the caller's session keeps resolving.

        Raises:
            ValidationError: If password and verify differ
            ConflictError: If the new username or phone number is taken
        """
        async def run() -> User:
            self._validate_new_password(password, verify, required=False)
            user = await self.storage.user_by_token(token)
            password_hash = await self._hash(password) if password else None
            return await self.storage.user_update(
                user,
                username=username or None,
                phone=phone or None,
                password_hash=password_hash,
            )

        user = await self._execute_operation("update_account", run())
        self._log_operation("Account updated", user_id=user.id)
        return user

    async def forgot_password(self, username: str) -> None:
        """
        Send a password reset link to the user's phone.

        The reset token names the user and the time it was issued. It has
        no enforced expiry and is not single-use.
        """
        async def run() -> None:
            user = await self.storage.user_by_username(username)
            issued_at = int(self._clock().replace(tzinfo=timezone.utc).timestamp())
            token = self.tokens.issue(self.tokens.reset_claims(user.id, issued_at))
            await self._notify(user.phone, f"Reset your password: {self.base_url}/reset/{token}")
            self._log_operation("Password reset requested", user_id=user.id)

        await self._execute_operation("forgot_password", run())

    async def reset_password(self, reset_token: str, password: str, verify: str) -> User:
        """
        Redeem a reset token, setting a new password.

        Raises:
            InvalidTokenError: If the token is not a valid reset token
            NotFoundError: If the named user no longer exists
            ValidationError: If the new password is empty or unconfirmed
        """
        async def run() -> User:
            self._validate_new_password(password, verify, required=True)
            user_id = self.tokens.reset_user_id_from(reset_token)
            user = await self.storage.user_by_id(user_id)
            password_hash = await self._hash(password)
            return await self.storage.user_update(user, password_hash=password_hash)

        user = await self._execute_operation("reset_password", run())
        self._log_operation("Password reset", user_id=user.id)
        return user

    async def export_data(self, token: str, formatter: ExportFormatter) -> bytes:
        """Render everything stored about the user with formatter."""
        async def run() -> bytes:
            user = await self.storage.user_by_token(token)
            notes = await self.storage.user_all_notes(user)
            self._log_operation("Data exported", user_id=user.id, notes=len(notes))
            return formatter.format(user, notes)

        return await self._execute_operation("export_data", run())

    async def delete_account(self, token: str) -> None:
        """
        Delete the user and all their notes.

        Raises:
            PartialDeletionError: If notes were deleted but the user row remains
        """
        async def run() -> None:
            user = await self.storage.user_by_token(token)
            await self.storage.user_delete(user)
            self._log_operation("Account deleted", user_id=user.id)

        await self._execute_operation("delete_account", run())

    async def migrate(self, key: str) -> None:
        """Provision storage if key is the migration key."""
        await self._execute_operation("migrate", self.storage.migrate(key))

    # =========================================================================
    # Notes
    # =========================================================================

    async def create_note(self, token: str, text: str) -> Note:
        """
        Store a note and echo it to the user's phone.

        The note stays stored if the echo fails.

        Raises:
            UpstreamError: If the echo could not be sent
        """
        async def run() -> Note:
            user = await self.storage.user_by_token(token)
            note = await self.storage.note_create(user, text)
            await self._notify(user.phone, note.text)
            return note

        return await self._execute_operation("create_note", run())

    async def receive_message(self, origin: str, text: str) -> Note:
        """Store an inbound message from origin as a note of the phone's owner."""
        async def run() -> Note:
            user = await self.storage.user_by_phone(origin)
            note = await self.storage.note_create(user, text)
            self._log_debug("Inbound message stored", user_id=user.id, note_id=note.id)
            return note

        return await self._execute_operation("receive_message", run())

    async def list_notes(self, token: str, page: int = 0) -> NotePage:
        """Return page `page` (zero-based) of the user's notes, newest first."""
        async def run() -> NotePage:
            user = await self.storage.user_by_token(token)
            return await self.storage.note_list_page(user, page, self.page_size)

        return await self._execute_operation("list_notes", run())

    async def latest_note(self, token: str) -> Note | None:
        """The user's earliest-created note, or None."""
        async def run() -> Note | None:
            user = await self.storage.user_by_token(token)
            return await self.storage.note_latest(user)

        return await self._execute_operation("latest_note", run())

    async def recent_note(self, token: str, window: timedelta | None = None) -> Note | None:
        """The earliest note created within window (default recent_window), or None."""
        async def run() -> Note | None:
            user = await self.storage.user_by_token(token)
            return await self.storage.note_latest_within(
                user, self.recent_window if window is None else window
            )

        return await self._execute_operation("recent_note", run())

    async def home(self, token: str) -> Dashboard:
        """First page of notes plus the recent-window note."""
        async def run() -> Dashboard:
            user = await self.storage.user_by_token(token)
            page = await self.storage.note_list_page(user, 0, self.page_size)
            recent = await self.storage.note_latest_within(user, self.recent_window)
            return Dashboard(user=user, page=page, recent=recent)

        return await self._execute_operation("home", run())

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hasher.hash, password)

    async def _notify(self, destination: str, text: str) -> None:
        try:
            await self.notifier.send(destination, text)
        except ApplicationError:
            raise
        except Exception as e:
            self._logger.error(
                "Notification failed",
                extra={"service": self.__class__.__name__, "error": str(e)},
            )
            raise UpstreamError("Failed to send message") from e
