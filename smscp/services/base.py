"""
Base Service.

Base class for services providing common patterns for business logic.
Services orchestrate the storage backend and security primitives and
implement business rules. They never swallow or reinterpret failures:
an ApplicationError raised underneath is annotated with the operation
that failed, logged, and re-raised unchanged in type.

Usage:
    from smscp.services.base import BaseService

    class AccountService(BaseService):
        async def login(self, username: str, password: str) -> User:
            return await self._execute_operation(
                "login",
                self.storage.user_login(username, password),
            )
"""

from collections.abc import Awaitable
from typing import Any, TypeVar

from smscp.core.exceptions import ApplicationError, ValidationError
from smscp.core.logging import get_logger
from smscp.storage.base import StorageBackend

T = TypeVar("T")


class BaseService:
    """
    Base class for all services.

    Provides:
    - Storage backend access
    - Logging context
    - Failure annotation
    - Common validation patterns
    """

    def __init__(self, storage: StorageBackend) -> None:
        """
        Initialize the service with a storage backend.

        Args:
            storage: Backend implementing the storage contract
        """
        self._storage = storage
        self._logger = get_logger(self.__class__.__module__)

    @property
    def storage(self) -> StorageBackend:
        """Get the storage backend."""
        return self._storage

    async def _execute_operation(self, operation: str, coro: Awaitable[T]) -> T:
        """
        Await coro, annotating any application failure with the operation.

        Args:
            operation: Name of the operation for logging and annotation
            coro: Awaitable to run

        Returns:
            Result of the awaitable
        """
        try:
            return await coro
        except ApplicationError as e:
            if e.operation is None:
                e.operation = operation
            self._logger.info(
                "Operation failed",
                extra={
                    "service": self.__class__.__name__,
                    "operation": operation,
                    "code": e.code,
                    "error": e.message,
                },
            )
            raise

    def _validate_required(
        self,
        fields: dict[str, Any],
        field_names: list[str],
    ) -> None:
        """
        Validate that required fields are present and not empty.

        Raises:
            ValidationError: If any required field is missing or empty
        """
        missing = []
        for name in field_names:
            value = fields.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)

        if missing:
            raise ValidationError(
                "Required fields missing",
                details={"missing_fields": missing},
            )

    def _validate_new_password(self, password: str | None, verify: str | None, required: bool) -> None:
        """
        Check a new password against its confirmation.

        Raises:
            ValidationError: If the two differ, or if required and empty
        """
        if (password or "") != (verify or ""):
            raise ValidationError(
                "Invalid password; passwords do not match",
                details={"verify": "Must equal password"},
            )
        if required and not password:
            raise ValidationError(
                "Invalid password; no password entered",
                details={"password": "Required"},
            )

    def _log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with context."""
        self._logger.info(
            operation,
            extra={"service": self.__class__.__name__, **context},
        )

    def _log_debug(self, message: str, **context: Any) -> None:
        """Log debug information."""
        self._logger.debug(
            message,
            extra={"service": self.__class__.__name__, **context},
        )
