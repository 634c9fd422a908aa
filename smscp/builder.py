"""
Composition Root.

Reads configuration once and wires the hasher, token service, storage
backend and account service together. Nothing below this module reads
settings or the environment.

Usage:
    from smscp.builder import build_account_service

    service = build_account_service()
    try:
        user = await service.login("alice", "pw123")
    finally:
        await service.storage.close()
"""

from datetime import timedelta

from smscp.core.config import (
    AppConfig,
    Settings,
    get_app_config,
    get_database_url,
    get_mongo_url,
    get_settings,
)
from smscp.core.database import create_engine, create_mongo_client
from smscp.core.logging import get_logger
from smscp.core.security import PasswordHasher, TokenService
from smscp.services.account import AccountService
from smscp.services.interfaces import NotificationSender
from smscp.services.notifications import LogNotificationSender
from smscp.storage.base import StorageBackend
from smscp.storage.document import DocumentBackend
from smscp.storage.relational import RelationalBackend

logger = get_logger(__name__)


def build_hasher(config: AppConfig) -> PasswordHasher:
    return PasswordHasher(rounds=config.security.password.bcrypt_rounds)


def build_tokens(config: AppConfig, settings: Settings) -> TokenService:
    jwt_config = config.security.jwt
    return TokenService(
        settings.jwt_secret.get_secret_value(),
        algorithm=jwt_config.algorithm,
        audience=jwt_config.audience,
    )


def build_storage(
    config: AppConfig,
    settings: Settings,
    hasher: PasswordHasher,
    tokens: TokenService,
) -> StorageBackend:
    """Create the backend selected by database.yaml."""
    db = config.database
    if db.backend == "document":
        client = create_mongo_client(get_mongo_url(), db.document)
        storage: StorageBackend = DocumentBackend(
            client,
            db.document.name,
            hasher=hasher,
            tokens=tokens,
            migration_key=settings.migration_key.get_secret_value(),
            collection_prefix=db.document.collection_prefix,
        )
    else:
        engine = create_engine(get_database_url(), db.relational)
        storage = RelationalBackend(
            engine,
            hasher=hasher,
            tokens=tokens,
            migration_key=settings.migration_key.get_secret_value(),
        )
    logger.debug("Storage backend selected", extra={"backend": storage.name})
    return storage


def build_account_service(notifier: NotificationSender | None = None) -> AccountService:
    """
    Build a fully wired AccountService from project configuration.

    Args:
        notifier: Outbound sender; defaults to logging messages only

    Returns:
        AccountService whose storage the caller must close
    """
    config = get_app_config()
    settings = get_settings()
    hasher = build_hasher(config)
    tokens = build_tokens(config, settings)
    storage = build_storage(config, settings, hasher, tokens)
    notes = config.application.notes
    return AccountService(
        storage,
        hasher,
        tokens,
        notifier or LogNotificationSender(),
        base_url=config.application.base_url,
        page_size=notes.page_size,
        recent_window=timedelta(seconds=notes.recent_window_seconds),
    )
