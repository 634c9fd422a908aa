"""
Database Connections.

Factories for the SQLAlchemy async engine and the Motor client, built
from validated config values. Connection pools and timeouts live here;
the storage backends never read configuration themselves.
"""

from motor.motor_asyncio import AsyncIOMotorClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from smscp.core.config_schema import DocumentSchema, RelationalSchema
from smscp.core.logging import get_logger

logger = get_logger(__name__)


def create_engine(url: str, db_config: RelationalSchema) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine.

    Pool settings are skipped for SQLite, whose async driver does not
    use a queue pool.

    Args:
        url: Database URL (see smscp.core.config.get_database_url)
        db_config: Validated relational settings from database.yaml

    Returns:
        SQLAlchemy async engine instance
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=db_config.echo)
    else:
        engine = create_async_engine(
            url,
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_recycle=db_config.pool_recycle,
            pool_pre_ping=True,
            echo=db_config.echo,
        )
    logger.debug("Database engine created", extra={"host": db_config.host, "driver": db_config.driver})
    return engine


def create_mongo_client(url: str, doc_config: DocumentSchema) -> AsyncIOMotorClient:
    """
    Create the Motor client.

    Args:
        url: MongoDB URL (see smscp.core.config.get_mongo_url)
        doc_config: Validated document settings from database.yaml

    Returns:
        Motor client instance
    """
    client = AsyncIOMotorClient(
        url,
        serverSelectionTimeoutMS=doc_config.server_selection_timeout_ms,
        tz_aware=False,
    )
    logger.debug("Mongo client created", extra={"host": doc_config.host})
    return client
