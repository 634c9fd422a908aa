"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in application code.

Each top-level class corresponds to one file in config/settings/:
    ApplicationSchema  → application.yaml
    DatabaseSchema     → database.yaml
    LoggingSchema      → logging.yaml
    SecuritySchema     → security.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class NotesSchema(_StrictBase):
    page_size: int = Field(gt=0)
    recent_window_seconds: int = Field(gt=0)


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    environment: str
    base_url: str
    notes: NotesSchema


# =============================================================================
# database.yaml
# =============================================================================


class RelationalSchema(_StrictBase):
    driver: str
    host: str
    port: int
    name: str
    user: str
    pool_size: int
    max_overflow: int
    pool_timeout: int
    pool_recycle: int
    echo: bool


class DocumentSchema(_StrictBase):
    host: str
    port: int
    name: str
    user: str
    collection_prefix: str
    server_selection_timeout_ms: int


class DatabaseSchema(_StrictBase):
    backend: Literal["relational", "document"]
    relational: RelationalSchema
    document: DocumentSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: str
    format: str
    handlers: HandlersSchema


# =============================================================================
# security.yaml
# =============================================================================


class JwtSchema(_StrictBase):
    algorithm: str
    audience: str


class PasswordSchema(_StrictBase):
    bcrypt_rounds: int = Field(ge=4, le=31)


class SecuritySchema(_StrictBase):
    jwt: JwtSchema
    password: PasswordSchema
