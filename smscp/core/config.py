"""
Configuration.

Two sources, both located from the project root (the directory holding a
`.project_root` marker):

    config/.env                secrets: JWT_SECRET, MIGRATION_KEY,
                               DB_PASSWORD, MONGO_PASSWORD
    config/settings/*.yaml     everything else, one schema per file
                               (see smscp.core.config_schema)

Environment variables override .env entries. Secrets are SecretStr so they
stay out of reprs and tracebacks; call get_secret_value() at the point of use.

Only entry points and the composition root (smscp.builder) read
configuration. Everything below receives plain values.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from smscp.core.config_schema import (
    ApplicationSchema,
    DatabaseSchema,
    LoggingSchema,
    SecuritySchema,
)

PROJECT_MARKER = ".project_root"

SETTINGS_FILES: dict[str, type[BaseModel]] = {
    "application": ApplicationSchema,
    "database": DatabaseSchema,
    "logging": LoggingSchema,
    "security": SecuritySchema,
}


def find_project_root() -> Path:
    """Walk up from the working directory to the first .project_root marker."""
    current = Path.cwd()
    for candidate in (current, *current.parents):
        if (candidate / PROJECT_MARKER).exists():
            return candidate
    raise RuntimeError(f"Project root not found. Ensure {PROJECT_MARKER} file exists.")


def validate_project_root() -> Path:
    """find_project_root() for entry points: exits with a message instead of raising."""
    try:
        return find_project_root()
    except RuntimeError as e:
        raise SystemExit(f"Error: {e}") from e


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load config/settings/<filename> as a dict (empty file gives {})."""
    config_path = find_project_root() / "config" / "settings" / filename
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    with open(config_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


class Settings(BaseSettings):
    """Secrets. Nothing here belongs in version control."""

    jwt_secret: SecretStr
    migration_key: SecretStr
    db_password: SecretStr = SecretStr("")
    mongo_password: SecretStr = SecretStr("")

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("jwt_secret", "migration_key")
    @classmethod
    def _not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("must not be empty")
        return value


class AppConfig:
    """
    Validated YAML settings.

    Every file in SETTINGS_FILES is loaded and checked against its schema
    on construction, so a bad file fails at startup with the file named.
    """

    def __init__(self) -> None:
        self._sections: dict[str, Any] = {}
        for section, schema in SETTINGS_FILES.items():
            filename = f"{section}.yaml"
            try:
                self._sections[section] = schema(**load_yaml_config(filename))
            except ValidationError as e:
                raise ValueError(f"Invalid configuration in {filename}:\n{e}") from e

    @property
    def application(self) -> ApplicationSchema:
        return self._sections["application"]

    @property
    def database(self) -> DatabaseSchema:
        return self._sections["database"]

    @property
    def logging(self) -> LoggingSchema:
        return self._sections["logging"]

    @property
    def security(self) -> SecuritySchema:
        return self._sections["security"]


@lru_cache
def get_settings() -> Settings:
    return Settings(_env_file=str(find_project_root() / "config" / ".env"))


@lru_cache
def get_app_config() -> AppConfig:
    return AppConfig()


def get_database_url() -> str:
    """
    Relational connection URL from database.yaml and DB_PASSWORD.

    SQLite drivers treat `name` as a file path relative to the project
    root and take no credentials.
    """
    db = get_app_config().database.relational
    if db.driver.startswith("sqlite"):
        return f"{db.driver}:///{find_project_root() / db.name}"
    password = get_settings().db_password.get_secret_value()
    return f"{db.driver}://{db.user}:{password}@{db.host}:{db.port}/{db.name}"


def get_mongo_url() -> str:
    """MongoDB connection URL from database.yaml and MONGO_PASSWORD."""
    doc = get_app_config().database.document
    if not doc.user:
        return f"mongodb://{doc.host}:{doc.port}/"
    password = get_settings().mongo_password.get_secret_value()
    return f"mongodb://{doc.user}:{password}@{doc.host}:{doc.port}/"
