"""
Logging Setup.

One structlog pipeline over stdlib logging for the whole package; call
setup_logging() once at an entry point and get_logger(__name__) elsewhere.
Settings come from config/settings/logging.yaml, arguments override them.

Records carry: timestamp, level, logger, event, func_name, lineno and,
when set through log_with_source(), a source (cli, sms, api, internal).

Secrets never reach a handler. The redact_secrets processor masks values
under sensitive keys (password, password_hash, token, secret, key) and
any string that looks like a signed claim token, wherever it appears in
the event, including inside the `extra` mapping.

Usage:
    from smscp.core.logging import get_logger, setup_logging

    setup_logging(level="DEBUG", format_type="console")
    logger = get_logger(__name__)
    logger.info("Note created", extra={"note_id": 12})
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, Processor

from smscp.core.config import find_project_root, load_yaml_config

VALID_SOURCES = frozenset({"cli", "sms", "api", "internal", "unknown"})

REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({
    "password",
    "password_hash",
    "verify",
    "token",
    "reset_token",
    "secret",
    "jwt_secret",
    "key",
    "migration_key",
})

# three base64url segments, the shape of a JWT
_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}")

_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio", "pymongo")

_logging_config: dict[str, Any] | None = None


def _load_logging_config() -> dict[str, Any]:
    """Read logging.yaml once; FileNotFoundError if it is missing."""
    global _logging_config
    if _logging_config is None:
        _logging_config = load_yaml_config("logging.yaml")
    return _logging_config


def _resolve_log_path(configured_path: str) -> Path:
    return find_project_root() / configured_path


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _TOKEN_PATTERN.sub(REDACTED, value)
    if isinstance(value, dict):
        return {
            k: REDACTED if k in SENSITIVE_KEYS else _scrub(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Structlog processor masking passwords, keys and claim tokens."""
    return _scrub(event_dict)


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        redact_secrets,
    ]


def _file_handler(file_config: dict[str, Any], formatter: logging.Formatter) -> logging.Handler:
    log_path = _resolve_log_path(file_config["path"])
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=file_config["max_bytes"],
        backupCount=file_config["backup_count"],
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
) -> None:
    """
    Configure structlog and the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_type: 'json' or 'console' for the console handler; the file
            handler always writes JSON lines
        enable_console: Log to stderr
        enable_file_logging: Log to the rotating JSONL file in logging.yaml
    """
    config = _load_logging_config()
    handlers = config["handlers"]

    log_level = getattr(logging, (level or config["level"]).upper())
    console_format = format_type or config["format"]
    console_enabled = handlers["console"]["enabled"] if enable_console is None else enable_console
    file_enabled = handlers["file"]["enabled"] if enable_file_logging is None else enable_file_logging

    shared = _shared_processors()
    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared,
    )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(log_level)

    # stderr keeps CLI output on stdout clean
    if console_enabled:
        console = logging.StreamHandler(sys.stderr)
        if console_format == "console":
            console.setFormatter(structlog.stdlib.ProcessorFormatter(
                processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
                foreign_pre_chain=shared,
            ))
        else:
            console.setFormatter(json_formatter)
        root.addHandler(console)

    if file_enabled:
        root.addHandler(_file_handler(handlers["file"], json_formatter))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> Any:
    """Return the structlog logger for a module (pass __name__)."""
    return structlog.get_logger(name)


def log_with_source(logger: Any, source: str, level: str, message: str, **kwargs: Any) -> None:
    """
    Log a message tagged with the context it came from.

    Sources outside VALID_SOURCES are recorded as "unknown".

    Raises:
        AttributeError: If level is not a valid log level

    Example:
        log_with_source(logger, "sms", "info", "Inbound message", origin_suffix="4567")
    """
    log_method = getattr(logger, level.lower())
    log_method(message, source=source if source in VALID_SOURCES else "unknown", **kwargs)
