"""Logging configuration using structlog.

Every entry carries whatever request or run context is bound through
``bound_context``; credential-looking keys are masked before rendering.
"""

import logging
import sys
from pathlib import Path
from typing import Any, MutableMapping

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars

from vpsdeploy.config import settings

REDACTED = "***"

SECRET_KEYS = frozenset(
    {
        "password",
        "passphrase",
        "private_key",
        "token",
        "authorization",
        "admin_token",
        "ssh_password",
        "ssh_private_key",
        "database_url",
        "supabase_service_key",
        "coolify_api_token",
    }
)


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask values whose key names a credential."""
    for key in event_dict:
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _log_file() -> Path:
    log_dir = Path(settings.log_directory)
    if not log_dir.is_absolute():
        log_dir = Path(__file__).resolve().parents[2] / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / settings.log_file_name


def configure_logging() -> None:
    """Route structlog through stdlib logging to stdout and the log file."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level),
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(_log_file(), encoding="utf-8"),
        ],
    )
    # paramiko logs every channel at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    processors: list[Any] = [
        merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bound_context(**values: Any):
    """Attach ``values`` to every entry logged inside the block.

    Tasks started inside the block inherit the context.
    """
    return bound_contextvars(**values)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
