"""Logging configuration for structlog with rolling file handlers.

Provides structured logging with:
- JSON or console rendering through structlog
- Optional rolling file logs for debugging and auditing
- Quiet third-party HTTP loggers
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_LOG_FILE = "mailbridge.log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

# Event keys that must never reach a log sink.
REDACTED_KEYS = frozenset(
    {"access_token", "refresh_token", "password", "smtp_password", "encrypted_tokens", "code"}
)


def redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Replace secret-bearing values in a log event.

    Args:
        _logger: The wrapped logger (unused).
        _method_name: The logging method name (unused).
        event_dict: The event dictionary to modify.

    Returns:
        Event dictionary with secret values masked.
    """
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_dir: Path | None = None,
    log_file: str = DEFAULT_LOG_FILE,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    file_logging: bool = False,
) -> None:
    """Configure structlog and the stdlib handlers it renders through.

    Args:
        level: Log level name (default: INFO).
        json_format: Render JSON lines instead of console output.
        log_dir: Directory for log files (default: ./logs).
        log_file: Name of log file (default: mailbridge.log).
        max_bytes: Max bytes per log file before rotation (default: 10MB).
        backup_count: Number of backup files to keep (default: 5).
        file_logging: Enable rolling file logging (default: False).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if file_logging:
        log_path = (log_dir or DEFAULT_LOG_DIR) / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
