"""structlog configuration for the API process.

Provider credentials travel through the generation path as plain strings, so
every event passes through a redaction processor before it is rendered.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

from studio.config import settings

_LOG_LEVEL_MAP: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Event keys whose values must never reach a log sink
SECRET_FIELDS = frozenset(
    {
        "api_key",
        "apikey",
        "authorization",
        "encrypted_api_key",
        "settings_encryption_key",
        "token",
    }
)

REDACTED = "[redacted]"


def redact_secrets(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Replace credential-bearing fields with a fixed marker."""
    for key in list(event_dict):
        if key.lower() in SECRET_FIELDS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


class _TeeWriter:
    """Write log lines to stdout and append them to a file.

    If the file cannot be opened, or a later write fails, the file side is
    dropped and stdout keeps working.
    """

    def __init__(self, file_path: str) -> None:
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet at this point
            print(
                f"WARNING: Could not open log file {file_path!r}: {exc}. "
                "Logging to stdout only.",
                file=sys.stderr,
            )

    def _disable_file(self, action: str) -> None:
        self._file = None
        print(f"WARNING: Log file {action} failed. File logging disabled.", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError):
            self._disable_file("write")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._disable_file("flush")


def configure_logging() -> None:
    """Console output in development, JSON lines everywhere else.

    LOG_FILE additionally tees every line into a file.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )

    level = _LOG_LEVEL_MAP.get(settings.log_level.upper(), logging.INFO)

    logger_factory: structlog.types.WrappedLogger
    if settings.log_file:
        # PrintLoggerFactory only needs write() and flush()
        logger_factory = structlog.PrintLoggerFactory(file=_TeeWriter(settings.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
