"""
Logging configuration for the workspace connector gateway.

setup_logging() is called once by create_app() with the LoggingSettings of
the running app:

- JSON rendering when ``log_format == "json"``, pretty console otherwise
- OAuth tokens, raw API keys and client secrets redacted from every event
- sampling rates for high-frequency events
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

from config import LoggingSettings

# Sampling rates for high-frequency events; overwritten by setup_logging()
SAMPLING_RATES: dict[str, float] = {
    "token_cache_hit": 0.05,
    "gateway_request": 0.20,
}

REDACTED_FIELDS = {
    "access_token",
    "refresh_token",
    "api_key",
    "raw_key",
    "client_secret",
    "authorization",
    "token",
    "secret",
    "key",
}

# Context keys that look sensitive but only carry identifiers
_SAFE_FIELDS = {"level", "event", "timestamp", "logger", "key_id", "key_prefix"}

_SENSITIVE_PARTS = ("token", "secret", "key", "password")

_NOISY_LOGGERS = ("httpx", "httpcore", "pymongo", "uvicorn.access")

_REDACTED = "***REDACTED***"


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    for key in list(event_dict.keys()):
        if key in _SAFE_FIELDS:
            continue
        lowered = key.lower()
        if lowered in REDACTED_FIELDS or any(part in lowered for part in _SENSITIVE_PARTS):
            event_dict[key] = _REDACTED
    return event_dict


def configure_structlog(log_format: str = "console") -> None:
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True, pad_event=15, sort_keys=False)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_stdlib_logging(log_level: str = "INFO") -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def setup_logging(settings: Optional[LoggingSettings] = None, env: str = "development") -> None:
    """
    Initialize logging for the application.

    Should be called before the first log line that matters; loggers fetched
    earlier pick up the configuration on first use.
    """
    if settings is None:
        settings = LoggingSettings()

    SAMPLING_RATES["token_cache_hit"] = settings.sample_rate_token_cache
    SAMPLING_RATES["gateway_request"] = settings.sample_rate_gateway_request

    configure_stdlib_logging(settings.log_level)
    configure_structlog(settings.log_format)

    structlog.get_logger(__name__).info(
        "logging_initialized",
        env=env,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )
