"""
Logger factory and sampling helpers.

Provides:
- get_logger(): Get a configured structlog logger instance
- should_sample(): Determine if an event should be logged based on sampling rate
"""

import random

import structlog
from structlog.stdlib import BoundLogger

from shared.logging_config import SAMPLING_RATES, setup_logging


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("token_refreshed", provider="google", user_id="u_123")
    """
    return structlog.get_logger(name)


def should_sample(event_type: str) -> bool:
    """
    Determine if an event should be logged based on sampling rate.

    Unknown event types are always logged.
    """
    sample_rate = SAMPLING_RATES.get(event_type, 1.0)

    if sample_rate >= 1.0:
        return True
    if sample_rate <= 0.0:
        return False
    return random.random() < sample_rate


__all__ = [
    "get_logger",
    "should_sample",
    "SAMPLING_RATES",
    "setup_logging",
]
