"""
Error reporting hooks (Sentry).
"""

from __future__ import annotations

import logging

import sentry_sdk

from cryptodca.config import Settings

logger = logging.getLogger(__name__)


def init_observability(settings: Settings) -> bool:
    """Initialise Sentry when a DSN is configured. Returns True if enabled."""
    if not settings.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
    )
    logger.info("Sentry error reporting enabled")
    return True


def report_exception(exc: BaseException) -> None:
    logger.error("Unhandled error", exc_info=exc)
    sentry_sdk.capture_exception(exc)
