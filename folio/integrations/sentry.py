# =============================================================================
# Sentry Error Tracking Integration
# =============================================================================
#
# Setup:
#   1. Create account at sentry.io
#   2. Create a Python project
#   3. Copy DSN to .env: SENTRY_DSN=https://...@sentry.io/...
#
# Usage:
#   Call init_sentry() at app startup (in folio/api/app.py)
#
# Background translation tasks have no request to report through, so
# crashes there are sent with capture_exception().
#
# =============================================================================

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from folio.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Raised on purpose at the API boundary; not worth an issue
EXPECTED_STATUS_CODES = (400, 402, 404, 409, 422)


def init_sentry(settings: Settings | None = None) -> bool:
    """
    Initialize Sentry error tracking.

    Returns True if initialized, False if skipped.
    """
    settings = settings or get_settings()

    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,

        # Performance monitoring (sample 10% of transactions in prod)
        traces_sample_rate=0.1 if settings.is_production else 1.0,

        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(transaction_style="endpoint"),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],

        # Don't send PII by default
        send_default_pii=False,

        before_send=_filter_events,
        before_send_transaction=_filter_transactions,
    )

    logger.info("Sentry initialized for %s", settings.environment)
    return True


def _filter_events(event: dict, hint: dict) -> dict | None:
    """Drop expected HTTP errors and scrub credentials."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]

        from fastapi import HTTPException
        if isinstance(exc_value, HTTPException) and exc_value.status_code in EXPECTED_STATUS_CODES:
            return None

    request = event.get("request") or {}
    headers = request.get("headers") or {}
    for key in list(headers.keys()):
        if key.lower() in ("authorization", "cookie", "x-api-key"):
            headers[key] = "[Filtered]"

    return event


def _filter_transactions(event: dict, hint: dict) -> dict | None:
    """Skip health checks and polling endpoints."""
    transaction = event.get("transaction", "")
    if transaction in ("/health", "/progress"):
        return None
    return event


def is_enabled() -> bool:
    return sentry_sdk.get_client().is_active()


def capture_exception(error: BaseException, **context) -> str | None:
    """
    Capture an exception to Sentry.

    Returns the event ID if captured, None when Sentry is disabled.
    """
    if not is_enabled():
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(error)


def capture_message(message: str, level: str = "info", **context) -> str | None:
    """
    Capture a message to Sentry.

    Levels: fatal, error, warning, info, debug
    """
    if not is_enabled():
        logger.log(getattr(logging, level.upper(), logging.INFO), message)
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_message(message, level=level)
