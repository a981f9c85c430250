"""
Sentry error tracking integration.

Provides:
- Automatic exception capture
- Scrubbing of OAuth tokens, authorization codes and secrets before send
"""

import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

FILTERED = "[Filtered]"

SENSITIVE_HEADERS = ("authorization", "cookie", "set-cookie")
SENSITIVE_FIELDS = (
    "access_token",
    "refresh_token",
    "client_secret",
    "code",
    "state",
    "token",
    "secret",
)

# Global flag to track initialization
_sentry_initialized = False


def init_sentry() -> None:
    """
    Initialize Sentry SDK with FastAPI integration.

    Called during application startup in main.py.
    """
    global _sentry_initialized

    from invoice_manager import __version__
    from invoice_manager.config import settings

    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=__version__,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.WARNING,
                event_level=logging.ERROR,
            ),
        ],
        before_send=filter_sensitive_data,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )

    _sentry_initialized = True
    logger.info(f"Sentry initialized for {settings.ENVIRONMENT} environment")


def _scrub_mapping(data: Dict[str, Any]) -> None:
    for key in list(data.keys()):
        if key.lower() in SENSITIVE_FIELDS:
            data[key] = FILTERED


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Filter sensitive data before sending to Sentry.

    Removes:
    - Authorization and cookie headers
    - OAuth tokens, authorization codes, CSRF state values and secrets in
      request bodies and query strings
    """
    request = event.get("request")
    if not request:
        return event

    headers = request.get("headers")
    if isinstance(headers, dict):
        for name in list(headers.keys()):
            if name.lower() in SENSITIVE_HEADERS:
                headers[name] = FILTERED

    data = request.get("data")
    if isinstance(data, dict):
        _scrub_mapping(data)

    query = request.get("query_string")
    if isinstance(query, str) and query:
        pairs = []
        for pair in query.split("&"):
            name, _, value = pair.partition("=")
            pairs.append(f"{name}={FILTERED}" if name.lower() in SENSITIVE_FIELDS else pair)
        request["query_string"] = "&".join(pairs)

    return event


def capture_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception to Sentry with additional context.

    Returns:
        Sentry event ID if captured, None otherwise
    """
    if not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        if context:
            for key, value in context.items():
                scope.set_extra(key, value)
        return sentry_sdk.capture_exception(exception)
