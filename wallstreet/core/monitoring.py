"""Sentry error reporting, enabled only when ``SENTRY_DSN`` is configured."""
from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from wallstreet.core.config import settings

logger = logging.getLogger(__name__)

# RevenueCat deliveries carry the shared webhook secret in Authorization
_SECRET_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})
_FILTERED = "[Filtered]"

_initialized = False


def scrub_event(event: dict[str, Any], hint: dict[str, Any] | None = None) -> dict[str, Any]:
    """Blank credential headers before an event leaves the process."""
    headers = (event.get("request") or {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in _SECRET_HEADERS:
                headers[name] = _FILTERED
    return event


def _sentry_options() -> dict[str, Any]:
    return {
        "dsn": settings.SENTRY_DSN,
        "integrations": [FastApiIntegration()],
        "traces_sample_rate": settings.SENTRY_TRACES_SAMPLE_RATE,
        "environment": settings.ENV,
        "release": f"wallstreet-backend@{settings.ENV}",
        "send_default_pii": False,
        "before_send": scrub_event,
    }


def init_monitoring() -> None:
    global _initialized
    if _initialized:
        return
    _initialized = True
    if not settings.SENTRY_DSN:
        logger.debug("SENTRY_DSN not set; error reporting disabled")
        return
    try:
        sentry_sdk.init(**_sentry_options())
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to init Sentry: %s", exc)
        return
    logger.info("Sentry initialized for %s", settings.ENV)
