import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from wallstreet import metrics
from wallstreet.core.config import settings

logger = logging.getLogger(__name__)


def get_caller_identifier(request: Request) -> str:
    """Rate limit key: client address, narrowed by the caller's user id when sent.

    Example:
        >>> get_caller_identifier(request)
        '192.168.1.1:42'  # x-user-id: 42
        '10.0.0.1'        # anonymous (webhooks, code lookups)
    """
    ip_address = get_remote_address(request)
    user_id = request.headers.get("x-user-id", "").strip()
    if user_id:
        return f"{ip_address}:{user_id}"
    return ip_address


_is_prod = settings.ENV.lower() == "prod"

storage_uri = settings.RATE_LIMIT_STORAGE_URI or "memory://"
if storage_uri.startswith("memory://"):
    logger.info("Rate limiter using in-memory storage")

limiter = Limiter(key_func=get_caller_identifier, storage_uri=storage_uri)

RATE_LIMITS = {
    # Referral program
    "referral_read": "60/minute" if _is_prod else "600/minute",
    "referral_redeem": "10/minute" if _is_prod else "600/minute",
    "referral_validate": "30/minute" if _is_prod else "600/minute",
    # Subscriptions
    "subscription_sync": "20/minute" if _is_prod else "600/minute",
    # Webhooks
    "webhook_revenuecat": "300/minute",
}


def increment_rate_limit_exceeded():
    metrics.rate_limit_exceeded()
