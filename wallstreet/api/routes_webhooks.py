import hmac
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from wallstreet.api.dependencies import DbDep
from wallstreet.api.rate_limit import RATE_LIMITS, limiter
from wallstreet.core.config import settings
from wallstreet.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)
router = APIRouter()


def _authorized(request: Request) -> bool:
    expected = settings.REVENUECAT_WEBHOOK_AUTH
    if not expected:
        return True
    provided = request.headers.get("authorization") or ""
    return hmac.compare_digest(provided.encode(), expected.encode())


@router.get("/revenuecat")
async def revenuecat_webhook_status():
    """Reachability check used when configuring the webhook in RevenueCat."""
    return {"status": "RevenueCat webhook endpoint active"}


@router.post("/revenuecat")
@limiter.limit(RATE_LIMITS["webhook_revenuecat"])
async def revenuecat_webhook(request: Request, db: DbDep):
    """Handle RevenueCat subscription lifecycle events.

    Anything RevenueCat should not retry (unknown users, anonymous ids,
    event types we ignore) is acknowledged with 200.
    """
    if not _authorized(request):
        logger.warning("RevenueCat webhook rejected: bad Authorization header")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        payload = await request.json()
        return SubscriptionService(db).apply_billing_event(payload)
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("RevenueCat webhook processing failed")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
