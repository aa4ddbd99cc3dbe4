"""
Subscription routes: effective premium status and client purchase sync.
"""
from typing import Any

from fastapi import APIRouter, Body, Request

from wallstreet.api.dependencies import CurrentUserDep, DbDep
from wallstreet.api.rate_limit import RATE_LIMITS, limiter
from wallstreet.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.get("/status")
async def get_subscription_status(user_id: CurrentUserDep, db: DbDep):
    """
    Whether the caller is premium right now, at which tier, and why.

    A live billing subscription takes precedence over referral premium.
    """
    return SubscriptionService(db).get_status(user_id)


@router.post("/sync")
@limiter.limit(RATE_LIMITS["subscription_sync"])
async def sync_subscription(
    request: Request,
    db: DbDep,
    body: dict[str, Any] = Body(...),
):
    """Store the tier the mobile client just purchased."""
    return SubscriptionService(db).sync(body)
