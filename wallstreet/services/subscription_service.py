"""
Subscription service: RevenueCat billing events, client-side purchase sync,
and the effective premium status a user currently holds.

Billing writes are absolute (the event carries the whole new state), so a
redelivered event leaves the user exactly where the first delivery did.
"""
from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Any

from sqlalchemy.orm import Session

from wallstreet import metrics
from wallstreet.core.exceptions import InvalidInputError, UserNotFoundError
from wallstreet.models.models import SubscriptionStatus, SubscriptionTier, User
from wallstreet.services.tiers import as_utc, from_epoch_ms, is_future, isoformat, tier_for_product

logger = logging.getLogger(__name__)

# RevenueCat event types
ACTIVATING_EVENTS = frozenset({"INITIAL_PURCHASE", "RENEWAL", "PRODUCT_CHANGE"})
CANCELLING_EVENTS = frozenset({"CANCELLATION"})
ENDING_EVENTS = frozenset({"EXPIRATION", "BILLING_ISSUE"})
IGNORED_EVENTS = frozenset({"SUBSCRIBER_ALIAS", "TRANSFER"})
KNOWN_EVENTS = ACTIVATING_EVENTS | CANCELLING_EVENTS | ENDING_EVENTS | IGNORED_EVENTS

_USER_ID_RE = re.compile(r"[0-9]+")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def parse_user_id(raw: Any) -> int | None:
    """Internal user ids are integers; RevenueCat anonymous ids are not."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and _USER_ID_RE.fullmatch(raw.strip()):
        return int(raw.strip())
    return None


class SubscriptionService:
    """Service for keeping user entitlements in step with billing."""

    def __init__(self, db: Session):
        self.db = db

    def _get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    # ==================== BILLING WEBHOOK ====================

    def apply_billing_event(self, payload: dict[str, Any]) -> dict[str, bool]:
        """
        Apply one RevenueCat webhook delivery to the matching user.

        Unmappable ids, unknown users and unhandled event types are
        acknowledged without touching anything, so RevenueCat stops retrying.
        """
        event = payload.get("event") if isinstance(payload, dict) else None
        if not isinstance(event, dict):
            logger.warning("RevenueCat webhook without event object; ignoring")
            metrics.revenuecat_event("unknown", "ignored")
            return {"received": True}

        event_type = event.get("type") or ""
        raw_product_id = event.get("product_id")
        product_id = str(raw_product_id) if raw_product_id is not None else None
        metric_type = event_type if event_type in KNOWN_EVENTS else "other"
        raw_user_id = event.get("app_user_id")
        logger.info("RevenueCat webhook: %s for %s (%s)", event_type, raw_user_id, product_id)

        user_id = parse_user_id(raw_user_id)
        if user_id is None:
            logger.info("RevenueCat app_user_id %r is not an internal user id; ignoring", raw_user_id)
            metrics.revenuecat_event(metric_type, "unmapped_user")
            return {"received": True}

        user = self.db.get(User, user_id)
        if user is None:
            logger.warning("RevenueCat webhook for unknown user %s; ignoring", user_id)
            metrics.revenuecat_event(metric_type, "unknown_user")
            return {"received": True}

        if event_type in ACTIVATING_EVENTS:
            expiration = from_epoch_ms(event.get("expiration_at_ms"))
            tier = tier_for_product(product_id)
            user.current_plan = product_id
            user.next_billing_date = expiration
            user.subscription_tier = tier
            user.subscription_status = SubscriptionStatus.ACTIVE
            user.subscription_expiry = expiration
            user.subscription_product_id = product_id
            self.db.commit()
            logger.info("User %s subscription active: %s until %s", user.id, tier.value, isoformat(expiration))
            outcome = "applied"
        elif event_type in CANCELLING_EVENTS:
            # Access continues until the paid period runs out
            user.subscription_status = SubscriptionStatus.CANCELLED
            self.db.commit()
            logger.info("User %s subscription cancelled", user.id)
            outcome = "applied"
        elif event_type in ENDING_EVENTS:
            user.current_plan = None
            user.next_billing_date = None
            user.subscription_tier = SubscriptionTier.FREE
            user.subscription_status = SubscriptionStatus.EXPIRED
            user.subscription_expiry = None
            user.subscription_product_id = None
            self.db.commit()
            logger.info("User %s subscription ended (%s)", user.id, event_type)
            outcome = "applied"
        else:
            if event_type not in IGNORED_EVENTS:
                logger.info("Unhandled RevenueCat event type: %s", event_type)
            outcome = "ignored"

        metrics.revenuecat_event(metric_type, outcome)
        return {"received": True}

    # ==================== STATUS ====================

    def get_status(self, user_id: int, now: dt.datetime | None = None) -> dict[str, Any]:
        """Effective premium status: a live billing subscription wins over referral premium."""
        now = now or _utcnow()
        user = self._get_user(user_id)

        has_subscription = (
            is_future(user.subscription_expiry, now)
            and user.subscription_status == SubscriptionStatus.ACTIVE
        )
        has_referral_premium = is_future(user.referral_premium_expiry, now)

        if has_subscription:
            tier, expires_at, source = user.subscription_tier, user.subscription_expiry, "subscription"
        elif has_referral_premium:
            tier, expires_at, source = SubscriptionTier.GOLD, user.referral_premium_expiry, "referral"
            if user.subscription_tier and user.subscription_tier.is_paid:
                tier = user.subscription_tier
        else:
            tier, expires_at, source = SubscriptionTier.FREE, None, None

        return {
            "isPremium": has_subscription or has_referral_premium,
            "tier": tier.value,
            "expiresAt": isoformat(expires_at),
            "source": source,
            "referralPremium": {
                "active": has_referral_premium,
                "daysEarned": user.referral_premium_days or 0,
                "expiresAt": isoformat(user.referral_premium_expiry),
            },
            "subscription": {
                "active": has_subscription,
                "tier": user.subscription_tier.value if user.subscription_tier else None,
                "status": user.subscription_status.value if user.subscription_status else None,
                "productId": user.subscription_product_id,
                "expiresAt": isoformat(user.subscription_expiry),
            },
        }

    # ==================== CLIENT SYNC ====================

    def sync(self, body: dict[str, Any]) -> dict[str, Any]:
        """Record a purchase the mobile client completed against the store."""
        raw_user_id = body.get("userId")
        if raw_user_id is None or raw_user_id == "":
            raise InvalidInputError("User ID is required", field="userId")
        user_id = parse_user_id(raw_user_id)
        if user_id is None:
            raise InvalidInputError("Invalid user ID", field="userId")

        raw_tier = body.get("tier") or SubscriptionTier.FREE.value
        try:
            tier = SubscriptionTier(str(raw_tier).strip().lower())
        except ValueError as exc:
            raise InvalidInputError(f"Invalid tier: {raw_tier}", field="tier") from exc

        expiry = None
        if body.get("expirationDate"):
            try:
                expiry = as_utc(dt.datetime.fromisoformat(str(body["expirationDate"])))
            except ValueError as exc:
                raise InvalidInputError("Invalid expiration date", field="expirationDate") from exc

        user = self._get_user(user_id)
        user.subscription_tier = tier
        user.subscription_status = SubscriptionStatus.ACTIVE if tier.is_paid else None
        user.subscription_product_id = body.get("productId")
        user.subscription_expiry = expiry
        self.db.commit()

        logger.info("Synced subscription for user %s: %s until %s", user.id, tier.value, isoformat(expiry))

        return {
            "success": True,
            "user": {
                "id": user.id,
                "subscriptionTier": user.subscription_tier.value,
                "subscriptionStatus": user.subscription_status.value if user.subscription_status else None,
                "subscriptionExpiry": isoformat(user.subscription_expiry),
            },
        }
