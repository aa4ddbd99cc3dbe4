"""Tests for effective subscription status and client purchase sync."""
import datetime as dt

import pytest

from wallstreet.core.exceptions import InvalidInputError, UserNotFoundError
from wallstreet.models.models import SubscriptionStatus, SubscriptionTier, User
from wallstreet.services.subscription_service import SubscriptionService
from wallstreet.services.tiers import as_utc


def test_free_user_status(db_session, make_user, now):
    user = make_user(name="Free")

    status = SubscriptionService(db_session).get_status(user.id, now)

    assert status["isPremium"] is False
    assert status["tier"] == "free"
    assert status["expiresAt"] is None
    assert status["source"] is None
    assert status["referralPremium"] == {"active": False, "daysEarned": 0, "expiresAt": None}


def test_billing_subscription_wins(db_session, make_user, now):
    user = make_user(
        name="Payer",
        subscription_tier=SubscriptionTier.DIAMOND,
        subscription_status=SubscriptionStatus.ACTIVE,
        subscription_expiry=now + dt.timedelta(days=30),
        referral_premium_days=7,
        referral_premium_expiry=now + dt.timedelta(days=7),
    )

    status = SubscriptionService(db_session).get_status(user.id, now)

    assert status["isPremium"] is True
    assert status["source"] == "subscription"
    assert status["tier"] == "diamond"
    assert status["expiresAt"] == (now + dt.timedelta(days=30)).isoformat()
    assert status["referralPremium"]["active"] is True


def test_cancelled_subscription_falls_back_to_referral(db_session, make_user, now):
    user = make_user(
        name="Referrer",
        subscription_tier=SubscriptionTier.GOLD,
        subscription_status=SubscriptionStatus.CANCELLED,
        subscription_expiry=now + dt.timedelta(days=30),
        referral_premium_days=7,
        referral_premium_expiry=now + dt.timedelta(days=7),
    )

    status = SubscriptionService(db_session).get_status(user.id, now)

    assert status["isPremium"] is True
    assert status["source"] == "referral"
    assert status["tier"] == "gold"
    assert status["expiresAt"] == (now + dt.timedelta(days=7)).isoformat()
    assert status["subscription"]["active"] is False
    assert status["subscription"]["status"] == "cancelled"


def test_lapsed_premium_is_not_premium(db_session, make_user, now):
    user = make_user(
        name="Lapsed",
        subscription_tier=SubscriptionTier.GOLD,
        subscription_status=SubscriptionStatus.ACTIVE,
        subscription_expiry=now,
        referral_premium_expiry=now - dt.timedelta(days=1),
    )

    status = SubscriptionService(db_session).get_status(user.id, now)

    assert status["isPremium"] is False
    assert status["tier"] == "free"


def test_status_route(client, make_user):
    user = make_user(name="Free")

    resp = client.get("/subscription/status", headers={"x-user-id": str(user.id)})
    assert resp.status_code == 200
    assert resp.json()["isPremium"] is False

    assert client.get("/subscription/status").status_code == 401
    assert client.get("/subscription/status", headers={"x-user-id": "999"}).status_code == 404


def test_sync_sets_tier(db_session, make_user):
    user = make_user(name="Buyer")

    result = SubscriptionService(db_session).sync(
        {
            "userId": str(user.id),
            "tier": "Platinum",
            "productId": "wss_platinum_monthly",
            "expirationDate": "2025-07-01T12:00:00Z",
        }
    )

    assert result == {
        "success": True,
        "user": {
            "id": user.id,
            "subscriptionTier": "platinum",
            "subscriptionStatus": "active",
            "subscriptionExpiry": "2025-07-01T12:00:00+00:00",
        },
    }
    db_session.expire_all()
    user = db_session.get(User, user.id)
    assert user.subscription_product_id == "wss_platinum_monthly"
    assert as_utc(user.subscription_expiry) == dt.datetime(2025, 7, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_sync_free_clears_status(db_session, make_user):
    user = make_user(name="Buyer", subscription_status=SubscriptionStatus.ACTIVE)

    result = SubscriptionService(db_session).sync({"userId": user.id})

    assert result["user"]["subscriptionTier"] == "free"
    assert result["user"]["subscriptionStatus"] is None
    assert result["user"]["subscriptionExpiry"] is None


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"userId": "abc", "tier": "gold"},
        {"userId": 1, "tier": "bronze"},
        {"userId": 1, "tier": "gold", "expirationDate": "next tuesday"},
    ],
)
def test_sync_rejects_bad_input(db_session, make_user, body):
    make_user(name="Buyer")

    with pytest.raises(InvalidInputError):
        SubscriptionService(db_session).sync(body)


def test_sync_unknown_user(db_session):
    with pytest.raises(UserNotFoundError):
        SubscriptionService(db_session).sync({"userId": 999, "tier": "gold"})


def test_sync_route(client, make_user):
    user = make_user(name="Buyer")

    resp = client.post("/subscription/sync", json={"userId": user.id, "tier": "gold"})
    assert resp.status_code == 200
    assert resp.json()["user"]["subscriptionTier"] == "gold"

    resp = client.post("/subscription/sync", json={"tier": "gold"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "REQ001"
