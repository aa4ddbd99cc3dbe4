"""Tests for the RevenueCat webhook and SubscriptionService.apply_billing_event."""
import datetime as dt

import pytest
from prometheus_client import REGISTRY

from wallstreet.core.config import settings
from wallstreet.models.models import SubscriptionStatus, SubscriptionTier, User
from wallstreet.services.subscription_service import SubscriptionService, parse_user_id
from wallstreet.services.tiers import as_utc

EXPIRES_MS = 1751371200000  # 2025-07-01T12:00:00Z
EXPIRES_AT = dt.datetime(2025, 7, 1, 12, 0, tzinfo=dt.timezone.utc)


def _event(event_type: str, user_id, product_id="wss_gold_monthly", **extra) -> dict:
    event = {"type": event_type, "app_user_id": user_id, "product_id": product_id, **extra}
    if "expiration_at_ms" not in extra:
        event["expiration_at_ms"] = EXPIRES_MS
    return {"event": event}


@pytest.fixture
def webhook_auth(monkeypatch):
    monkeypatch.setattr(settings, "REVENUECAT_WEBHOOK_AUTH", "Bearer rc-secret")
    return {"Authorization": "Bearer rc-secret"}


def test_parse_user_id():
    assert parse_user_id(42) == 42
    assert parse_user_id(" 42 ") == 42
    assert parse_user_id("$RCAnonymousID:abc") is None
    assert parse_user_id("12abc") is None
    assert parse_user_id(None) is None
    assert parse_user_id(True) is None


def test_status_endpoint(client):
    resp = client.get("/webhooks/revenuecat")
    assert resp.status_code == 200
    assert resp.json() == {"status": "RevenueCat webhook endpoint active"}


def test_rejects_wrong_authorization(client, make_user, db_session, webhook_auth):
    user = make_user(name="Payer")

    resp = client.post(
        "/webhooks/revenuecat",
        json=_event("INITIAL_PURCHASE", user.id),
        headers={"Authorization": "Bearer wrong"},
    )
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}

    resp = client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE", user.id))
    assert resp.status_code == 401

    db_session.expire_all()
    assert db_session.get(User, user.id).subscription_tier == SubscriptionTier.FREE


def test_initial_purchase_activates(client, make_user, db_session, webhook_auth):
    user = make_user(name="Payer")

    resp = client.post(
        "/webhooks/revenuecat",
        json=_event("INITIAL_PURCHASE", str(user.id), "wss_platinum_yearly"),
        headers=webhook_auth,
    )
    assert resp.status_code == 200
    assert resp.json() == {"received": True}

    db_session.expire_all()
    user = db_session.get(User, user.id)
    assert user.subscription_tier == SubscriptionTier.PLATINUM
    assert user.subscription_status == SubscriptionStatus.ACTIVE
    assert user.subscription_product_id == "wss_platinum_yearly"
    assert user.current_plan == "wss_platinum_yearly"
    assert as_utc(user.subscription_expiry) == EXPIRES_AT
    assert as_utc(user.next_billing_date) == EXPIRES_AT


def test_accepts_without_authorization_when_unconfigured(client, make_user, monkeypatch):
    monkeypatch.setattr(settings, "REVENUECAT_WEBHOOK_AUTH", None)
    user = make_user(name="Payer")

    resp = client.post("/webhooks/revenuecat", json=_event("RENEWAL", user.id))

    assert resp.status_code == 200


def test_renewal_is_idempotent(db_session, make_user):
    user = make_user(name="Payer")
    service = SubscriptionService(db_session)

    service.apply_billing_event(_event("RENEWAL", user.id))
    db_session.expire_all()
    first = db_session.get(User, user.id).dict()
    service.apply_billing_event(_event("RENEWAL", user.id))

    db_session.expire_all()
    assert db_session.get(User, user.id).dict() == first


def test_unknown_product_maps_to_gold(db_session, make_user):
    user = make_user(name="Payer")

    SubscriptionService(db_session).apply_billing_event(_event("PRODUCT_CHANGE", user.id, "mystery_sku"))

    assert db_session.get(User, user.id).subscription_tier == SubscriptionTier.GOLD


def test_numeric_product_id_maps_to_gold(db_session, make_user):
    user = make_user(name="Payer")

    SubscriptionService(db_session).apply_billing_event(_event("INITIAL_PURCHASE", user.id, 123))

    db_session.expire_all()
    user = db_session.get(User, user.id)
    assert user.subscription_tier == SubscriptionTier.GOLD
    assert user.subscription_product_id == "123"


@pytest.mark.parametrize("event_type", ["TRANSFER", "CANCELLATION", "EXPIRATION", "SOMETHING_NEW"])
def test_unparseable_expiration_ignored_when_unused(db_session, make_user, event_type):
    user = make_user(name="Payer")

    result = SubscriptionService(db_session).apply_billing_event(
        _event(event_type, user.id, expiration_at_ms="n/a")
    )

    assert result == {"received": True}


def test_unparseable_expiration_on_transfer_over_http(client, make_user, webhook_auth):
    user = make_user(name="Payer")

    resp = client.post(
        "/webhooks/revenuecat",
        json=_event("TRANSFER", user.id, expiration_at_ms="n/a"),
        headers=webhook_auth,
    )

    assert resp.status_code == 200
    assert resp.json() == {"received": True}


def test_cancellation_only_changes_status(db_session, make_user):
    user = make_user(name="Payer")
    service = SubscriptionService(db_session)
    service.apply_billing_event(_event("INITIAL_PURCHASE", user.id, "wss_diamond_monthly"))

    service.apply_billing_event(_event("CANCELLATION", user.id, "wss_diamond_monthly", expiration_at_ms=None))

    db_session.expire_all()
    user = db_session.get(User, user.id)
    assert user.subscription_status == SubscriptionStatus.CANCELLED
    assert user.subscription_tier == SubscriptionTier.DIAMOND
    assert user.subscription_product_id == "wss_diamond_monthly"
    assert as_utc(user.subscription_expiry) == EXPIRES_AT


@pytest.mark.parametrize("event_type", ["EXPIRATION", "BILLING_ISSUE"])
def test_expiration_resets_to_free(db_session, make_user, event_type):
    user = make_user(name="Payer")
    service = SubscriptionService(db_session)
    service.apply_billing_event(_event("INITIAL_PURCHASE", user.id))

    service.apply_billing_event(_event(event_type, user.id))

    db_session.expire_all()
    user = db_session.get(User, user.id)
    assert user.subscription_tier == SubscriptionTier.FREE
    assert user.subscription_status == SubscriptionStatus.EXPIRED
    assert user.subscription_expiry is None
    assert user.subscription_product_id is None
    assert user.current_plan is None
    assert user.next_billing_date is None


def test_ignored_event_types(db_session, make_user):
    user = make_user(name="Payer")
    service = SubscriptionService(db_session)

    assert service.apply_billing_event(_event("TRANSFER", user.id)) == {"received": True}
    assert service.apply_billing_event(_event("SOMETHING_NEW", user.id)) == {"received": True}

    db_session.expire_all()
    user = db_session.get(User, user.id)
    assert user.subscription_tier == SubscriptionTier.FREE
    assert user.subscription_status is None


def _event_count(event_type: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "revenuecat_events_total", {"event_type": event_type, "outcome": outcome}
    )
    return value or 0.0


def test_unrecognised_event_types_share_one_metric_label(db_session, make_user):
    user = make_user(name="Payer")
    service = SubscriptionService(db_session)
    before = _event_count("other", "ignored")

    service.apply_billing_event(_event("NEW_TYPE_A", user.id))
    service.apply_billing_event(_event("NEW_TYPE_B", user.id))
    service.apply_billing_event(_event("TRANSFER", user.id))

    assert _event_count("other", "ignored") == before + 2
    assert REGISTRY.get_sample_value(
        "revenuecat_events_total", {"event_type": "NEW_TYPE_A", "outcome": "ignored"}
    ) is None
    assert _event_count("TRANSFER", "ignored") >= 1


def test_anonymous_and_unknown_users_are_acknowledged(client, make_user, db_session):
    user = make_user(name="Payer")

    for app_user_id in ("$RCAnonymousID:8f2c", 999, None):
        resp = client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE", app_user_id))
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    resp = client.post("/webhooks/revenuecat", json={"api_version": "1.0"})
    assert resp.status_code == 200

    db_session.expire_all()
    assert db_session.get(User, user.id).subscription_tier == SubscriptionTier.FREE


def test_malformed_body_reports_failure(client):
    resp = client.post(
        "/webhooks/revenuecat",
        content=b"not json",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Webhook processing failed"}
