"""Metrics facade.

Service code calls the semantic helpers here rather than touching
Prometheus objects directly.

Metrics:
- referral_redemptions_total{outcome}            Code redemption attempts by result
- referral_rewards_granted_total{tier}           Referrer reward batches applied
- revenuecat_events_total{event_type,outcome}    Billing webhook deliveries
- rate_limit_exceeded_events_total               Requests rejected with 429
"""

from __future__ import annotations

import logging

from prometheus_client import Counter

logger = logging.getLogger("metrics")

_REFERRAL_REDEMPTIONS = Counter(
    "referral_redemptions_total", "Referral code redemption attempts", ["outcome"]
)
_REFERRAL_REWARDS = Counter(
    "referral_rewards_granted_total", "Referrer reward batches applied", ["tier"]
)
_REVENUECAT_EVENTS = Counter(
    "revenuecat_events_total", "RevenueCat webhook events received", ["event_type", "outcome"]
)
_RATE_LIMIT_EXCEEDED = Counter(
    "rate_limit_exceeded_events", "Rate limit exceeded events (handler invocations)"
)


def referral_redeemed():
    _REFERRAL_REDEMPTIONS.labels(outcome="success").inc()


def referral_rejected(reason: str):
    _REFERRAL_REDEMPTIONS.labels(outcome=reason).inc()
    logger.debug("metric referral_redemptions_total{outcome=%s} += 1", reason)


def referral_reward_granted(tier: str):
    _REFERRAL_REWARDS.labels(tier=tier).inc()


def revenuecat_event(event_type: str, outcome: str):
    """Callers bucket unrecognised types so the label set stays bounded."""
    _REVENUECAT_EVENTS.labels(event_type=event_type, outcome=outcome).inc()


def rate_limit_exceeded():
    _RATE_LIMIT_EXCEEDED.inc()
