"""Tier ordering, the referral reward schedule, and expiry arithmetic.

Shared by the referral ledger and the billing reconciler so both agree on
what a tier means.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any

from wallstreet.models.models import SubscriptionTier


@dataclass(frozen=True)
class RewardTier:
    referrals: int  # completed referrals needed
    reward: str
    days: int
    tier: SubscriptionTier

    def as_dict(self) -> dict:
        return {
            "referrals": self.referrals,
            "reward": self.reward,
            "days": self.days,
            "tier": self.tier.value,
        }


# Ascending by threshold. Thresholds are floors, not bands: the last row a
# count reaches wins.
REWARD_TIERS: tuple[RewardTier, ...] = (
    RewardTier(5, "1 Week Gold", 7, SubscriptionTier.GOLD),
    RewardTier(10, "1 Month Gold", 30, SubscriptionTier.GOLD),
    RewardTier(15, "2 Months Platinum", 60, SubscriptionTier.PLATINUM),
    RewardTier(20, "3 Months Platinum", 90, SubscriptionTier.PLATINUM),
    RewardTier(30, "6 Months Diamond", 180, SubscriptionTier.DIAMOND),
    RewardTier(50, "1 Year Diamond", 365, SubscriptionTier.DIAMOND),
)


def _reached_tier(completed_referrals: int) -> RewardTier | None:
    reached = None
    for reward_tier in REWARD_TIERS:
        if completed_referrals >= reward_tier.referrals:
            reached = reward_tier
    return reached


def days_for_count(completed_referrals: int) -> int:
    """Premium days earned by a referral count; 0 below the first threshold."""
    reached = _reached_tier(completed_referrals)
    return reached.days if reached else 0


def tier_for_count(completed_referrals: int) -> SubscriptionTier:
    reached = _reached_tier(completed_referrals)
    return reached.tier if reached else SubscriptionTier.FREE


def next_reward_tier(completed_referrals: int) -> RewardTier | None:
    """First schedule row still out of reach, or None past the last threshold."""
    for reward_tier in REWARD_TIERS:
        if completed_referrals < reward_tier.referrals:
            return reward_tier
    return None


# Checked in order; the first group with a matching substring wins.
_PRODUCT_TIER_MARKERS: tuple[tuple[SubscriptionTier, tuple[str, ...]], ...] = (
    (SubscriptionTier.DIAMOND, ("diamond", "29.99", "premium_plus")),
    (SubscriptionTier.PLATINUM, ("platinum", "19.99", "premium")),
    (SubscriptionTier.GOLD, ("gold", "9.99", "basic")),
)


def tier_for_product(product_id: Any) -> SubscriptionTier:
    """Map a store product identifier to a tier.

    Unrecognised paid products, including non-string ids, land on gold,
    never on free.
    """
    product = str(product_id).lower() if product_id is not None else ""
    for tier, markers in _PRODUCT_TIER_MARKERS:
        if any(marker in product for marker in markers):
            return tier
    return SubscriptionTier.GOLD


def as_utc(value: dt.datetime | None) -> dt.datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def is_future(value: dt.datetime | None, now: dt.datetime) -> bool:
    """Strictly after ``now``; an expiry equal to now has already lapsed."""
    value = as_utc(value)
    return value is not None and value > now


def extend_expiry(current: dt.datetime | None, days: int, now: dt.datetime) -> dt.datetime:
    """Add ``days`` to whichever is later of ``now`` and ``current``.

    Never moves an existing future expiry backwards.
    """
    current = as_utc(current)
    start = current if current is not None and current > now else now
    return start + dt.timedelta(days=days)


def isoformat(value: dt.datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def from_epoch_ms(value: int | float | str | None) -> dt.datetime | None:
    if value is None or value == "":
        return None
    return dt.datetime.fromtimestamp(int(value) / 1000, tz=dt.timezone.utc)
