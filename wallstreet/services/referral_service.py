"""
Referral service: referral codes, redemption, and referrer rewards.

Business rules:
- Each user gets one deterministic code (name letters + id suffix + year)
- A user can redeem one code, once, and never their own
- Redeeming grants the redeemer a flat 7-day Gold bonus
- The code owner's reward follows REWARD_TIERS: the completed-referral count
  picks the days and tier, and the days extend the owner's current expiry
  rather than replacing it
"""
from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from wallstreet import metrics
from wallstreet.core.config import settings
from wallstreet.core.exceptions import (
    AlreadyReferredError,
    DuplicateReferralError,
    InternalError,
    InvalidInputError,
    ReferralCodeNotFoundError,
    SelfReferralError,
    UserNotFoundError,
)
from wallstreet.models.models import SubscriptionStatus, SubscriptionTier, User
from wallstreet.models.referral_models import (
    COUNTED_STATUSES,
    Referral,
    ReferralStatus,
    generate_referral_code,
    normalize_referral_code,
)
from wallstreet.services.tiers import (
    REWARD_TIERS,
    days_for_count,
    extend_expiry,
    is_future,
    isoformat,
    next_reward_tier,
    tier_for_count,
)

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ReferralService:
    """Service for managing the referral program."""

    def __init__(self, db: Session):
        self.db = db

    # ==================== LOOKUPS ====================

    def _get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def get_user_by_code(self, code: str) -> User | None:
        """Look up the owner of a referral code, ignoring case."""
        if not code or not code.strip():
            return None
        return self.db.execute(
            select(User).where(User.referral_code == normalize_referral_code(code))
        ).scalar_one_or_none()

    def _count_referrals(self, referrer_id: int, statuses: tuple[ReferralStatus, ...]) -> int:
        result = self.db.execute(
            select(func.count(Referral.id))
            .where(Referral.referrer_id == referrer_id)
            .where(Referral.status.in_(statuses))
        ).scalar()
        return result or 0

    def _get_completed_referral_count(self, referrer_id: int) -> int:
        """Completed and rewarded rows both count; the table is the source of truth."""
        return self._count_referrals(referrer_id, COUNTED_STATUSES)

    def _referral_exists(self, referrer_id: int, referred_user_id: int) -> bool:
        return self.db.execute(
            select(Referral.id)
            .where(Referral.referrer_id == referrer_id)
            .where(Referral.referred_user_id == referred_user_id)
        ).scalar_one_or_none() is not None

    # ==================== REFERRAL CODE MANAGEMENT ====================

    def _code_taken(self, code: str, user_id: int) -> bool:
        owner_id = self.db.execute(
            select(User.id).where(User.referral_code == code)
        ).scalar_one_or_none()
        return owner_id is not None and owner_id != user_id

    def get_or_create_referral_code(self, user: User, now: dt.datetime | None = None) -> str:
        """
        Return the user's referral code, generating and persisting it on first use.
        """
        if user.referral_code:
            return user.referral_code

        now = now or _utcnow()
        user_id = user.id
        regular = generate_referral_code(user_id, user.display_name, now.year)
        widened = generate_referral_code(user_id, user.display_name, now.year, full_id=True)

        for code in (regular, widened):
            if self._code_taken(code, user_id):
                # Another user shares the last four id digits and name letters
                logger.warning("Referral code %s taken for user %s", code, user_id)
                continue
            user.referral_code = code
            try:
                self.db.commit()
            except IntegrityError:
                # Claimed by a concurrent request between the check and the commit
                self.db.rollback()
                logger.warning("Referral code %s claimed concurrently for user %s", code, user_id)
                continue
            logger.info("Created referral code %s for user %s", code, user_id)
            return code

        logger.error("No free referral code for user %s (tried %s, %s)", user_id, regular, widened)
        raise InternalError("Failed to create referral code")

    def init_code(self, user_id: int) -> str:
        user = self._get_user(user_id)
        return self.get_or_create_referral_code(user)

    # ==================== STATISTICS ====================

    def get_referral_data(self, user_id: int, now: dt.datetime | None = None) -> dict:
        """
        Referral dashboard for a user: code, stats, next reward, and history.
        """
        now = now or _utcnow()
        user = self._get_user(user_id)
        referral_code = self.get_or_create_referral_code(user, now)

        completed = self._get_completed_referral_count(user.id)
        pending = self._count_referrals(user.id, (ReferralStatus.PENDING,))

        upcoming = next_reward_tier(completed)
        next_tier = None
        if upcoming is not None:
            next_tier = {
                "referralsNeeded": upcoming.referrals - completed,
                "reward": upcoming.reward,
                "days": upcoming.days,
            }

        referrals = self.db.execute(
            select(Referral)
            .options(joinedload(Referral.referred_user))
            .where(Referral.referrer_id == user.id)
            .order_by(Referral.created_at.desc(), Referral.id.desc())
        ).scalars().all()

        return {
            "referralCode": referral_code,
            "stats": {
                "completedReferrals": completed,
                "pendingReferrals": pending,
                "totalDaysEarned": days_for_count(completed),
                "isPremiumFromReferrals": is_future(user.referral_premium_expiry, now),
                "premiumExpiry": isoformat(user.referral_premium_expiry),
            },
            "nextTier": next_tier,
            "referrals": [self._serialize_referral(r) for r in referrals],
            "rewardTiers": [t.as_dict() for t in REWARD_TIERS],
        }

    @staticmethod
    def _serialize_referral(referral: Referral) -> dict:
        referred = referral.referred_user
        return {
            "id": referral.id,
            "status": referral.status.value,
            "rewardDays": referral.reward_days,
            "createdAt": isoformat(referral.created_at),
            "completedAt": isoformat(referral.completed_at),
            "rewardedAt": isoformat(referral.rewarded_at),
            "referredUser": {
                "id": referred.id,
                "name": referred.display_name,
                "profileImage": referred.profile_image,
                "joinedAt": isoformat(referred.created_at),
            },
        }

    # ==================== REDEMPTION ====================

    def redeem_code(self, user_id: int, code: str | None, now: dt.datetime | None = None) -> dict:
        """
        Apply someone else's referral code for the acting user.

        All rule checks run before anything is written. The referral row, the
        referred-by link, the owner's reward and the redeemer's bonus are
        committed together or not at all.
        """
        if not code or not code.strip():
            metrics.referral_rejected("invalid_input")
            raise InvalidInputError("Referral code is required", field="referralCode")

        now = now or _utcnow()
        normalized = normalize_referral_code(code)
        user = self._get_user(user_id)

        if user.referred_by_id is not None:
            metrics.referral_rejected("already_referred")
            raise AlreadyReferredError()

        if user.referral_code and user.referral_code == normalized:
            metrics.referral_rejected("self_referral")
            raise SelfReferralError()

        owner = self.get_user_by_code(normalized)
        if owner is None:
            metrics.referral_rejected("code_not_found")
            raise ReferralCodeNotFoundError(normalized)
        if owner.id == user.id:
            metrics.referral_rejected("self_referral")
            raise SelfReferralError()

        owner_id, user_id = owner.id, user.id
        if self._referral_exists(owner_id, user_id):
            metrics.referral_rejected("duplicate")
            raise DuplicateReferralError(owner_id, user_id)

        try:
            # Only the first redemption may set referred_by; a concurrent one sees rowcount 0
            linked = self.db.execute(
                update(User)
                .where(User.id == user_id)
                .where(User.referred_by_id.is_(None))
                .values(referred_by_id=owner_id)
                .execution_options(synchronize_session="evaluate")
            )
            if linked.rowcount == 0:
                self.db.rollback()
                metrics.referral_rejected("already_referred")
                raise AlreadyReferredError()

            self.db.add(
                Referral(
                    referrer_id=owner_id,
                    referred_user_id=user_id,
                    referral_code=normalized,
                    status=ReferralStatus.COMPLETED,
                    completed_at=now,
                )
            )
            self.db.flush()

            owner_days = self._reward_referrer(owner, now)
            bonus_expiry = self._grant_signup_bonus(user, now)
            self.db.commit()
        except IntegrityError as exc:
            # A concurrent request inserted the same pair first
            self.db.rollback()
            metrics.referral_rejected("duplicate")
            raise DuplicateReferralError(owner_id, user_id) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to apply referral code %s for user %s", normalized, user_id)
            raise InternalError("Failed to apply referral code") from exc

        metrics.referral_redeemed()
        logger.info(
            "User %s redeemed %s from user %s (owner reward: %d days)",
            user.id,
            normalized,
            owner.id,
            owner_days,
        )

        return {
            "success": True,
            "message": "Referral code applied successfully!",
            "reward": {
                "referrerName": owner.display_name,
                "daysEarned": settings.REFERRAL_SIGNUP_BONUS_DAYS,
                "expiresAt": isoformat(bonus_expiry),
            },
        }

    # ==================== REWARD MANAGEMENT ====================

    def _reward_referrer(self, owner: User, now: dt.datetime) -> int:
        """
        Re-derive the owner's reward from their completed count and apply it.

        Returns the days granted (0 below the first threshold). Every row still
        in ``completed`` is stamped with this batch's days, including rows that
        reached ``completed`` in earlier requests.
        """
        completed = self._get_completed_referral_count(owner.id)
        total_days = days_for_count(completed)
        if total_days <= 0:
            return 0

        tier = tier_for_count(completed)
        new_expiry = extend_expiry(owner.referral_premium_expiry, total_days, now)

        owner.referral_premium_days = total_days
        owner.referral_premium_expiry = new_expiry
        owner.subscription_tier = tier
        owner.subscription_status = SubscriptionStatus.ACTIVE
        owner.subscription_expiry = new_expiry

        self.db.execute(
            update(Referral)
            .where(Referral.referrer_id == owner.id)
            .where(Referral.status == ReferralStatus.COMPLETED)
            .values(
                status=ReferralStatus.REWARDED,
                reward_days=total_days,
                rewarded_at=now,
            )
            .execution_options(synchronize_session="fetch")
        )

        metrics.referral_reward_granted(tier.value)
        logger.info(
            "Rewarded user %s: %d completed referrals -> %d days %s until %s",
            owner.id,
            completed,
            total_days,
            tier.value,
            new_expiry.isoformat(),
        )
        return total_days

    def _grant_signup_bonus(self, user: User, now: dt.datetime) -> dt.datetime:
        """Flat new-user incentive, independent of the reward schedule."""
        bonus_days = settings.REFERRAL_SIGNUP_BONUS_DAYS
        expiry = now + dt.timedelta(days=bonus_days)
        user.referral_premium_days = bonus_days
        user.referral_premium_expiry = expiry
        user.subscription_tier = SubscriptionTier.GOLD
        user.subscription_status = SubscriptionStatus.ACTIVE
        user.subscription_expiry = expiry
        return expiry
