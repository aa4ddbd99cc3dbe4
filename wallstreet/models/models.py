from __future__ import annotations

import datetime as dt
import enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from wallstreet.db.base_class import Base

if TYPE_CHECKING:
    from wallstreet.models.referral_models import Referral
else:
    # Import at runtime for SQLAlchemy relationship resolution
    from wallstreet.models import referral_models  # noqa: F401
    Referral = "Referral"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class SubscriptionTier(str, enum.Enum):
    """Subscription tiers, ordered free < gold < platinum < diamond."""
    FREE = "free"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"

    @property
    def is_paid(self) -> bool:
        return self != SubscriptionTier.FREE


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class User(Base):
    """The slice of the app's user record the entitlement backend touches."""

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    username: Mapped[str | None] = mapped_column(String(60), unique=True, nullable=True, index=True)
    profile_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    # Referral program
    referral_code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True, index=True)
    referred_by_id: Mapped[int | None] = mapped_column(ForeignKey("user.id"), nullable=True, index=True)
    referral_premium_days: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    referral_premium_expiry: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Effective subscription state, written by referral rewards and billing webhooks alike
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        Enum(SubscriptionTier),
        default=SubscriptionTier.FREE,
        server_default=SubscriptionTier.FREE.name,
    )
    subscription_status: Mapped[SubscriptionStatus | None] = mapped_column(
        Enum(SubscriptionStatus),
        nullable=True,
    )
    subscription_expiry: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Billing passthrough (display only)
    subscription_product_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    current_plan: Mapped[str | None] = mapped_column(String(120), nullable=True)
    next_billing_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    referred_by: Mapped[User | None] = relationship(
        "User",
        remote_side="User.id",
        foreign_keys=[referred_by_id],
    )
    referrals_made: Mapped[list[Referral]] = relationship(
        "Referral",
        back_populates="referrer",
        foreign_keys="Referral.referrer_id",
    )  # type: ignore

    @property
    def display_name(self) -> str | None:
        return self.name or self.username
