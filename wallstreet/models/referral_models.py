"""
Referral records: who redeemed whose code, and where each row sits in the
reward lifecycle.

A row is created once, at redemption, already ``completed``. Whenever the
referrer's completed count reaches a reward threshold every still-completed
row is flipped to ``rewarded``. Rows are never deleted or moved back, so the
completed+rewarded count per referrer only grows.
"""
from __future__ import annotations

import datetime as dt
import enum
import re
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from wallstreet.db.base_class import Base

if TYPE_CHECKING:
    from wallstreet.models.models import User


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


_NON_LETTERS = re.compile(r"[^a-zA-Z]")


def generate_referral_code(
    user_id: int,
    display_name: str | None,
    year: int,
    full_id: bool = False,
) -> str:
    """Build the deterministic referral code for a user.

    Up to four uppercase letters from the display name ("USER" when it has
    none), the last four digits of the id zero-padded, then the year:
    ``generate_referral_code(1, "Alice", 2025) == "ALIC00012025"``.

    ``full_id`` keeps every digit of the id and puts an ``X`` before the
    year: ``generate_referral_code(1, "Alice", 2025, full_id=True) ==
    "ALIC1X2025"``. The ``X`` never appears after the digits of a regular
    code, and the id is unique, so these codes cannot collide with any other.
    """
    letters = _NON_LETTERS.sub("", display_name or "").upper()[:4] or "USER"
    if full_id:
        return f"{letters}{user_id}X{year}"
    return f"{letters}{str(user_id)[-4:].zfill(4)}{year}"


def normalize_referral_code(code: str) -> str:
    return code.strip().upper()


class ReferralStatus(str, enum.Enum):
    """Status of a referral."""
    PENDING = "pending"  # Reserved; redemption goes straight to completed
    COMPLETED = "completed"  # Counted towards the referrer's rewards
    REWARDED = "rewarded"  # Counted, and included in a reward batch


COUNTED_STATUSES = (ReferralStatus.COMPLETED, ReferralStatus.REWARDED)


class Referral(Base):
    """
    Track each referral: who referred whom.
    """
    __tablename__ = "referral"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_user_id", name="uq_referral_referrer_referred"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    referrer_id: Mapped[int] = mapped_column(ForeignKey("user.id"), index=True)  # Owner of the code
    referred_user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), index=True)  # The user who redeemed it
    referral_code: Mapped[str] = mapped_column(String(20))  # Code as redeemed; immutable

    status: Mapped[ReferralStatus] = mapped_column(
        Enum(ReferralStatus),
        default=ReferralStatus.PENDING,
        index=True,
    )
    reward_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rewarded_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    referrer: Mapped["User"] = relationship(
        "User",
        back_populates="referrals_made",
        foreign_keys=[referrer_id],
    )
    referred_user: Mapped["User"] = relationship("User", foreign_keys=[referred_user_id])
