"""
Referral API routes: the caller's referral dashboard, code lookups, and
code redemption.
"""
from typing import Annotated

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from wallstreet.api.dependencies import CurrentUserDep, DbDep, get_current_user_id
from wallstreet.api.rate_limit import RATE_LIMITS, limiter
from wallstreet.services.referral_service import ReferralService

router = APIRouter(prefix="/referrals", tags=["Referrals"])


# ==================== SCHEMAS ====================

class ReferralActionRequest(BaseModel):
    """Body of ``POST /referrals``: either ``{"action": "init"}`` or ``{"referralCode": ...}``."""
    model_config = ConfigDict(extra="ignore")

    action: str | None = None
    referralCode: str | int | None = None


class ReferrerSummary(BaseModel):
    id: int
    name: str | None = None
    profileImage: str | None = None


class ValidateCodeResponse(BaseModel):
    """Result of looking up someone else's referral code."""
    valid: bool
    referrer: ReferrerSummary | None = None


# ==================== ENDPOINTS ====================

@router.get("")
@limiter.limit(RATE_LIMITS["referral_read"])
async def get_referrals(
    request: Request,
    db: DbDep,
    code: Annotated[str | None, Query()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
):
    """
    Referral dashboard for the caller, or a code lookup when ``?code=`` is set.

    The dashboard lazily creates the caller's referral code and includes:
    - Completed and pending referral counts
    - Premium earned from referrals and when it runs out
    - The next reward threshold
    - Referral history, newest first
    """
    service = ReferralService(db)
    if code:
        owner = service.get_user_by_code(code)
        if owner is None:
            return {"valid": False}
        return {"valid": True, "referrer": {"id": owner.id, "name": owner.display_name}}

    user_id = get_current_user_id(x_user_id)
    return service.get_referral_data(user_id)


@router.post("")
@limiter.limit(RATE_LIMITS["referral_redeem"])
async def post_referrals(
    request: Request,
    user_id: CurrentUserDep,
    db: DbDep,
    payload: ReferralActionRequest,
):
    """
    Initialise the caller's own code (``action: "init"``) or redeem someone
    else's code (``referralCode``).
    """
    service = ReferralService(db)
    if payload.action == "init":
        return {"referralCode": service.init_code(user_id)}

    code = str(payload.referralCode) if payload.referralCode is not None else None
    return service.redeem_code(user_id, code)


@router.get("/validate", response_model=ValidateCodeResponse, response_model_exclude_unset=True)
@limiter.limit(RATE_LIMITS["referral_validate"])
async def validate_referral_code(
    request: Request,
    db: DbDep,
    code: Annotated[str | None, Query()] = None,
):
    """
    Validate a referral code (public endpoint for the signup form).
    """
    if not code:
        return JSONResponse(status_code=400, content={"valid": False, "error": "Code is required"})

    owner = ReferralService(db).get_user_by_code(code)
    if owner is None:
        return ValidateCodeResponse(valid=False)

    return ValidateCodeResponse(
        valid=True,
        referrer=ReferrerSummary(
            id=owner.id,
            name=owner.display_name or "User",
            profileImage=owner.profile_image,
        ),
    )
