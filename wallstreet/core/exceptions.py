"""Exception hierarchy for the WallStreetStocks backend.

Every error the API reports on purpose derives from ``WallStreetException`` so
the handler in ``wallstreet.core.errors`` can turn it into a JSON body with the
right status code.

Error codes follow pattern: [CATEGORY][NUMBER]
- REQ: Malformed requests (001-099)
- AUTH/USR: Caller identity and users (100-199)
- REF: Referral program rules (200-299)
- SYS: System errors (400-499)
"""

from __future__ import annotations

from typing import Any


class WallStreetException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with a user-facing message and metadata.

        Args:
            message: User-facing error message
            code: Unique error code (e.g., "REF201")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# ============================================================================
# REQUEST ERRORS (REQ001-099)
# ============================================================================

class InvalidInputError(WallStreetException):
    """A required request field is missing or malformed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="REQ001",
            status_code=400,
            details={"field": field} if field else {},
        )


# ============================================================================
# USER/AUTH ERRORS (AUTH100, USR100-199)
# ============================================================================

class UserError(WallStreetException):
    """Base class for caller identity and user lookup errors."""
    pass


class UnauthorizedError(UserError):
    """Caller identity or webhook secret is missing or wrong."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            code="AUTH100",
            status_code=401,
        )


class UserNotFoundError(UserError):
    """User does not exist."""

    def __init__(self, user_id: int | None = None):
        super().__init__(
            message="User not found",
            code="USR100",
            status_code=404,
            details={"user_id": user_id} if user_id is not None else {},
        )


# ============================================================================
# REFERRAL ERRORS (REF200-299)
# ============================================================================

class ReferralError(WallStreetException):
    """Base class for referral business-rule violations.

    The mobile client shows these messages as-is, and they all map to 400
    to match what the app already handles.
    """
    pass


class AlreadyReferredError(ReferralError):
    """The acting user redeemed a code before; redemption is once per user."""

    def __init__(self):
        super().__init__(
            message="You have already used a referral code",
            code="REF200",
        )


class SelfReferralError(ReferralError):
    """The acting user tried to redeem their own code."""

    def __init__(self):
        super().__init__(
            message="You cannot use your own referral code",
            code="REF201",
        )


class ReferralCodeNotFoundError(ReferralError):
    """No user owns the submitted code."""

    def __init__(self, code: str):
        super().__init__(
            message="Invalid referral code",
            code="REF202",
            details={"referral_code": code},
        )


class DuplicateReferralError(ReferralError):
    """A referral row for this (referrer, referred) pair already exists."""

    def __init__(self, referrer_id: int, referred_user_id: int):
        super().__init__(
            message="This referral has already been recorded",
            code="REF203",
            details={"referrer_id": referrer_id, "referred_user_id": referred_user_id},
        )


# ============================================================================
# SYSTEM ERRORS (SYS400-499)
# ============================================================================

class InternalError(WallStreetException):
    """The store failed while applying a change; the transaction was rolled back."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(
            message=message,
            code="SYS400",
            status_code=500,
        )
