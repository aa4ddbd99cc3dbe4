"""Common request dependencies."""
from typing import Annotated, TypeAlias

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from wallstreet.core.exceptions import UnauthorizedError
from wallstreet.db.session import get_db
from wallstreet.services.subscription_service import parse_user_id


def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> int:
    """
    Resolve the acting user from the ``x-user-id`` header.

    Identity is established upstream by the app's auth layer, which forwards
    the internal user id. Missing or non-numeric ids are rejected with 401.
    """
    user_id = parse_user_id(x_user_id)
    if user_id is None:
        raise UnauthorizedError("User ID required")
    return user_id


CurrentUserDep: TypeAlias = Annotated[int, Depends(get_current_user_id)]
DbDep: TypeAlias = Annotated[Session, Depends(get_db)]
