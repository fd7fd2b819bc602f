"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from common_stage.core.errors import AuthorizationError
from common_stage.core.security import decode_subject
from common_stage.db.session import get_db
from common_stage.models import Profile
from common_stage.services.geocoding import GeocodingClient, get_geocoding_client
from common_stage.services.notifications import EmailNotifier, get_email_notifier
from common_stage.services.realtime import ChangeFeed, get_change_feed
from common_stage.services.storage import AvatarStorage, get_avatar_storage

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Return the user id from a valid bearer token.

    Raises:
        HTTPException: If the token is invalid
    """
    try:
        return decode_subject(credentials.credentials)
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


CurrentUserIdDep = Annotated[str, Depends(get_current_user_id)]

optional_bearer_scheme = HTTPBearer(auto_error=False)


def get_optional_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(optional_bearer_scheme)],
) -> str | None:
    """Return the caller's user id, or None for anonymous or invalid tokens."""
    if credentials is None:
        return None
    try:
        return decode_subject(credentials.credentials)
    except JWTError:
        return None


OptionalUserIdDep = Annotated[str | None, Depends(get_optional_user_id)]


def get_current_user(user_id: CurrentUserIdDep, db: SessionDep) -> Profile:
    """Get the current authenticated user's profile.

    Raises:
        HTTPException: If the token's user has no profile yet
    """
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return profile


# Type alias for current user dependency
CurrentUserDep = Annotated[Profile, Depends(get_current_user)]


def get_current_admin(current_user: CurrentUserDep) -> Profile:
    """Gate admin screens; each moderation action re-checks on its own."""
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


AdminDep = Annotated[Profile, Depends(get_current_admin)]

ChangeFeedDep = Annotated[ChangeFeed, Depends(get_change_feed)]
EmailNotifierDep = Annotated[EmailNotifier, Depends(get_email_notifier)]
AvatarStorageDep = Annotated[AvatarStorage, Depends(get_avatar_storage)]
GeocodingClientDep = Annotated[GeocodingClient, Depends(get_geocoding_client)]
