"""Bearer token helpers.

Tokens are issued by the auth provider; this service only needs to verify
them and read the user id from the ``sub`` claim. ``create_access_token`` is
kept for local tooling and tests.
"""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from common_stage.core.settings import settings


def create_access_token(subject: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a signed JWT whose ``sub`` is the user id."""
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_subject(token: str) -> str:
    """Return the user id carried by ``token``.

    Raises:
        JWTError: If the token is malformed, expired, badly signed or has no subject
    """
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise JWTError("Token has no subject")
    return subject
