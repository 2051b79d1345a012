"""JWT token creation and verification.

Learn: Tokens are minted by the platform's auth service; this package only
needs to verify them. create_access_token exists for the dev CLI and tests.

The token carries `user_id` (the stream identity), `type`, `exp`, `iat`
and a unique `jti`.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from eventbell.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: int,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "user_id": user_id,
        "type": "access",
        "exp": expires,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
