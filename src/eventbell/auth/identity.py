"""Identity resolution: token → active user.

Learn: Shared by the REST dependency and the WebSocket authenticator so
both surfaces refuse exactly the same credentials. Expired, malformed,
badly signed and absent tokens all end up as the same AuthenticationFailure;
only the `reason` differs, and that is for logs, not for the client.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventbell.auth.jwt import TokenError, verify_token
from eventbell.db.models import User


class AuthenticationFailure(Exception):
    """Raised when a credential can't be turned into an active identity."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class Identity:
    """The authenticated user a request or stream is scoped to."""

    user_id: int
    email: Optional[str] = None


def subject_from_token(token: Optional[str]) -> int:
    """Verify the token and return its `user_id` claim."""
    if not token:
        raise AuthenticationFailure("missing_token")

    try:
        payload = verify_token(token)
    except TokenError as e:
        raise AuthenticationFailure(str(e))

    # Refresh tokens can't open streams or call the API
    if payload.get("type", "access") != "access":
        raise AuthenticationFailure("not_an_access_token")

    try:
        return int(payload["user_id"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationFailure("token_without_user_id")


async def resolve_identity(token: Optional[str], db: AsyncSession) -> Identity:
    """Turn a bearer credential into an Identity, or raise AuthenticationFailure."""
    user_id = subject_from_token(token)

    q = select(User).where(User.id == user_id, User.active.is_(True))
    result = await db.execute(q)
    user = result.scalars().first()
    if not user:
        raise AuthenticationFailure("unknown_or_inactive_user")

    return Identity(user_id=user.id, email=user.email)
