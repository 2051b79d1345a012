"""Connection authenticator: gatekeeper for every WebSocket handshake.

Learn: Runs before `websocket.accept()`. The credential is looked up in
this order, first non-empty wins:
1. `?token=<jwt>` query param (browsers can't set headers on WebSockets)
2. `Authorization: Bearer <jwt>` header (native clients)

Nothing is registered until authenticate() returns; a refused socket
leaves no trace in the stream registry.
"""

import re
from typing import Mapping, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventbell.auth.identity import AuthenticationFailure, Identity, resolve_identity

logger = structlog.get_logger()


def extract_token(
    query_params: Mapping[str, str],
    headers: Mapping[str, str],
) -> Optional[str]:
    """Pull the bearer credential out of a handshake request."""
    token = query_params.get("token")
    if token:
        return token

    auth_header = headers.get("authorization") or headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None

    return None


def origin_allowed(origin: Optional[str], allowed: list[str]) -> bool:
    """Check a browser Origin against the allow-list (regex patterns).

    Non-browser clients send no Origin and are let through; the token
    check still applies to them.
    """
    if not origin or not allowed:
        return True
    return any(re.fullmatch(pattern, origin) for pattern in allowed)


class ConnectionAuthenticator:
    """Accept/refuse decision for one handshake."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def authenticate(
        self,
        query_params: Mapping[str, str],
        headers: Mapping[str, str],
    ) -> Identity:
        """Return the connecting Identity, or raise AuthenticationFailure."""
        token = extract_token(query_params, headers)
        try:
            async with self.session_factory() as db:
                identity = await resolve_identity(token, db)
        except AuthenticationFailure as e:
            logger.info("eventbell.cable.refused", reason=e.reason)
            raise

        logger.info("eventbell.cable.accepted", user_id=identity.user_id)
        return identity
