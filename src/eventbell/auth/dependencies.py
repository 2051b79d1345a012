"""FastAPI auth dependencies.

Learn: Used as Depends() in route handlers to extract and validate the
current identity from the `Authorization: Bearer` header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from eventbell.auth.identity import AuthenticationFailure, Identity, resolve_identity
from eventbell.db.engine import get_db


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Extract current identity (required; 401 if no valid auth)."""
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()

    try:
        return await resolve_identity(token, db)
    except AuthenticationFailure:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
