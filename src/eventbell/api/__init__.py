"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health is open; notifications need a bearer token
(the handlers also take the identity, to scope every query to its owner).
"""

from fastapi import APIRouter, Depends

from eventbell.api.health import router as health_router
from eventbell.api.notifications import router as notifications_router
from eventbell.auth.dependencies import get_current_user

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes; no auth required
api_router.include_router(health_router, tags=["health"])

# Protected routes; require a valid JWT for an active user
api_router.include_router(notifications_router, tags=["notifications"], dependencies=_auth)
