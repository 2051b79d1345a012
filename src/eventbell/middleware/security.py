"""Security headers middleware.

Learn: Adds standard security headers to every HTTP response. The
WebSocket handshake isn't an HTTP response from the app's point of view,
so the cable gets its protection from the Origin allow-list instead.

Notification payloads are per-user, so anything under the notifications
API is also marked uncacheable.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    # JSON API: nothing here should ever load sub-resources or be framed
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

NO_STORE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

SENSITIVE_PREFIXES = ("/api/v1/notifications",)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if request.url.path.startswith(SENSITIVE_PREFIXES):
            response.headers.update(NO_STORE_HEADERS)
        # Only add HSTS on HTTPS connections
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response
