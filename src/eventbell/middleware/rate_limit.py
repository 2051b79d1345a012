"""Rate limiting middleware: Redis-based fixed window per minute.

Learn: Each IP gets a counter key like "eventbell:rl:{ip}:{bucket}:{minute}".
Writes (PATCH/POST/PUT/DELETE, i.e. the mark-read endpoints) get a
stricter bucket than reads, so a runaway client can't hammer the DB with
read-flips or their stream broadcasts.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, write_rpm: int = 30):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.write_rpm = write_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        # Try to get Redis; skip rate limiting if unavailable
        try:
            from eventbell.realtime.pubsub import get_redis

            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_write = request.method in WRITE_METHODS
        rpm = self.write_rpm if is_write else self.default_rpm
        bucket = "write" if is_write else "read"

        window = int(time.time() // 60)
        key = f"eventbell:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)  # 2-min TTL for safety
        except Exception:
            # Redis error; don't block the request
            return await call_next(request)

        if count > rpm:
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "Rate limit exceeded. Try again later.",
                },
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
