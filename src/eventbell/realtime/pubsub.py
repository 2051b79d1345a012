"""Redis pub/sub: cross-worker relay for notification streams.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine here: stream delivery is at-most-once anyway and the
client can always re-fetch over REST.

With several API workers a user's sockets may be spread across processes.
Publishing through Redis lets every worker's relay loop hand the event to
its own StreamRegistry. Without Redis the app publishes straight into the
local registry.

Channel naming: eventbell:notifications:{user_id}
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
import structlog

from eventbell.config import settings
from eventbell.realtime.registry import StreamRegistry, stream_key

logger = structlog.get_logger()

CHANNEL_PREFIX = "eventbell:notifications:"

# Relay reconnect backoff (seconds)
RELAY_RETRY_DELAY = 1.0
RELAY_MAX_RETRY_DELAY = 30.0

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def channel_for(identity: Any) -> str:
    return f"{CHANNEL_PREFIX}{stream_key(identity)}"


class RedisRelay:
    """Publisher that goes through Redis, plus the loop that fans back in.

    Learn: publish() has the same signature as StreamRegistry.publish, so
    services don't care which one app.state.publisher holds.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        registry: StreamRegistry,
        *,
        retry_delay: float = RELAY_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.redis = redis
        self.registry = registry
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def publish(
        self,
        identity: Any,
        event_type: str,
        payload: dict[str, Any],
    ) -> int:
        """PUBLISH the event; returns how many relay loops received it."""
        body = json.dumps({"type": event_type, **payload}, default=str)
        return await self.redis.publish(channel_for(identity), body)

    async def run(self) -> None:
        """Forward every relayed event to the local registry until cancelled.

        A dropped Redis connection is logged and retried with backoff; the
        loop only ends on cancellation.
        """
        delay = self.retry_delay
        while True:
            pubsub = self.redis.pubsub()
            try:
                await pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
                logger.info("eventbell.relay.listening", pattern=f"{CHANNEL_PREFIX}*")
                delay = self.retry_delay
                async for message in pubsub.listen():
                    if message["type"] != "pmessage":
                        continue
                    await self._forward(message["channel"], message["data"])
                logger.warning(
                    "eventbell.relay.error", error="stream ended", retry_in=delay
                )
            except asyncio.CancelledError:
                return
            except Exception as e:
                logger.warning("eventbell.relay.error", error=str(e), retry_in=delay)
            finally:
                await self._close_pubsub(pubsub)

            await self._sleep(delay)
            delay = min(delay * 2, RELAY_MAX_RETRY_DELAY)

    async def _close_pubsub(self, pubsub: Any) -> None:
        try:
            await pubsub.punsubscribe()
        except Exception as e:
            # Connection is already gone
            logger.debug("eventbell.relay.unsubscribe_failed", error=str(e))
        await pubsub.aclose()

    async def _forward(self, channel: str, data: str) -> None:
        identity = channel[len(CHANNEL_PREFIX):]
        try:
            event = json.loads(data)
            event_type = event.pop("type")
        except (ValueError, KeyError, AttributeError):
            logger.warning("eventbell.relay.malformed", channel=channel)
            return
        await self.registry.publish(identity, event_type, event)
