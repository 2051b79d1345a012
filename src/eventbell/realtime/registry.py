"""Per-user stream registry: identity → live subscriptions.

Learn: This is the only shared mutable state in the real-time path.
Everything runs on one event loop, so plain dict/set mutations between
awaits are safe without a lock. Two rules keep it honest:

1. A subscription is removed exactly once. close and error can race for
   the same socket; the `active` flag makes the second removal a no-op.
2. publish() snapshots the subscriber set before awaiting any send, so a
   socket closing mid-fan-out can't mutate the set being iterated.

Publishing to a user with no open sockets drops the event (no queue).
"""

import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from eventbell.realtime.protocol import message_frame

logger = structlog.get_logger()

_subscription_ids = itertools.count(1)


class Sendable(Protocol):
    """Anything we can push a text frame to (Starlette WebSocket, test doubles)."""

    async def send_text(self, data: str) -> None: ...


@dataclass(eq=False)
class Subscription:
    """One live socket's binding to one identity's stream."""
    identity: str
    connection: Sendable
    id: int = field(default_factory=lambda: next(_subscription_ids))
    active: bool = True


def stream_key(identity: Any) -> str:
    """Normalize an identity (int user id or str) to a registry key."""
    return str(identity)


class StreamRegistry:
    """In-process fan-out of stream events to subscribed sockets."""

    def __init__(self):
        self._streams: dict[str, set[Subscription]] = {}

    def add(self, identity: Any, connection: Sendable) -> Subscription:
        """Bind a connection to an identity's stream."""
        sub = Subscription(identity=stream_key(identity), connection=connection)
        self._streams.setdefault(sub.identity, set()).add(sub)
        logger.info(
            "eventbell.stream.subscribed",
            user_id=sub.identity,
            subscription_id=sub.id,
            connections=len(self._streams[sub.identity]),
        )
        return sub

    def remove(self, sub: Subscription) -> bool:
        """Unbind a subscription. Returns False if it was already removed."""
        if not sub.active:
            return False
        sub.active = False

        subs = self._streams.get(sub.identity)
        if subs is not None:
            subs.discard(sub)
            if not subs:
                del self._streams[sub.identity]

        logger.info(
            "eventbell.stream.unsubscribed",
            user_id=sub.identity,
            subscription_id=sub.id,
        )
        return True

    def subscriptions(self, identity: Any) -> list[Subscription]:
        return list(self._streams.get(stream_key(identity), ()))

    def count(self, identity: Any = None) -> int:
        """Live subscriptions for one identity, or in total."""
        if identity is not None:
            return len(self._streams.get(stream_key(identity), ()))
        return sum(len(subs) for subs in self._streams.values())

    async def publish(
        self,
        identity: Any,
        event_type: str,
        payload: dict[str, Any],
    ) -> int:
        """Deliver an event to every live subscription of `identity`.

        Returns the number of sockets the frame was written to.
        """
        return await self.deliver(identity, message_frame(event_type, payload))

    async def deliver(self, identity: Any, frame: dict[str, Any]) -> int:
        subs = self.subscriptions(identity)
        if not subs:
            logger.debug(
                "eventbell.stream.dropped",
                user_id=stream_key(identity),
                event_type=frame.get("message", {}).get("type"),
            )
            return 0

        text = json.dumps(frame, default=str)
        delivered = 0
        for sub in subs:
            if not sub.active:
                continue
            try:
                await sub.connection.send_text(text)
                delivered += 1
            except Exception as e:
                # Dead socket. Its own handler sees the close too, remove() is idempotent
                logger.warning(
                    "eventbell.stream.send_failed",
                    user_id=sub.identity,
                    subscription_id=sub.id,
                    error=str(e),
                )
                self.remove(sub)
        return delivered
