"""Notification broadcaster: typed events onto a user's stream.

Learn: Services never build frames themselves. They call the broadcaster,
which knows the payload shape of each event type and hands it to whatever
publisher the app was started with (StreamRegistry or RedisRelay).
"""

from typing import Any, Protocol

from starlette.requests import HTTPConnection

from eventbell.events.types import (
    ALL_NOTIFICATIONS_READ,
    NEW_NOTIFICATION,
    NOTIFICATION_COUNT,
    NOTIFICATION_UPDATED,
)
from eventbell.schemas.notification import NotificationRead


class Publisher(Protocol):
    async def publish(
        self, identity: Any, event_type: str, payload: dict[str, Any]
    ) -> int: ...


class NotificationBroadcaster:
    """Maps notification changes to stream events."""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    async def new_notification(self, user_id: int, notification: NotificationRead) -> None:
        await self.publisher.publish(
            user_id, NEW_NOTIFICATION, {"notification": notification.to_wire()}
        )

    async def notification_updated(
        self, user_id: int, notification: NotificationRead
    ) -> None:
        await self.publisher.publish(
            user_id, NOTIFICATION_UPDATED, {"notification": notification.to_wire()}
        )

    async def notification_count(self, user_id: int, unread_count: int) -> None:
        await self.publisher.publish(
            user_id, NOTIFICATION_COUNT, {"unread_count": unread_count}
        )

    async def all_read(self, user_id: int) -> None:
        await self.publisher.publish(user_id, ALL_NOTIFICATIONS_READ, {"count": 0})


def get_broadcaster(conn: HTTPConnection) -> NotificationBroadcaster:
    """FastAPI dependency, works for both HTTP requests and WebSockets."""
    return NotificationBroadcaster(conn.app.state.publisher)
