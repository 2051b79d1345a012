"""Client-side notification store.

Learn: One list (most-recent-first) and one unread counter, fed by three
sources:

1. fetch(): bulk REST load. Replaces the list and recounts from scratch.
2. Transport events: incremental updates pushed by the server.
3. User actions: mark_as_read / mark_all_as_read flip local state
   optimistically, then call the REST API.

If a REST call fails the optimistic state stays, the store is flagged
`stale`, and (by default) the next bulk fetch reconciles it with the
server. The counter never goes below zero.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from eventbell.client.alerts import DesktopAlert, NullDesktopAlert
from eventbell.client.api import NotificationsAPI
from eventbell.client.errors import EventbellClientError
from eventbell.client.transport import NotificationTransport
from eventbell.events import types as events
from eventbell.schemas.notification import NotificationRead

logger = logging.getLogger("eventbell.client.store")


class NotificationStore:
    def __init__(
        self,
        api: NotificationsAPI,
        *,
        alert: Optional[DesktopAlert] = None,
        reconcile_on_failure: bool = True,
        per_page: int = 50,
    ):
        self.api = api
        self.alert = alert or NullDesktopAlert()
        self.reconcile_on_failure = reconcile_on_failure
        self.per_page = per_page

        self.notifications: list[NotificationRead] = []
        self._unread_count = 0
        self.is_loading = False
        self.error: Optional[str] = None
        self.stale = False

    @property
    def unread_count(self) -> int:
        return self._unread_count

    @unread_count.setter
    def unread_count(self, value: int) -> None:
        self._unread_count = max(0, int(value))

    # ─── Bulk load ────────────────────────────────────────

    async def fetch(self) -> None:
        """Replace everything with the server's current first page."""
        self.is_loading = True
        self.error = None
        try:
            raw = await self.api.list_notifications(per_page=self.per_page)
            self.notifications = [NotificationRead.model_validate(n) for n in raw]
            self.recount()
            self.stale = False
        except (EventbellClientError, ValidationError) as e:
            logger.error("Failed to fetch notifications: %s", e)
            self.error = str(e)
        finally:
            self.is_loading = False

    def recount(self) -> int:
        self.unread_count = sum(1 for n in self.notifications if not n.read)
        return self.unread_count

    def clear(self) -> None:
        self.notifications = []
        self.unread_count = 0
        self.error = None
        self.stale = False

    # ─── Transport binding ────────────────────────────────

    def _handlers(self):
        return (
            (events.NEW_NOTIFICATION, self._on_new),
            (events.NOTIFICATION_UPDATED, self._on_updated),
            (events.NOTIFICATION_COUNT, self._on_count),
            (events.ALL_NOTIFICATIONS_READ, self._on_all_read),
        )

    def bind(self, transport: NotificationTransport) -> None:
        for event, handler in self._handlers():
            transport.on(event, handler)

    def unbind(self, transport: NotificationTransport) -> None:
        for event, handler in self._handlers():
            transport.off(event, handler)

    def _parse(self, data: Any) -> Optional[NotificationRead]:
        try:
            return NotificationRead.model_validate(data)
        except ValidationError:
            logger.debug("Dropping unparseable notification payload: %r", data)
            return None

    def _index_of(self, notification_id: int) -> Optional[int]:
        for i, n in enumerate(self.notifications):
            if n.id == notification_id:
                return i
        return None

    def _on_new(self, data: Any) -> None:
        notification = self._parse(data)
        if notification is None:
            return

        idx = self._index_of(notification.id)
        if idx is not None:
            # Redelivery after a reconnect; replace, don't duplicate
            previous = self.notifications[idx]
            self.notifications[idx] = notification
            self._adjust_for_transition(previous, notification)
            return

        self.notifications.insert(0, notification)
        if not notification.read:
            self.unread_count += 1
            self.alert.show(
                notification.title,
                notification.message,
                tag=f"notification-{notification.id}",
            )

    def _on_updated(self, data: Any) -> None:
        notification = self._parse(data)
        if notification is None:
            return
        idx = self._index_of(notification.id)
        if idx is None:
            return
        previous = self.notifications[idx]
        self.notifications[idx] = notification
        self._adjust_for_transition(previous, notification)

    def _adjust_for_transition(
        self, previous: NotificationRead, current: NotificationRead
    ) -> None:
        if not previous.read and current.read:
            self.unread_count -= 1
        elif previous.read and not current.read:
            self.unread_count += 1

    def _on_count(self, data: Any) -> None:
        count = (data or {}).get("unread_count")
        if isinstance(count, int):
            self.unread_count = count

    def _on_all_read(self, data: Any) -> None:
        self._flip_all_read()

    def _flip_all_read(self) -> None:
        now = datetime.now(timezone.utc)
        self.notifications = [
            n if n.read else n.model_copy(update={"read": True, "read_at": now})
            for n in self.notifications
        ]
        self.unread_count = 0

    # ─── User actions ─────────────────────────────────────

    async def mark_as_read(self, notification_id: int) -> None:
        idx = self._index_of(notification_id)
        if idx is not None:
            current = self.notifications[idx]
            if current.read:
                return
            self.notifications[idx] = current.model_copy(
                update={"read": True, "read_at": datetime.now(timezone.utc)}
            )
            self.unread_count -= 1

        try:
            await self.api.mark_read(notification_id)
        except EventbellClientError as e:
            logger.error("Failed to mark notification %s as read: %s", notification_id, e)
            await self._reconcile()

    async def mark_all_as_read(self) -> None:
        self._flip_all_read()
        try:
            await self.api.mark_all_read()
        except EventbellClientError as e:
            logger.error("Failed to mark all notifications as read: %s", e)
            await self._reconcile()

    async def _reconcile(self) -> None:
        self.stale = True
        if self.reconcile_on_failure:
            await self.fetch()
