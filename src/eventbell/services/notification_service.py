"""Notification service: persistence plus stream publishing.

Learn: Every mutation follows the same order:
1. write to the database
2. commit
3. publish to the owner's stream

Publishing after the commit means a client that re-fetches on receipt
always sees the new state. Publishing is best-effort: a failed publish is
logged and never rolls back the write.

The unread count broadcast after each read-flip is recomputed from the
database (the correctness fallback), never derived by arithmetic.
"""

import math
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventbell.db.models import Notification
from eventbell.realtime.broadcast import NotificationBroadcaster
from eventbell.schemas.notification import (
    NotificationCategory,
    NotificationRead,
    Pagination,
)

logger = structlog.get_logger()

MAX_TITLE_LENGTH = 200
MAX_MESSAGE_LENGTH = 1000


class NotificationNotFoundError(Exception):
    """Raised when a notification doesn't exist."""


class NotificationAccessDenied(Exception):
    """Raised when a user touches someone else's notification."""


class NotificationService:
    """Create, list and mark notifications; keep streams in sync."""

    def __init__(self, db: AsyncSession, broadcaster: NotificationBroadcaster):
        self.db = db
        self.broadcaster = broadcaster

    # ─── Create ───────────────────────────────────────────

    async def create(
        self,
        *,
        user_id: int,
        category: NotificationCategory | str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        notifiable_type: Optional[str] = None,
        notifiable_id: Optional[int] = None,
    ) -> Notification:
        """Persist a notification and push it to the owner's open sockets."""
        category = NotificationCategory(category)
        if not title or len(title) > MAX_TITLE_LENGTH:
            raise ValueError(f"title must be 1-{MAX_TITLE_LENGTH} characters")
        if not message or len(message) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"message must be 1-{MAX_MESSAGE_LENGTH} characters")

        notification = Notification(
            user_id=user_id,
            notification_type=category.value,
            title=title,
            message=message,
            action_url=action_url,
            meta=metadata or {},
            notifiable_type=notifiable_type,
            notifiable_id=notifiable_id,
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)

        logger.info(
            "eventbell.notification.created",
            notification_id=notification.id,
            user_id=user_id,
            notification_type=category.value,
        )
        await self._publish(
            self.broadcaster.new_notification,
            user_id,
            NotificationRead.from_model(notification),
        )
        return notification

    # ─── Read ─────────────────────────────────────────────

    async def get(self, notification_id: int, user_id: int) -> Notification:
        """Fetch one notification, enforcing ownership."""
        notification = await self.db.get(Notification, notification_id)
        if not notification:
            raise NotificationNotFoundError(notification_id)
        if notification.user_id != user_id:
            raise NotificationAccessDenied(notification_id)
        return notification

    async def list_for_user(
        self,
        user_id: int,
        *,
        page: int = 1,
        per_page: int = 50,
        unread_only: bool = False,
    ) -> tuple[list[Notification], Pagination]:
        """Most-recent-first page of a user's notifications."""
        filters = [Notification.user_id == user_id]
        if unread_only:
            filters.append(Notification.read.is_(False))

        total = await self.db.scalar(
            select(func.count()).select_from(Notification).where(*filters)
        )
        q = (
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.db.execute(q)
        items = list(result.scalars().all())

        pagination = Pagination(
            current_page=page,
            total_pages=max(1, math.ceil((total or 0) / per_page)),
            total_count=total or 0,
            per_page=per_page,
        )
        return items, pagination

    async def unread(self, user_id: int) -> list[Notification]:
        q = (
            select(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def unread_count(self, user_id: int) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )
        return count or 0

    # ─── Mark read ────────────────────────────────────────

    async def mark_read(self, notification_id: int, user_id: int) -> Notification:
        """Flip one notification to read. Idempotent: no publish if already read."""
        notification = await self.get(notification_id, user_id)
        if notification.read:
            return notification

        notification.read = True
        notification.read_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(notification)

        await self._publish(
            self.broadcaster.notification_updated,
            user_id,
            NotificationRead.from_model(notification),
        )
        await self._publish(
            self.broadcaster.notification_count,
            user_id,
            await self.unread_count(user_id),
        )
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        """Flip every unread notification of a user. Returns how many changed."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=datetime.now(timezone.utc))
        )
        await self.db.commit()
        changed = result.rowcount or 0

        logger.info(
            "eventbell.notification.all_read", user_id=user_id, changed=changed
        )
        await self._publish(self.broadcaster.all_read, user_id)
        await self._publish(
            self.broadcaster.notification_count,
            user_id,
            await self.unread_count(user_id),
        )
        return changed

    # ─── Helpers ──────────────────────────────────────────

    async def _publish(self, send, user_id: int, *args) -> None:
        try:
            await send(user_id, *args)
        except Exception as e:
            logger.warning(
                "eventbell.notification.publish_failed",
                user_id=user_id,
                event=getattr(send, "__name__", str(send)),
                error=str(e),
            )
