"""Pydantic schemas for notifications.

Learn: NotificationRead is the one wire shape for a notification; the
REST API returns it, the stream embeds it in `new_notification` and
`notification_updated`, and the client store keeps a list of them.

Categories are a fixed set; unknown values are rejected at creation time.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from eventbell.db.models import Notification


class NotificationCategory(str, Enum):
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    EVENT_REMINDER = "event_reminder"
    EVENT_CANCELLED = "event_cancelled"
    EVENT_UPDATED = "event_updated"
    GROUP_INVITATION = "group_invitation"
    PAYMENT_FAILED = "payment_failed"
    REVIEW_REQUEST = "review_request"
    GENERAL = "general"


# ─── Read (platform → client) ───────────────────────────


class NotificationRead(BaseModel):
    """Full notification as seen by its owner."""
    id: int
    title: str
    message: str
    notification_type: NotificationCategory
    read: bool = False
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    notifiable_type: Optional[str] = None
    notifiable_id: Optional[int] = None

    @classmethod
    def from_model(cls, notification: Notification) -> "NotificationRead":
        # Not from_attributes: the ORM's `metadata` attribute is SQLAlchemy's MetaData.
        return cls(
            id=notification.id,
            title=notification.title,
            message=notification.message,
            notification_type=notification.notification_type,
            read=notification.read,
            read_at=notification.read_at,
            action_url=notification.action_url,
            metadata=notification.meta or {},
            created_at=notification.created_at,
            notifiable_type=notification.notifiable_type,
            notifiable_id=notification.notifiable_id,
        )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict (datetimes as ISO 8601 strings)."""
        return self.model_dump(mode="json")


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    per_page: int


class NotificationList(BaseModel):
    notifications: list[NotificationRead]
    pagination: Optional[Pagination] = None
    unread_count: int


class NotificationDetail(BaseModel):
    notification: NotificationRead


# ─── Envelope ───────────────────────────────────────────

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Standard REST response wrapper: {success, data, message}."""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
