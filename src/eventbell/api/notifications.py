"""Notifications API: history and read state for the current user.

Learn: Routes (all scoped to the bearer token's user):
- GET /notifications → paginated, most recent first (?unread=true filters)
- GET /notifications/unread → every unread notification + count
- GET /notifications/:id → one notification (owner only)
- PATCH /notifications/:id/read → mark one read
- PATCH /notifications/mark_all_read → mark everything read

The PATCH routes also push stream events, so the user's other tabs and
devices update without polling. There is deliberately no DELETE.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eventbell.auth.dependencies import get_current_user
from eventbell.auth.identity import Identity
from eventbell.config import settings
from eventbell.db.engine import get_db
from eventbell.realtime.broadcast import NotificationBroadcaster, get_broadcaster
from eventbell.schemas.notification import (
    Envelope,
    NotificationDetail,
    NotificationList,
    NotificationRead,
)
from eventbell.services.notification_service import (
    NotificationAccessDenied,
    NotificationNotFoundError,
    NotificationService,
)

router = APIRouter(prefix="/notifications")


def _get_service(
    db: AsyncSession = Depends(get_db),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
) -> NotificationService:
    return NotificationService(db=db, broadcaster=broadcaster)


async def _owned(svc: NotificationService, notification_id: int, identity: Identity):
    try:
        return await svc.get(notification_id, identity.user_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
    except NotificationAccessDenied:
        raise HTTPException(status_code=403, detail="Not your notification")


# ─── List ────────────────────────────────────────────────


@router.get("", response_model=Envelope[NotificationList])
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=settings.notifications_max_per_page),
    unread: bool = Query(False, description="Only unread notifications"),
    identity: Identity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Page through the current user's notifications."""
    items, pagination = await svc.list_for_user(
        identity.user_id,
        page=page,
        per_page=per_page or settings.notifications_per_page,
        unread_only=unread,
    )
    return Envelope(
        data=NotificationList(
            notifications=[NotificationRead.from_model(n) for n in items],
            pagination=pagination,
            unread_count=await svc.unread_count(identity.user_id),
        )
    )


@router.get("/unread", response_model=Envelope[NotificationList])
async def list_unread(
    identity: Identity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Every unread notification of the current user."""
    items = await svc.unread(identity.user_id)
    return Envelope(
        data=NotificationList(
            notifications=[NotificationRead.from_model(n) for n in items],
            unread_count=len(items),
        )
    )


# ─── Mark all read ───────────────────────────────────────


@router.patch("/mark_all_read", response_model=Envelope[dict])
async def mark_all_read(
    identity: Identity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Mark every notification of the current user as read."""
    changed = await svc.mark_all_read(identity.user_id)
    return Envelope(
        data={"updated": changed, "unread_count": 0},
        message="All notifications marked as read",
    )


# ─── Single notification ────────────────────────────────


@router.get("/{notification_id}", response_model=Envelope[NotificationDetail])
async def get_notification(
    notification_id: int,
    identity: Identity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    notification = await _owned(svc, notification_id, identity)
    return Envelope(
        data=NotificationDetail(notification=NotificationRead.from_model(notification))
    )


@router.patch("/{notification_id}/read", response_model=Envelope[NotificationDetail])
async def mark_read(
    notification_id: int,
    identity: Identity = Depends(get_current_user),
    svc: NotificationService = Depends(_get_service),
):
    """Mark one notification as read (no-op if it already is)."""
    await _owned(svc, notification_id, identity)
    notification = await svc.mark_read(notification_id, identity.user_id)
    return Envelope(
        data=NotificationDetail(notification=NotificationRead.from_model(notification)),
        message="Notification marked as read",
    )
