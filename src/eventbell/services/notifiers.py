"""Business-event notifiers: what booking/event/payment code calls.

Learn: These are the Event Publisher's entry points for the rest of the
platform. Each one decides category, title, message and action link for
a business event, then goes through NotificationService.create, so every
recipient with an open socket gets `new_notification` immediately.

Callers pass plain values (ids, titles, recipient lists); this package
doesn't own bookings, events or groups.
"""

from datetime import datetime
from typing import Iterable, Optional

from eventbell.db.models import Notification
from eventbell.schemas.notification import NotificationCategory
from eventbell.services.notification_service import NotificationService

REMINDER_WINDOWS = {
    "24_hours": "24 hours",
    "1_hour": "1 hour",
    "30_minutes": "30 minutes",
}


async def notify_booking_confirmed(
    svc: NotificationService,
    *,
    user_id: int,
    booking_id: int,
    booking_reference: str,
    event_title: str,
    booker_name: Optional[str] = None,
    group_id: Optional[int] = None,
    group_member_ids: Iterable[int] = (),
) -> list[Notification]:
    """Confirm a booking to its owner; tell the rest of the group, if any."""
    created = [
        await svc.create(
            user_id=user_id,
            category=NotificationCategory.BOOKING_CONFIRMED,
            title="Booking Confirmed",
            message=(
                f"Your booking {booking_reference} for {event_title} "
                "has been confirmed."
            ),
            action_url=f"/bookings/{booking_id}",
            metadata={"booking_reference": booking_reference},
            notifiable_type="Booking",
            notifiable_id=booking_id,
        )
    ]

    if group_id is None:
        return created

    who = booker_name or "A group member"
    for member_id in group_member_ids:
        if member_id == user_id:
            continue
        created.append(
            await svc.create(
                user_id=member_id,
                category=NotificationCategory.GENERAL,
                title="Group Booking Update",
                message=f"{who} has confirmed their booking for {event_title}.",
                action_url=f"/groups/{group_id}",
                notifiable_type="Group",
                notifiable_id=group_id,
            )
        )
    return created


async def notify_booking_cancelled(
    svc: NotificationService,
    *,
    user_id: int,
    booking_id: int,
    booking_reference: str,
    event_title: str,
) -> Notification:
    return await svc.create(
        user_id=user_id,
        category=NotificationCategory.BOOKING_CANCELLED,
        title="Booking Cancelled",
        message=f"Your booking {booking_reference} for {event_title} has been cancelled.",
        action_url=f"/bookings/{booking_id}",
        notifiable_type="Booking",
        notifiable_id=booking_id,
    )


async def notify_event_reminder(
    svc: NotificationService,
    *,
    event_id: int,
    event_title: str,
    attendee_ids: Iterable[int],
    reminder_type: str = "24_hours",
    starts_at: Optional[datetime] = None,
) -> list[Notification]:
    """Remind every confirmed attendee that an event is coming up."""
    time_until = REMINDER_WINDOWS.get(reminder_type, "soon")
    metadata = {"reminder_type": reminder_type}
    if starts_at is not None:
        metadata["starts_at"] = starts_at.isoformat()

    return [
        await svc.create(
            user_id=attendee_id,
            category=NotificationCategory.EVENT_REMINDER,
            title="Event Reminder",
            message=f"{event_title} starts in {time_until}. Don't forget to attend!",
            action_url=f"/events/{event_id}",
            metadata=metadata,
            notifiable_type="Event",
            notifiable_id=event_id,
        )
        for attendee_id in _unique(attendee_ids)
    ]


async def notify_event_changed(
    svc: NotificationService,
    *,
    event_id: int,
    event_title: str,
    attendee_ids: Iterable[int],
    update_type: str,
) -> list[Notification]:
    """Fan an event update or cancellation out to everyone holding a booking."""
    if update_type == "cancelled":
        category = NotificationCategory.EVENT_CANCELLED
        title = "Event Cancelled"
        message = f"{event_title} has been cancelled. Your booking will be refunded."
    elif update_type == "updated":
        category = NotificationCategory.EVENT_UPDATED
        title = "Event Updated"
        message = f"{event_title} has been updated. Please check the new details."
    else:
        category = NotificationCategory.GENERAL
        title = "Event Notification"
        message = f"Update regarding {event_title}"

    return [
        await svc.create(
            user_id=attendee_id,
            category=category,
            title=title,
            message=message,
            action_url=f"/events/{event_id}",
            notifiable_type="Event",
            notifiable_id=event_id,
        )
        for attendee_id in _unique(attendee_ids)
    ]


async def notify_payment_failed(
    svc: NotificationService,
    *,
    user_id: int,
    booking_id: int,
    booking_reference: str,
    reason: Optional[str] = None,
) -> Notification:
    message = f"Payment for booking {booking_reference} failed."
    if reason:
        message = f"{message} Reason: {reason}"
    return await svc.create(
        user_id=user_id,
        category=NotificationCategory.PAYMENT_FAILED,
        title="Payment Failed",
        message=message,
        action_url=f"/bookings/{booking_id}/payment",
        notifiable_type="Booking",
        notifiable_id=booking_id,
    )


async def notify_group_invitation(
    svc: NotificationService,
    *,
    user_id: int,
    group_id: int,
    group_name: str,
    inviter_name: str,
) -> Notification:
    return await svc.create(
        user_id=user_id,
        category=NotificationCategory.GROUP_INVITATION,
        title="Group Invitation",
        message=f"{inviter_name} invited you to join {group_name}.",
        action_url=f"/groups/{group_id}",
        notifiable_type="Group",
        notifiable_id=group_id,
    )


async def notify_review_request(
    svc: NotificationService,
    *,
    user_id: int,
    event_id: int,
    event_title: str,
) -> Notification:
    return await svc.create(
        user_id=user_id,
        category=NotificationCategory.REVIEW_REQUEST,
        title="How was the event?",
        message=f"Tell other attendees what you thought of {event_title}.",
        action_url=f"/events/{event_id}/reviews/new",
        notifiable_type="Event",
        notifiable_id=event_id,
    )


def _unique(ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(ids))
