"""Event type constants for the per-user notification stream.

Learn: Centralizing event types as constants prevents typos and makes it
easy to discover everything a client may receive. The same names are used
on the wire (`message.type`) and as listener keys on the client transport.
"""

NEW_NOTIFICATION = "new_notification"
NOTIFICATION_UPDATED = "notification_updated"
NOTIFICATION_COUNT = "notification_count"
ALL_NOTIFICATIONS_READ = "all_notifications_read"

STREAM_EVENT_TYPES = frozenset({
    NEW_NOTIFICATION,
    NOTIFICATION_UPDATED,
    NOTIFICATION_COUNT,
    ALL_NOTIFICATIONS_READ,
})

# ─── Client transport lifecycle (never sent by the server) ───

CONNECTED = "connected"
DISCONNECTED = "disconnected"
ERROR = "error"
MESSAGE = "message"  # application message with an unknown type
