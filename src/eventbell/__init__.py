"""Eventbell: real-time notification delivery for the event-ticketing platform.

Organizers and attendees get in-app notifications (booking confirmations,
event changes, reminders) over a per-user WebSocket stream, backed by a
REST API for history and read state.
"""

__version__ = "0.1.0"
