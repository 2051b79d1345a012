"""Wire protocol for the notifications channel (ActionCable-shaped frames).

Learn: Two kinds of server → client frames:
- protocol frames: {"type": "welcome" | "ping" | "confirm_subscription" |
  "reject_subscription" | "disconnect"}; transport housekeeping
- application frames: {"identifier": ..., "message": {"type": <event>, ...}}

Client → server frames are commands:
  {"command": "subscribe" | "unsubscribe", "identifier": "{\"channel\":...}"}
  {"command": "message", "identifier": ..., "data": "{\"action\": ...}"}

`identifier` and `data` are JSON *strings* inside the JSON frame.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

CHANNEL_NAME = "NotificationsChannel"
CHANNEL_IDENTIFIER = json.dumps({"channel": CHANNEL_NAME}, separators=(",", ":"))

# Server → client protocol frame types
WELCOME = "welcome"
PING = "ping"
CONFIRM_SUBSCRIPTION = "confirm_subscription"
REJECT_SUBSCRIPTION = "reject_subscription"
DISCONNECT = "disconnect"

PROTOCOL_FRAME_TYPES = frozenset({
    WELCOME,
    PING,
    CONFIRM_SUBSCRIPTION,
    REJECT_SUBSCRIPTION,
    DISCONNECT,
})

# Client → server commands
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
MESSAGE = "message"

# Actions carried by MESSAGE commands
MARK_AS_READ = "mark_as_read"
MARK_ALL_AS_READ = "mark_all_as_read"


# ─── Server → client ─────────────────────────────────────


def welcome_frame() -> dict[str, Any]:
    return {"type": WELCOME}


def ping_frame(now: Optional[float] = None) -> dict[str, Any]:
    return {"type": PING, "message": int(now if now is not None else time.time())}


def confirm_frame(identifier: str) -> dict[str, Any]:
    return {"identifier": identifier, "type": CONFIRM_SUBSCRIPTION}


def reject_frame(identifier: str) -> dict[str, Any]:
    return {"identifier": identifier, "type": REJECT_SUBSCRIPTION}


def message_frame(event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap a stream event for delivery to one subscribed socket."""
    return {
        "identifier": CHANNEL_IDENTIFIER,
        "message": {"type": event_type, **payload},
    }


# ─── Client → server ─────────────────────────────────────


def subscribe_command(identifier: str = CHANNEL_IDENTIFIER) -> dict[str, Any]:
    return {"command": SUBSCRIBE, "identifier": identifier}


def action_command(
    action: str,
    identifier: str = CHANNEL_IDENTIFIER,
    **fields: Any,
) -> dict[str, Any]:
    return {
        "command": MESSAGE,
        "identifier": identifier,
        "data": json.dumps({"action": action, **fields}),
    }


@dataclass
class Command:
    """A parsed client command."""
    command: str
    identifier: str
    channel: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def action(self) -> Optional[str]:
        return self.data.get("action")


class MalformedFrame(ValueError):
    """Raised when an inbound frame can't be parsed."""


def parse_command(raw: str) -> Command:
    """Parse a client → server frame.

    Raises MalformedFrame for anything that isn't a well-formed command.
    """
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedFrame(f"not JSON: {e}")
    if not isinstance(frame, dict):
        raise MalformedFrame("frame is not an object")

    command = frame.get("command")
    identifier = frame.get("identifier")
    if not isinstance(command, str) or not isinstance(identifier, str):
        raise MalformedFrame("missing command or identifier")

    try:
        ident = json.loads(identifier)
    except ValueError:
        raise MalformedFrame("identifier is not JSON")
    channel = ident.get("channel") if isinstance(ident, dict) else None

    data: dict[str, Any] = {}
    raw_data = frame.get("data")
    if raw_data is not None:
        try:
            data = json.loads(raw_data) if isinstance(raw_data, str) else raw_data
        except ValueError:
            raise MalformedFrame("data is not JSON")
        if not isinstance(data, dict):
            raise MalformedFrame("data is not an object")

    return Command(command=command, identifier=identifier, channel=channel, data=data)
