"""Reconnecting WebSocket transport for the notifications channel.

Learn: An explicit state machine instead of nested timer callbacks:

    disconnected → connecting → open → closed → reconnecting → connecting …

- connect() authenticates, opens the socket, subscribes, then returns.
  It never retries on its own; a failed explicit connect just raises.
- An open socket that drops schedules a retry with exponential backoff
  (1s, 2s, 4s, 8s, 16s). A failed retry counts as another drop. After
  five attempts the transport gives up: state `disconnected` plus an
  `error` event for listeners. A successful open resets the count.
- disconnect() is the only way to stop a pending retry. The retry is a
  task, so cancelling it is deterministic: no reconnect can fire after.

Inbound protocol frames (welcome/ping/confirm/reject) are consumed here.
Only application messages reach listeners, keyed by their `type`.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from eventbell.client.errors import AuthenticationError, TransportError
from eventbell.events import types as events
from eventbell.realtime import protocol

logger = logging.getLogger("eventbell.client.transport")

Handler = Callable[[Any], Any]
Connector = Callable[[str], Awaitable[Any]]
TokenProvider = Callable[[], Optional[str]]

MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_BASE_DELAY = 1.0  # seconds; doubles per attempt


class TransportState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


async def _default_connector(url: str):
    return await ws_connect(url, open_timeout=10)


class NotificationTransport:
    """One user's connection to /cable, with bounded automatic reconnects."""

    def __init__(
        self,
        url: str,
        token_provider: TokenProvider,
        *,
        reconnect: bool = True,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_BASE_DELAY,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = url
        self.token_provider = token_provider
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._connector = connector or _default_connector
        self._sleep = sleep

        self.state = TransportState.DISCONNECTED
        self.subscribed = False
        self.reconnect_attempts = 0
        self._should_reconnect = reconnect
        self._reconnect_enabled = reconnect
        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        # Bumped by disconnect(); a handshake started under an older value is stale
        self._generation = 0
        # event name → handlers, dict used as an insertion-ordered set
        self._listeners: dict[str, dict[Handler, None]] = {}

    @property
    def is_connected(self) -> bool:
        return self.state == TransportState.OPEN

    # ─── Connect / disconnect ─────────────────────────────

    async def connect(self) -> None:
        """Open the socket and subscribe. No-op if already open or connecting.

        Raises AuthenticationError without touching the network if there's
        no token, and TransportError if the handshake fails.
        """
        if self.state in (TransportState.OPEN, TransportState.CONNECTING):
            return

        token = self.token_provider()
        if not token:
            raise AuthenticationError("No authentication token")

        # An explicit connect (even after disconnect()) re-arms reconnection
        self._should_reconnect = self._reconnect_enabled
        self._cancel_reconnect()
        try:
            await self._open(token)
        except TransportError:
            self._set_state(TransportState.DISCONNECTED)
            raise

    def disconnect(self) -> None:
        """Stop for good: cancel retries, close the socket, drop all listeners.

        Idempotent. Never suspends; the close handshake runs in the background.
        """
        self._should_reconnect = False
        self._cancel_reconnect()
        self._generation += 1

        if self._reader is not None:
            self._reader.cancel()
            self._reader = None

        ws, self._ws = self._ws, None
        if ws is not None:
            self._spawn(ws.close())

        self._listeners.clear()
        self.subscribed = False
        self._set_state(TransportState.DISCONNECTED)

    async def aclose(self) -> None:
        """disconnect() and wait for the close handshake to finish."""
        self.disconnect()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ─── Listeners ────────────────────────────────────────

    def on(self, event: str, handler: Handler) -> None:
        self._listeners.setdefault(event, {})[handler] = None

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._listeners.get(event)
        if handlers is not None:
            handlers.pop(handler, None)
            if not handlers:
                del self._listeners[event]

    def emit(self, event: str, data: Any = None) -> None:
        """Call every handler for `event`; one handler failing doesn't stop the rest."""
        for handler in list(self._listeners.get(event, ())):
            try:
                handler(data)
            except Exception:
                logger.exception("Error in %r listener %r", event, handler)

    # ─── Commands (fire-and-forget) ───────────────────────

    def mark_as_read(self, notification_id: int) -> bool:
        return self.send(
            protocol.action_command(protocol.MARK_AS_READ, notification_id=notification_id)
        )

    def mark_all_as_read(self) -> bool:
        return self.send(protocol.action_command(protocol.MARK_ALL_AS_READ))

    def send(self, frame: dict[str, Any]) -> bool:
        """Queue a frame for sending. Returns False if the socket isn't open."""
        if self._ws is None or self.state != TransportState.OPEN:
            logger.warning("WebSocket is not connected; dropping %s", frame.get("command"))
            return False
        self._spawn(self._send(self._ws, frame))
        return True

    # ─── Internals ────────────────────────────────────────

    def _build_url(self, token: str) -> str:
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}token={quote(token, safe='')}"

    async def _open(self, token: str) -> None:
        self._set_state(TransportState.CONNECTING)
        generation = self._generation
        try:
            ws = await self._connector(self._build_url(token))
        except (OSError, InvalidHandshake, asyncio.TimeoutError) as e:
            logger.warning("WebSocket handshake failed: %s", e)
            raise TransportError(f"handshake failed: {e}") from e

        if generation != self._generation:
            await self._discard(ws)
            raise TransportError("disconnected during handshake")

        self._ws = ws
        self.reconnect_attempts = 0
        self._set_state(TransportState.OPEN)
        logger.info("WebSocket connected")

        await self._send(ws, protocol.subscribe_command())
        if generation != self._generation:
            # disconnect() ran while subscribing and has already closed ws
            raise TransportError("disconnected during handshake")
        self._reader = asyncio.create_task(self._read_loop(ws))
        self.emit(events.CONNECTED)

    async def _discard(self, ws: Any) -> None:
        """Close a socket whose handshake finished after disconnect()."""
        logger.info("Handshake completed after disconnect; closing socket")
        try:
            await ws.close()
        except ConnectionClosed:
            pass

    async def _send(self, ws: Any, frame: dict[str, Any]) -> None:
        try:
            await ws.send(json.dumps(frame))
        except ConnectionClosed:
            logger.debug("Send on closed socket dropped")

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.info("WebSocket closed: %s", e)
        self._handle_close(ws)

    def _handle_frame(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Dropping malformed frame: %r", raw)
            return
        if not isinstance(frame, dict):
            return

        ftype = frame.get("type")
        if ftype in protocol.PROTOCOL_FRAME_TYPES:
            if ftype == protocol.CONFIRM_SUBSCRIPTION:
                self.subscribed = True
                logger.info("Subscribed to notifications channel")
            elif ftype == protocol.REJECT_SUBSCRIPTION:
                self.subscribed = False
                logger.error("Failed to subscribe to notifications channel")
            return

        message = frame.get("message")
        if not isinstance(message, dict):
            return

        mtype = message.get("type")
        if mtype in (events.NEW_NOTIFICATION, events.NOTIFICATION_UPDATED):
            self.emit(mtype, message.get("notification"))
        elif mtype == events.NOTIFICATION_COUNT:
            self.emit(mtype, {"unread_count": message.get("unread_count")})
        elif mtype == events.ALL_NOTIFICATIONS_READ:
            self.emit(mtype, {"count": 0})
        else:
            self.emit(events.MESSAGE, message)

    def _handle_close(self, ws: Any) -> None:
        # Only the current socket's close counts (guards close racing disconnect)
        if ws is not self._ws:
            return
        self._ws = None
        self._reader = None
        self.subscribed = False
        self._set_state(TransportState.CLOSED)
        logger.info("WebSocket disconnected")
        self.emit(events.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self._should_reconnect:
            self._set_state(TransportState.DISCONNECTED)
            return

        if self.reconnect_attempts >= self.max_reconnect_attempts:
            self._set_state(TransportState.DISCONNECTED)
            logger.error(
                "Giving up after %d reconnect attempts", self.reconnect_attempts
            )
            self.emit(
                events.ERROR,
                TransportError(
                    f"connection lost; gave up after {self.reconnect_attempts} attempts"
                ),
            )
            return

        self.reconnect_attempts += 1
        delay = self.reconnect_delay * 2 ** (self.reconnect_attempts - 1)
        self._set_state(TransportState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        if not self._should_reconnect:
            return

        logger.info(
            "Attempting to reconnect (%d/%d)...",
            self.reconnect_attempts,
            self.max_reconnect_attempts,
        )
        token = self.token_provider()
        try:
            if not token:
                raise TransportError("No authentication token")
            await self._open(token)
        except TransportError:
            self._set_state(TransportState.CLOSED)
            self._schedule_reconnect()
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _set_state(self, state: TransportState) -> None:
        if state != self.state:
            logger.debug("Transport %s → %s", self.state.value, state.value)
            self.state = state
