"""WebSocket endpoint: the notifications channel.

Learn: Each client connects to /cable?token=JWT. The handler:
1. Checks Origin and authenticates BEFORE accept; a refused socket gets
   close code 4001 and leaves no registry state behind
2. Accepts and sends a `welcome` frame
3. Runs two concurrent tasks:
   - pinger: `ping` frame every few seconds so clients can spot dead links
   - client listener: subscribe/unsubscribe/message commands
4. On exit, removes the subscription (exactly once) and closes

Stream events don't flow through this handler at all; publishers write
straight to the subscribed socket via the StreamRegistry.
"""

import asyncio
import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.websockets import WebSocketState

from eventbell.auth.connection import ConnectionAuthenticator, origin_allowed
from eventbell.auth.identity import AuthenticationFailure, Identity
from eventbell.config import settings
from eventbell.db.engine import get_session_factory
from eventbell.middleware.request_id import resolve_request_id
from eventbell.realtime import protocol
from eventbell.realtime.broadcast import NotificationBroadcaster, get_broadcaster
from eventbell.realtime.registry import StreamRegistry, Subscription
from eventbell.services.notification_service import (
    NotificationAccessDenied,
    NotificationNotFoundError,
    NotificationService,
)

logger = structlog.get_logger()
router = APIRouter()

CLOSE_UNAUTHORIZED = 4001
CLOSE_FORBIDDEN_ORIGIN = 4003


class ChannelConnection:
    """Server-side state of one accepted socket."""

    def __init__(
        self,
        websocket: WebSocket,
        identity: Identity,
        registry: StreamRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: NotificationBroadcaster,
    ):
        self.websocket = websocket
        self.identity = identity
        self.registry = registry
        self.session_factory = session_factory
        self.broadcaster = broadcaster
        self.subscription: Optional[Subscription] = None

    async def send(self, frame: dict) -> None:
        await self.websocket.send_text(json.dumps(frame))

    # ─── Commands ─────────────────────────────────────────

    async def handle(self, raw: str) -> None:
        try:
            cmd = protocol.parse_command(raw)
        except protocol.MalformedFrame as e:
            logger.debug("eventbell.cable.malformed", user_id=self.identity.user_id, error=str(e))
            return

        if cmd.command == protocol.SUBSCRIBE:
            await self.subscribe(cmd)
        elif cmd.command == protocol.UNSUBSCRIBE:
            self.unsubscribe()
        elif cmd.command == protocol.MESSAGE:
            await self.perform(cmd)
        else:
            logger.debug("eventbell.cable.unknown_command", command=cmd.command)

    async def subscribe(self, cmd: protocol.Command) -> None:
        if cmd.channel != protocol.CHANNEL_NAME:
            await self.send(protocol.reject_frame(cmd.identifier))
            return

        # One subscription per connection; a repeated subscribe just re-confirms
        if self.subscription is None or not self.subscription.active:
            self.subscription = self.registry.add(self.identity.user_id, self.websocket)
            logger.info("eventbell.cable.subscribed", user_id=self.identity.user_id)
        await self.send(protocol.confirm_frame(cmd.identifier))

    def unsubscribe(self) -> None:
        if self.subscription is not None:
            self.registry.remove(self.subscription)
            self.subscription = None

    async def perform(self, cmd: protocol.Command) -> None:
        """Run a channel action. Fire-and-forget: results arrive as stream events."""
        if self.subscription is None or not self.subscription.active:
            return

        async with self.session_factory() as db:
            svc = NotificationService(db, self.broadcaster)
            if cmd.action == protocol.MARK_AS_READ:
                try:
                    await svc.mark_read(int(cmd.data["notification_id"]), self.identity.user_id)
                except (KeyError, TypeError, ValueError):
                    logger.debug("eventbell.cable.bad_action", action=cmd.action)
                except (NotificationNotFoundError, NotificationAccessDenied):
                    # Someone else's or gone; nothing to reflect back
                    pass
            elif cmd.action == protocol.MARK_ALL_AS_READ:
                await svc.mark_all_read(self.identity.user_id)
            else:
                logger.debug("eventbell.cable.unknown_action", action=cmd.action)

    # ─── Lifecycle ────────────────────────────────────────

    async def run(self) -> None:
        await self.send(protocol.welcome_frame())

        async def pinger():
            """Keep-alive frames so clients notice half-open sockets."""
            while True:
                await asyncio.sleep(settings.cable_ping_interval_seconds)
                await self.send(protocol.ping_frame())

        async def client_listener():
            """Handle incoming commands until the client goes away."""
            try:
                while True:
                    await self.handle(await self.websocket.receive_text())
            except WebSocketDisconnect:
                pass

        ping_task = asyncio.create_task(pinger())
        client_task = asyncio.create_task(client_listener())
        try:
            # Wait for either to finish (client disconnect, or a failed ping write)
            done, pending = await asyncio.wait(
                [ping_task, client_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.info(
                        "eventbell.cable.connection_lost",
                        user_id=self.identity.user_id,
                        error=str(task.exception()),
                    )
        finally:
            self.unsubscribe()


@router.websocket(settings.cable_path)
async def notifications_cable(
    websocket: WebSocket,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
):
    """WebSocket endpoint for a user's real-time notification stream."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=resolve_request_id(websocket.headers),
        path=websocket.url.path,
    )

    # ── Origin + authentication ─────────────────────────────
    if not origin_allowed(websocket.headers.get("origin"), settings.cable_allowed_origins):
        logger.info("eventbell.cable.refused", reason="origin_not_allowed")
        await websocket.close(code=CLOSE_FORBIDDEN_ORIGIN, reason="Origin not allowed")
        return

    authenticator = ConnectionAuthenticator(session_factory)
    try:
        identity = await authenticator.authenticate(
            websocket.query_params, websocket.headers
        )
    except AuthenticationFailure:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Unauthorized")
        return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    logger.info("eventbell.cable.connected", user_id=identity.user_id)

    conn = ChannelConnection(
        websocket=websocket,
        identity=identity,
        registry=websocket.app.state.registry,
        session_factory=session_factory,
        broadcaster=broadcaster,
    )
    try:
        await conn.run()
    finally:
        logger.info("eventbell.cable.disconnected", user_id=identity.user_id)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
