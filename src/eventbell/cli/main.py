"""eventbell CLI: read notifications and watch them arrive live.

Usage:
    eventbell token 42                 # Mint a development access token for user 42
    eventbell list                     # Latest notifications
    eventbell list --unread            # Unread only
    eventbell read 17                  # Mark notification #17 as read
    eventbell read-all                 # Mark everything as read
    eventbell listen                   # Stream new notifications to the terminal
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import os
import sys
from typing import Optional

import click

from eventbell.client import (
    AuthenticationError,
    DesktopAlert,
    EventbellClientError,
    NotificationsAPI,
    NotificationStore,
    NotificationTransport,
    cable_url,
)
from eventbell.events import types as events

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("EVENTBELL_API_URL", DEFAULT_API_URL).rstrip("/")


def _token() -> Optional[str]:
    return os.environ.get("EVENTBELL_TOKEN")


def _api() -> NotificationsAPI:
    return NotificationsAPI(_api_url(), _token)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (CliRunner inside
    an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _print_notification(n: dict) -> None:
    marker = click.style("●", fg="yellow") if not n.get("read") else " "
    created = str(n.get("created_at", ""))[:19].replace("T", " ")
    click.echo(f"{marker} #{n['id']:<6} {created}  {n.get('title', '')}")
    click.echo(f"           {n.get('message', '')[:100]}")


class EchoDesktopAlert(DesktopAlert):
    """Alerts rendered as a highlighted line on the terminal."""

    def show(self, title: str, body: str, *, tag: Optional[str] = None) -> None:
        click.secho(f"🔔 {title}", fg="cyan", bold=True)
        click.echo(f"   {body}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="eventbell")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """eventbell: real-time notifications from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("user_id", type=int)
@click.option("--email", help="Email claim to embed")
@click.option("--minutes", type=int, help="Lifetime override (default from settings)")
def token(user_id: int, email: Optional[str], minutes: Optional[int]):
    """Mint an access token for USER_ID (signs with EVENTBELL_JWT_SECRET)."""
    from eventbell.auth.jwt import create_access_token

    click.echo(create_access_token(user_id, email=email, expires_minutes=minutes))


@main.command(name="list")
@click.option("--unread", is_flag=True, help="Only unread notifications")
@click.option("--per-page", default=20, show_default=True, help="How many to show")
def list_cmd(unread: bool, per_page: int):
    """List your latest notifications."""
    _run(_list_impl(unread, per_page))


async def _list_impl(unread: bool, per_page: int):
    try:
        async with _api() as api:
            items = await api.list_notifications(per_page=per_page, unread=unread)
    except EventbellClientError as e:
        _fail(str(e))
        return

    if not items:
        click.echo("No notifications.")
        return
    for n in items:
        _print_notification(n)


@main.command()
@click.argument("notification_id", type=int)
def read(notification_id: int):
    """Mark NOTIFICATION_ID as read."""
    _run(_read_impl(notification_id))


async def _read_impl(notification_id: int):
    try:
        async with _api() as api:
            body = await api.mark_read(notification_id)
    except EventbellClientError as e:
        _fail(str(e))
        return
    click.secho(body.get("message") or "Notification marked as read", fg="green")


@main.command(name="read-all")
def read_all():
    """Mark every notification as read."""
    _run(_read_all_impl())


async def _read_all_impl():
    try:
        async with _api() as api:
            body = await api.mark_all_read()
    except EventbellClientError as e:
        _fail(str(e))
        return
    updated = (body.get("data") or {}).get("updated", 0)
    click.secho(f"{body.get('message', 'Done')} ({updated} updated)", fg="green")


@main.command()
def listen():
    """Stay connected and print notifications as they arrive (Ctrl-C to stop)."""
    try:
        _run(_listen_impl())
    except KeyboardInterrupt:
        click.echo()


async def _listen_impl():
    api = _api()
    transport = NotificationTransport(cable_url(_api_url()), _token)
    store = NotificationStore(api, alert=EchoDesktopAlert())
    done = asyncio.Event()

    def on_connected(_):
        click.secho("Connected. Waiting for notifications...", fg="green")

    def on_disconnected(_):
        click.secho("Connection lost, retrying...", fg="yellow")

    def on_count(data):
        click.echo(f"   unread: {data.get('unread_count')}")

    def on_error(err):
        click.secho(f"Giving up: {err}", fg="red", err=True)
        done.set()

    transport.on(events.CONNECTED, on_connected)
    transport.on(events.DISCONNECTED, on_disconnected)
    transport.on(events.NOTIFICATION_COUNT, on_count)
    transport.on(events.ERROR, on_error)
    store.bind(transport)

    try:
        await store.fetch()
        if store.error:
            _fail(store.error)
        click.echo(f"{store.unread_count} unread notification(s)")
        await transport.connect()
        await done.wait()
    except AuthenticationError:
        _fail("EVENTBELL_TOKEN is not set (try `eventbell token <user_id>`)")
    except EventbellClientError as e:
        _fail(str(e))
    finally:
        await transport.aclose()
        await api.aclose()
