"""REST client tests against httpx.MockTransport."""

import json

import httpx
import pytest

from eventbell.client.api import NotificationsAPI, cable_url
from eventbell.client.errors import AuthenticationError, CommandDeliveryError


def make_api(handler, token="tok"):
    return NotificationsAPI(
        "http://api.test/", lambda: token, transport=httpx.MockTransport(handler)
    )


def test_cable_url():
    assert cable_url("http://localhost:8000") == "ws://localhost:8000/cable"
    assert cable_url("https://api.example.com/") == "wss://api.example.com/cable"


@pytest.mark.asyncio
async def test_list_sends_bearer_and_params():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200, json={"success": True, "data": {"notifications": [{"id": 1}]}}
        )

    async with make_api(handler) as api:
        items = await api.list_notifications(per_page=50, unread=True)

    assert items == [{"id": 1}]
    assert seen["auth"] == "Bearer tok"
    assert seen["url"].startswith("http://api.test/api/v1/notifications?")
    assert "per_page=50" in seen["url"]
    assert "unread=true" in seen["url"]


@pytest.mark.asyncio
async def test_mark_read_and_mark_all():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        return httpx.Response(200, json={"success": True, "data": {}})

    async with make_api(handler) as api:
        await api.mark_read(5)
        await api.mark_all_read()

    assert calls == [
        ("PATCH", "/api/v1/notifications/5/read"),
        ("PATCH", "/api/v1/notifications/mark_all_read"),
    ]


@pytest.mark.asyncio
async def test_no_token_raises_without_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"success": True})

    async with make_api(handler, token=None) as api:
        with pytest.raises(AuthenticationError):
            await api.mark_all_read()
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"detail": "boom"}),
        httpx.Response(200, content=b"<html>not json</html>"),
        httpx.Response(200, json={"success": False, "message": "nope"}),
    ],
)
async def test_failures_become_command_delivery_errors(response):
    async with make_api(lambda request: response) as api:
        with pytest.raises(CommandDeliveryError):
            await api.mark_read(1)


@pytest.mark.asyncio
async def test_network_error_becomes_command_delivery_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with make_api(handler) as api:
        with pytest.raises(CommandDeliveryError):
            await api.list_notifications()
