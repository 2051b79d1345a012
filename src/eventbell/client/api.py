"""REST client for the notifications API.

Learn: Thin httpx wrapper. Every call re-reads the token from the
provider, so a refreshed credential is picked up without rebuilding the
client. Failures of any kind come out as CommandDeliveryError.
"""

from typing import Any, Callable, Optional

import httpx

from eventbell.client.errors import AuthenticationError, CommandDeliveryError

TokenProvider = Callable[[], Optional[str]]


def cable_url(api_url: str, path: str = "/cable") -> str:
    """Derive the WebSocket URL from the API base URL (http→ws, https→wss)."""
    base = api_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}{path}"


class NotificationsAPI:
    """Async client for /api/v1/notifications."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v1",
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "NotificationsAPI":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ─── Calls ────────────────────────────────────────────

    async def list_notifications(
        self,
        *,
        per_page: int = 50,
        page: int = 1,
        unread: bool = False,
    ) -> list[dict[str, Any]]:
        """Bulk fetch: the `notifications` array of one page."""
        params: dict[str, Any] = {"per_page": per_page, "page": page}
        if unread:
            params["unread"] = "true"
        body = await self._request("GET", "/notifications", params=params)
        return (body.get("data") or {}).get("notifications") or []

    async def mark_read(self, notification_id: int) -> dict[str, Any]:
        return await self._request("PATCH", f"/notifications/{notification_id}/read")

    async def mark_all_read(self) -> dict[str, Any]:
        return await self._request("PATCH", "/notifications/mark_all_read")

    # ─── Helpers ──────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        token = self.token_provider()
        if not token:
            raise AuthenticationError("No authentication token")

        try:
            resp = await self._http.request(
                method,
                path,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise CommandDeliveryError(
                f"{method} {path} → {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise CommandDeliveryError(f"{method} {path} failed: {e}") from e

        if not body.get("success", False):
            raise CommandDeliveryError(f"{method} {path} returned success=false")
        return body
