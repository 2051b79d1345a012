"""Notification store tests: fake REST API, real transport event plumbing."""

from typing import Optional

import pytest

from eventbell.client.alerts import DesktopAlert
from eventbell.client.errors import CommandDeliveryError
from eventbell.client.store import NotificationStore
from eventbell.client.transport import NotificationTransport


def wire(nid: int, read: bool = False, title: Optional[str] = None) -> dict:
    return {
        "id": nid,
        "title": title or f"Notification {nid}",
        "message": "body",
        "notification_type": "general",
        "read": read,
        "read_at": "2026-01-01T12:00:00Z" if read else None,
        "action_url": None,
        "metadata": {},
        "created_at": f"2026-01-01T12:00:{nid % 60:02d}Z",
        "notifiable_type": None,
        "notifiable_id": None,
    }


class FakeAPI:
    def __init__(self, items=()):
        self.items = list(items)
        self.calls = []
        self.fail_writes = False
        self.fail_reads = False

    async def list_notifications(self, *, per_page=50, page=1, unread=False):
        self.calls.append("list")
        if self.fail_reads:
            raise CommandDeliveryError("GET /notifications → 500")
        return [dict(i) for i in self.items]

    async def mark_read(self, notification_id):
        self.calls.append(("mark_read", notification_id))
        if self.fail_writes:
            raise CommandDeliveryError("PATCH → 500")
        return {"success": True}

    async def mark_all_read(self):
        self.calls.append("mark_all_read")
        if self.fail_writes:
            raise CommandDeliveryError("PATCH → 500")
        return {"success": True}


class RecordingAlert(DesktopAlert):
    def __init__(self):
        self.shown = []

    def show(self, title, body, *, tag=None):
        self.shown.append((title, tag))


def bound_store(api=None, **kw):
    store = NotificationStore(api or FakeAPI(), **kw)
    transport = NotificationTransport("ws://test/cable", lambda: "tok")
    store.bind(transport)
    return store, transport


# ─── Bulk fetch ──────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("total,unread", [(0, 0), (3, 0), (3, 3), (5, 2)])
async def test_fetch_counts_unread(total, unread):
    items = [wire(i, read=i >= unread) for i in range(total)]
    store = NotificationStore(FakeAPI(items))

    await store.fetch()

    assert len(store.notifications) == total
    assert store.unread_count == unread
    assert store.is_loading is False
    assert store.error is None


@pytest.mark.asyncio
async def test_fetch_replaces_wholesale():
    api = FakeAPI([wire(1), wire(2)])
    store = NotificationStore(api)
    await store.fetch()

    api.items = [wire(3, read=True)]
    await store.fetch()

    assert [n.id for n in store.notifications] == [3]
    assert store.unread_count == 0


@pytest.mark.asyncio
async def test_fetch_failure_recorded():
    api = FakeAPI([wire(1)])
    api.fail_reads = True
    store = NotificationStore(api)

    await store.fetch()

    assert store.error is not None
    assert store.is_loading is False
    assert store.notifications == []


# ─── Transport events ────────────────────────────────────


def test_new_notification_prepends_counts_and_alerts():
    alert = RecordingAlert()
    store, transport = bound_store(alert=alert)

    transport.emit("new_notification", wire(1))
    transport.emit("new_notification", wire(2))
    transport.emit("new_notification", wire(3, read=True))

    assert [n.id for n in store.notifications] == [3, 2, 1]
    assert store.unread_count == 2
    assert alert.shown == [
        ("Notification 1", "notification-1"),
        ("Notification 2", "notification-2"),
    ]


def test_duplicate_new_notification_replaced_not_duplicated():
    store, transport = bound_store()
    transport.emit("new_notification", wire(1))
    transport.emit("new_notification", wire(1, title="Renamed"))

    assert len(store.notifications) == 1
    assert store.notifications[0].title == "Renamed"
    assert store.unread_count == 1


def test_notification_updated_replaces_in_place():
    store, transport = bound_store()
    for i in (1, 2, 3):
        transport.emit("new_notification", wire(i))

    transport.emit("notification_updated", wire(2, read=True))

    assert [n.id for n in store.notifications] == [3, 2, 1]
    assert store.notifications[1].read is True
    assert store.unread_count == 2

    # Unknown ids are ignored
    transport.emit("notification_updated", wire(99, read=True))
    assert len(store.notifications) == 3


def test_notification_count_sets_counter_directly():
    store, transport = bound_store()
    transport.emit("notification_count", {"unread_count": 7})
    assert store.unread_count == 7

    transport.emit("notification_count", {"unread_count": -3})
    assert store.unread_count == 0


def test_all_notifications_read():
    store, transport = bound_store()
    transport.emit("new_notification", wire(1))
    transport.emit("new_notification", wire(2, read=True))

    transport.emit("all_notifications_read", {"count": 0})

    assert all(n.read for n in store.notifications)
    assert all(n.read_at is not None for n in store.notifications)
    assert store.unread_count == 0


def test_bad_payload_ignored():
    store, transport = bound_store()
    transport.emit("new_notification", {"id": "not-a-number"})
    transport.emit("new_notification", None)
    assert store.notifications == []


def test_unbind_stops_updates():
    store, transport = bound_store()
    store.unbind(transport)
    transport.emit("new_notification", wire(1))
    assert store.notifications == []


# ─── User actions ────────────────────────────────────────


@pytest.mark.asyncio
async def test_mark_as_read_decrements_once():
    api = FakeAPI([wire(1), wire(2)])
    store = NotificationStore(api)
    await store.fetch()

    await store.mark_as_read(1)
    await store.mark_as_read(1)

    assert store.unread_count == 1
    assert api.calls.count(("mark_read", 1)) == 1
    assert store.notifications[0].read is True


@pytest.mark.asyncio
async def test_mark_as_read_never_goes_negative():
    api = FakeAPI([wire(1)])
    store = NotificationStore(api)
    await store.fetch()
    store.unread_count = 0  # server already said zero

    await store.mark_as_read(1)

    assert store.unread_count == 0


@pytest.mark.asyncio
async def test_mark_all_as_read_flips_everything():
    api = FakeAPI([wire(1), wire(2, read=True), wire(3)])
    store = NotificationStore(api)
    await store.fetch()

    await store.mark_all_as_read()

    assert store.unread_count == 0
    assert all(n.read for n in store.notifications)
    assert "mark_all_read" in api.calls


@pytest.mark.asyncio
async def test_failed_mark_reconciles_from_server():
    api = FakeAPI([wire(1), wire(2)])
    api.fail_writes = True
    store = NotificationStore(api)
    await store.fetch()

    await store.mark_as_read(1)

    # Server still says unread; the refetch restores server truth
    assert api.calls == ["list", ("mark_read", 1), "list"]
    assert store.notifications[0].read is False
    assert store.unread_count == 2
    assert store.stale is False


@pytest.mark.asyncio
async def test_failed_mark_without_reconcile_keeps_optimistic_state():
    api = FakeAPI([wire(1), wire(2)])
    api.fail_writes = True
    store = NotificationStore(api, reconcile_on_failure=False)
    await store.fetch()

    await store.mark_all_as_read()

    assert store.stale is True
    assert store.unread_count == 0
    assert all(n.read for n in store.notifications)
    assert api.calls == ["list", "mark_all_read"]


def test_clear():
    store, transport = bound_store()
    transport.emit("new_notification", wire(1))
    store.clear()
    assert store.notifications == []
    assert store.unread_count == 0
