"""Python client for the notifications channel.

Learn: Three pieces, composed by whoever owns the app's root (the CLI,
a desktop shell, a test):

    api = NotificationsAPI(base_url, token_provider)
    transport = NotificationTransport(ws_url, token_provider)
    store = NotificationStore(api, alert=NullDesktopAlert())
    store.bind(transport)

There is no module-level client instance; build one per session.
"""

from eventbell.client.alerts import DesktopAlert, NullDesktopAlert
from eventbell.client.api import NotificationsAPI, cable_url
from eventbell.client.errors import (
    AuthenticationError,
    CommandDeliveryError,
    EventbellClientError,
    TransportError,
)
from eventbell.client.store import NotificationStore
from eventbell.client.transport import NotificationTransport, TransportState
