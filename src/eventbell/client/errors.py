"""Client-side error taxonomy."""


class EventbellClientError(Exception):
    """Base class for everything the client raises."""


class AuthenticationError(EventbellClientError):
    """No credential available (or the server refused it)."""


class TransportError(EventbellClientError):
    """The socket couldn't be opened, or was lost for good."""


class CommandDeliveryError(EventbellClientError):
    """A REST call (list, mark read, mark all read) failed."""
