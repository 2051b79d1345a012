"""Desktop alert capability.

Learn: The store shows an alert for each unread notification that arrives
over the stream. What "show" means belongs to the host: a terminal echo
in the CLI, a native toast in a desktop shell, nothing at all in tests.
"""

from abc import ABC, abstractmethod
from typing import Optional


class DesktopAlert(ABC):
    """Something that can pop up a notification for the user."""

    @abstractmethod
    def show(self, title: str, body: str, *, tag: Optional[str] = None) -> None:
        """Display an alert. `tag` lets a host collapse duplicates."""


class NullDesktopAlert(DesktopAlert):
    """No-op alert for headless and test targets."""

    def show(self, title: str, body: str, *, tag: Optional[str] = None) -> None:
        return None
