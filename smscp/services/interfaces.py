"""
Collaborator Interfaces.

Protocols for the collaborators the account service consumes. Delivery,
rendering and transport live outside this package.
"""

from typing import Protocol

from smscp.schemas.note import Note
from smscp.schemas.user import User


class NotificationSender(Protocol):
    """Delivers a text message to an address (a phone number for SMS)."""

    async def send(self, destination: str, text: str) -> None:
        """Send text to destination. Raises on delivery failure."""
        ...


class ExportFormatter(Protocol):
    """Renders a user's complete data as a downloadable document."""

    media_type: str

    def format(self, user: User, notes: list[Note]) -> bytes:
        ...
