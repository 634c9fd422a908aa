"""
Notification Senders.

LogNotificationSender records outbound messages in the application log
instead of delivering them. It stands in for an SMS provider in local
development and in the CLI.
"""

from smscp.core.logging import get_logger, log_with_source

logger = get_logger(__name__)


class LogNotificationSender:
    """NotificationSender that only logs."""

    async def send(self, destination: str, text: str) -> None:
        log_with_source(
            logger,
            "sms",
            "info",
            "Outbound message",
            destination_suffix=destination[-4:],
            length=len(text),
        )
