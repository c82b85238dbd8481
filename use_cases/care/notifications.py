"""
Report dispatch port.

Actual delivery (email gateway, WhatsApp API) is an external concern; the
default dispatcher only records the attempt in the log.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CHANNELS = ("email", "whatsapp")


@dataclass
class NotificationMessage:
    report_id: str
    channel: str
    recipient_name: str
    address: str
    subject: str
    body: str


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, message: NotificationMessage) -> None:
        """
        Deliver a message.

        Raises:
            ExternalServiceError: Delivery failed
        """
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Placeholder dispatcher that logs instead of delivering."""

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            f"Sending report {message.report_id} via {message.channel} "
            f"to {message.recipient_name} <{message.address}>"
        )
