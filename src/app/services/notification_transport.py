"""
Notification transports

One transport per user channel. The logging transports stand in for real
email/SMS/push providers; swap them in the container to deliver for real.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict

from src.app.services.dtos import NotificationMessage
from src.domain.entities import NotificationChannelType, OperatorChannelType

logger = logging.getLogger(__name__)


class NotificationTransport(ABC):
    """Delivers one rendered message on one channel. Raises on failure."""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> None:
        pass


class LoggingNotificationTransport(NotificationTransport):
    def __init__(self, channel: str):
        self.channel = channel

    async def send(self, message: NotificationMessage) -> None:
        if message.subject:
            logger.info(
                f"{self.channel} notification sent: to={message.recipient} "
                f"subject={message.subject!r} severity={message.severity.value}"
            )
        else:
            logger.info(
                f"{self.channel} notification sent: to={message.recipient} "
                f"title={message.title!r} severity={message.severity.value}"
            )
        logger.debug(f"{self.channel} notification body: {message.body}")


def default_transports() -> Dict[str, NotificationTransport]:
    return {
        channel.value: LoggingNotificationTransport(channel.value)
        for channel in NotificationChannelType
    }


def default_operator_transports() -> Dict[str, NotificationTransport]:
    return {
        channel.value: LoggingNotificationTransport(channel.value)
        for channel in OperatorChannelType
    }
