"""Notification requests.

The pipeline only asks for a message to be sent. Mail or push transport is
provided by whoever implements ``NotificationDispatcher``.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    recipient: str
    subject: str
    body: str


class NotificationDispatcher(Protocol):
    async def dispatch(self, notification: Notification) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: records the request in the application log."""

    async def dispatch(self, notification: Notification) -> None:
        logger.info("Notification requested for %s", notification.recipient)


async def request_notification(dispatcher: NotificationDispatcher | None, notification: Notification) -> bool:
    """Hand a notification to the dispatcher. Returns False if it raised."""
    if dispatcher is None:
        return False
    try:
        await dispatcher.dispatch(notification)
        return True
    except Exception as e:
        logger.error("Notification dispatch to %s failed: %s", notification.recipient, type(e).__name__)
        return False
