"""
Best-effort push notification dispatch.

The relay only resolves the counterparty's device token; delivery itself is an
external concern plugged in through `PushDispatcher.transport`. Dispatch runs
as a background task after the HTTP response, with its own database session,
and never raises.
"""

import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import config, db, store

logger = logging.getLogger(__name__)

Transport = Callable[[str, str], Awaitable[None]]


class PushDispatcher:
    def __init__(self, transport: Optional[Transport] = None):
        self.transport = transport

    async def send(self, recipient: str, token: str | None, alert: str) -> None:
        if not token:
            logger.info("No device token for %s, skipping push", recipient)
            return
        if self.transport is None:
            logger.info("Push generated but dropped (no transport configured) for %s", recipient)
            return
        try:
            await self.transport(token, alert)
            logger.info("Push sent to %s", recipient)
        except Exception:
            logger.exception("Push to %s failed", recipient)


def push_target(is_operator_message: bool, room: str) -> tuple[str, str]:
    """Who to notify about a new message, and with which alert text."""
    if is_operator_message:
        return room, "New message from support"
    return config.OPERATOR_IDENTITY, f"{room}: New message"


dispatcher = PushDispatcher()


async def notify_counterparty(is_operator_message: bool, room: str) -> None:
    """Background task: look up the counterparty's device token and push to it."""
    recipient, alert = push_target(is_operator_message, room)
    try:
        async with db.SessionLocal() as session:
            token = await store.get_device_token(session, recipient)
    except SQLAlchemyError:
        logger.exception("Device token lookup for %s failed, skipping push", recipient)
        return
    await dispatcher.send(recipient, token, alert)
