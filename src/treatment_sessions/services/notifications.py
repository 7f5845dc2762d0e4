"""Notification hook for terminal session transitions."""

import logging
from dataclasses import dataclass
from typing import Protocol

from treatment_sessions.domain.sessions import SessionEvent

logger = logging.getLogger(__name__)


class SessionNotifier(Protocol):
    """Receives LOST and RECOVERED transitions."""

    async def notify(self, event: SessionEvent) -> None:
        """Deliver a session event."""


@dataclass
class LoggingNotifier(SessionNotifier):
    """Notifier used when no webhook is configured."""

    async def notify(self, event: SessionEvent) -> None:
        logger.info(
            "Session %s is now %s",
            event.session_id,
            event.status.value,
            extra={"owner_id": event.owner_id, "subject_id": event.subject_id},
        )


async def deliver(notifier: SessionNotifier, event: SessionEvent) -> None:
    """Send an event, logging delivery failures instead of raising them."""
    try:
        await notifier.notify(event)
    except Exception:
        logger.exception(
            "Failed to deliver session notification",
            extra={"session_id": str(event.session_id), "status": event.status.value},
        )
