"""Webhook adapter for session notifications."""

from dataclasses import dataclass

import httpx

from treatment_sessions.domain.sessions import SessionEvent
from treatment_sessions.services.notifications import SessionNotifier


@dataclass
class HttpxWebhookNotifier(SessionNotifier):
    """Posts session events as JSON to a webhook URL."""

    url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, url: str) -> "HttpxWebhookNotifier":
        """Create a notifier with a managed httpx session."""
        return cls(url=url, http_client=httpx.AsyncClient())

    async def notify(self, event: SessionEvent) -> None:
        """Send the event to the webhook."""
        payload: dict[str, object] = {
            "session_id": str(event.session_id),
            "owner_id": event.owner_id,
            "subject_id": event.subject_id,
            "status": event.status.value,
            "occurred_at": event.occurred_at.isoformat(),
        }
        response = await self.http_client.post(self.url, json=payload, timeout=10)
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()
