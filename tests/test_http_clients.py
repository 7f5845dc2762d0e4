"""Tests for HTTP-based adapters."""

import asyncio
import json
from datetime import UTC, datetime
from uuid import uuid4

import httpx
import pytest

from treatment_sessions.adapters.webhook_notifier import HttpxWebhookNotifier
from treatment_sessions.domain.sessions import SessionEvent, SessionStatus


def _event() -> SessionEvent:
    return SessionEvent(
        session_id=uuid4(),
        owner_id="student-1",
        subject_id="patient-7",
        status=SessionStatus.LOST,
        occurred_at=datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
    )


def test_webhook_notifier_posts_event() -> None:
    seen: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/hooks/sessions"
        seen.append(json.loads(request.content.decode()))
        return httpx.Response(204)

    transport = httpx.MockTransport(handler)
    notifier = HttpxWebhookNotifier(
        url="https://portal.test/hooks/sessions",
        http_client=httpx.AsyncClient(transport=transport),
    )
    event = _event()

    asyncio.run(notifier.notify(event))

    assert seen == [
        {
            "session_id": str(event.session_id),
            "owner_id": "student-1",
            "subject_id": "patient-7",
            "status": "LOST",
            "occurred_at": "2024-01-01T10:00:00+00:00",
        }
    ]


def test_webhook_notifier_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    notifier = HttpxWebhookNotifier(
        url="https://portal.test/hooks/sessions",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(notifier.notify(_event()))
