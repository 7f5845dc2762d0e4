"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from treatment_sessions.adapters.supabase_audit_repository import (
    SupabaseAuditRepository,
)
from treatment_sessions.adapters.supabase_ledger_repository import (
    SupabaseLedgerRepository,
)
from treatment_sessions.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from treatment_sessions.adapters.webhook_notifier import HttpxWebhookNotifier
from treatment_sessions.config import Settings
from treatment_sessions.services.audit import AuditService
from treatment_sessions.services.clock import Clock, SystemClock
from treatment_sessions.services.ledger import RecoveryLedger
from treatment_sessions.services.notifications import LoggingNotifier, SessionNotifier
from treatment_sessions.services.scheduler import DeadlineScheduler
from treatment_sessions.services.sessions import SessionService
from treatment_sessions.services.store import SessionStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    clock: Clock
    scheduler: DeadlineScheduler
    ledger: RecoveryLedger
    store: SessionStore
    notifier: SessionNotifier
    session_service: SessionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    clock = SystemClock()
    scheduler = DeadlineScheduler(
        clock=clock, poll_seconds=resolved_settings.scheduler_poll_seconds
    )
    ledger = RecoveryLedger(
        SupabaseLedgerRepository(supabase_client),
        max_tokens=resolved_settings.max_recovery_tokens,
    )
    webhook: HttpxWebhookNotifier | None = None
    notifier: SessionNotifier
    if resolved_settings.notification_webhook_url:
        webhook = HttpxWebhookNotifier.create(
            resolved_settings.notification_webhook_url
        )
        notifier = webhook
    else:
        notifier = LoggingNotifier()
    store = SessionStore(
        repository=SupabaseSessionRepository(supabase_client),
        scheduler=scheduler,
        ledger=ledger,
        clock=clock,
        audit_service=AuditService(SupabaseAuditRepository(supabase_client)),
        notifier=notifier,
    )
    session_service = SessionService(store=store, ledger=ledger)

    async def close_resources() -> None:
        await scheduler.stop()
        if webhook is not None:
            await webhook.close()

    return AppContainer(
        settings=resolved_settings,
        clock=clock,
        scheduler=scheduler,
        ledger=ledger,
        store=store,
        notifier=notifier,
        session_service=session_service,
        close_resources=close_resources,
    )
