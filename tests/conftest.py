"""Shared test fixtures."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest

from treatment_sessions.config import Settings
from treatment_sessions.containers import AppContainer
from treatment_sessions.domain.sessions import (
    SessionEvent,
    SessionRecord,
    SessionStatus,
)
from treatment_sessions.domain.tasks import TaskGraph
from treatment_sessions.services.audit import AuditEntry, AuditRepository, AuditService
from treatment_sessions.services.clock import Clock
from treatment_sessions.services.ledger import LedgerRepository, RecoveryLedger
from treatment_sessions.services.notifications import SessionNotifier
from treatment_sessions.services.scheduler import DeadlineScheduler
from treatment_sessions.services.sessions import SessionService
from treatment_sessions.services.store import SessionRepository, SessionStore

EPOCH = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


@dataclass
class FakeClock(Clock):
    """Clock that only moves when told to."""

    current: datetime = EPOCH

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: dict[UUID, SessionRecord] = field(default_factory=dict)
    fail_updates: bool = False

    def create_session(self, record: SessionRecord) -> None:
        self.sessions[record.id] = record

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        return self.sessions.get(session_id)

    def update_session(self, record: SessionRecord) -> None:
        if self.fail_updates:
            raise RuntimeError("Failed to update session")
        self.sessions[record.id] = record

    def list_sessions(self, owner_id: str) -> list[SessionRecord]:
        return [
            record for record in self.sessions.values() if record.owner_id == owner_id
        ]

    def list_active_sessions(self) -> list[SessionRecord]:
        return [
            record
            for record in self.sessions.values()
            if record.status is SessionStatus.ACTIVE
        ]


@dataclass
class InMemoryLedgerRepository(LedgerRepository):
    """In-memory recovery ledger repository for tests."""

    consumed: dict[str, int] = field(default_factory=dict)

    def get_tokens_consumed(self, owner_id: str) -> int | None:
        return self.consumed.get(owner_id)

    def save_tokens_consumed(self, owner_id: str, tokens_consumed: int) -> None:
        self.consumed[owner_id] = tokens_consumed


@dataclass
class InMemoryAuditRepository(AuditRepository):
    """In-memory audit repository for tests."""

    entries: list[AuditEntry] = field(default_factory=list)
    fail: bool = False

    def append(self, entry: AuditEntry) -> None:
        if self.fail:
            raise RuntimeError("Failed to create audit event")
        self.entries.append(entry)


@dataclass
class RecordingNotifier(SessionNotifier):
    """Notifier that keeps every delivered event."""

    events: list[SessionEvent] = field(default_factory=list)

    async def notify(self, event: SessionEvent) -> None:
        self.events.append(event)


@dataclass
class FailingNotifier(SessionNotifier):
    """Notifier whose delivery always fails."""

    attempts: int = 0

    async def notify(self, event: SessionEvent) -> None:
        self.attempts += 1
        raise RuntimeError("webhook down")


@dataclass
class Harness:
    """Session stack wired with in-memory collaborators."""

    clock: FakeClock
    repository: InMemorySessionRepository
    ledger_repository: InMemoryLedgerRepository
    audit_repository: InMemoryAuditRepository
    notifier: RecordingNotifier
    scheduler: DeadlineScheduler
    ledger: RecoveryLedger
    store: SessionStore
    service: SessionService


def build_harness(
    max_tokens: int = 50,
    notifier: SessionNotifier | None = None,
    repository: InMemorySessionRepository | None = None,
    clock: FakeClock | None = None,
) -> Harness:
    clock = clock or FakeClock()
    repository = repository if repository is not None else InMemorySessionRepository()
    ledger_repository = InMemoryLedgerRepository()
    audit_repository = InMemoryAuditRepository()
    recording = RecordingNotifier()
    scheduler = DeadlineScheduler(clock=clock)
    ledger = RecoveryLedger(ledger_repository, max_tokens=max_tokens)
    store = SessionStore(
        repository=repository,
        scheduler=scheduler,
        ledger=ledger,
        clock=clock,
        audit_service=AuditService(audit_repository),
        notifier=notifier or recording,
    )
    return Harness(
        clock=clock,
        repository=repository,
        ledger_repository=ledger_repository,
        audit_repository=audit_repository,
        notifier=recording,
        scheduler=scheduler,
        ledger=ledger,
        store=store,
        service=SessionService(store=store, ledger=ledger),
    )


def pharmacy_graph() -> TaskGraph:
    return TaskGraph.for_prescription(
        ["amoxicillin", "paracetamol"],
        accepted_instructions=["after-meals", "finish-course"],
    )


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        default_duration_seconds=300,
    )


@pytest.fixture
def container(settings: Settings, harness: Harness) -> AppContainer:
    async def close_resources() -> None:
        await harness.scheduler.stop()

    return AppContainer(
        settings=settings,
        clock=harness.clock,
        scheduler=harness.scheduler,
        ledger=harness.ledger,
        store=harness.store,
        notifier=harness.notifier,
        session_service=harness.service,
        close_resources=close_resources,
    )
