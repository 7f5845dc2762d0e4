"""Session state machine with per-session serialization."""

import contextlib
import logging
from collections.abc import AsyncIterator
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from treatment_sessions.domain.errors import (
    AlreadyStarted,
    NotLost,
    RecoveryDenied,
    SessionNotActive,
    UnknownSession,
    UnknownTask,
)
from treatment_sessions.domain.sessions import (
    SessionEvent,
    SessionRecord,
    SessionStatus,
)
from treatment_sessions.domain.tasks import TaskGraph
from treatment_sessions.services.audit import AuditService
from treatment_sessions.services.clock import Clock
from treatment_sessions.services.ledger import RecoveryLedger
from treatment_sessions.services.locks import KeyedLocks
from treatment_sessions.services.notifications import SessionNotifier, deliver
from treatment_sessions.services.scheduler import DeadlineScheduler

logger = logging.getLogger(__name__)

_SETTLED = frozenset({SessionStatus.LOST, SessionStatus.RECOVERED})


class SessionRepository(Protocol):
    """Persistence interface for treatment sessions."""

    def create_session(self, record: SessionRecord) -> None:
        """Persist a new session."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def update_session(self, record: SessionRecord) -> None:
        """Persist the full state of an existing session."""

    def list_sessions(self, owner_id: str) -> list[SessionRecord]:
        """Return every session belonging to an owner."""

    def list_active_sessions(self) -> list[SessionRecord]:
        """Return every session currently in the ACTIVE state."""


class SessionStore:
    """Owns session records and applies their state transitions.

    Mutations on one session are serialized by that session's lock, so a
    finalizing task completion and a deadline expiry never interleave: the
    one applied first wins. Every mutation first finalizes an active session
    whose deadline has passed, whether or not the scheduler has fired yet.
    Notifications are delivered after the lock is released. LOST and RECOVERED
    records are dropped from the in-process cache once no caller holds their
    lock, and are read back from the repository when next needed.
    """

    def __init__(  # noqa: PLR0913
        self,
        repository: SessionRepository,
        scheduler: DeadlineScheduler,
        ledger: RecoveryLedger,
        clock: Clock,
        audit_service: AuditService,
        notifier: SessionNotifier,
    ) -> None:
        self.repository = repository
        self.scheduler = scheduler
        self.ledger = ledger
        self.clock = clock
        self.audit_service = audit_service
        self.notifier = notifier
        self._records: dict[UUID, SessionRecord] = {}
        self._locks = KeyedLocks()
        scheduler.bind(self.expire)

    async def create(
        self,
        owner_id: str,
        subject_id: str,
        duration: timedelta,
        task_graph: TaskGraph,
    ) -> SessionRecord:
        """Create a session in the WAITING state."""
        if duration <= timedelta(0):
            raise ValueError("Session duration must be positive")
        record = SessionRecord(
            id=uuid4(),
            owner_id=owner_id,
            subject_id=subject_id,
            status=SessionStatus.WAITING,
            duration=duration,
            task_graph=task_graph,
            created_at=self.clock.now(),
        )
        self.repository.create_session(record)
        self._records[record.id] = record
        self._audit("created", None, record)
        return record

    def get(self, session_id: UUID) -> SessionRecord:
        """Return the current record, loading it from persistence on first use."""
        record = self._records.get(session_id)
        if record is None:
            record = self.repository.get_session(session_id)
            if record is None:
                raise UnknownSession(session_id)
            if record.status not in _SETTLED:
                record = self._records.setdefault(session_id, record)
        return record

    @property
    def cached_sessions(self) -> int:
        """Number of session records held in memory."""
        return len(self._records)

    def list_for_owner(self, owner_id: str) -> list[SessionRecord]:
        """Return an owner's sessions, oldest first."""
        records = {
            record.id: self._records.get(record.id, record)
            for record in self.repository.list_sessions(owner_id)
        }
        for record in self._records.values():
            if record.owner_id == owner_id:
                records[record.id] = record
        return sorted(records.values(), key=lambda record: record.created_at)

    async def start(self, session_id: UUID) -> SessionRecord:
        """Move a WAITING session to ACTIVE and arm its deadline."""
        async with self._serialized(session_id):
            record = self.get(session_id)
            if record.status is not SessionStatus.WAITING:
                raise AlreadyStarted(session_id, record.status.value)
            updated = replace(
                record, status=SessionStatus.ACTIVE, started_at=self.clock.now()
            )
            self._save(record, updated, "started")
            self._arm(updated)
            return updated

    async def complete_task(self, session_id: UUID, task_id: str) -> SessionRecord:
        """Mark a subtask done, finalizing the session when the graph is complete."""
        events: list[SessionEvent] = []
        try:
            async with self._serialized(session_id):
                record = self.get(session_id)
                if not record.task_graph.contains(task_id):
                    raise UnknownTask(session_id, task_id)
                now = self.clock.now()
                record = self._finalize_if_overdue(record, now, events)
                if task_id in record.completed_task_ids and record.status in {
                    SessionStatus.ACTIVE,
                    SessionStatus.RECOVERED,
                }:
                    return record
                if record.status is not SessionStatus.ACTIVE:
                    raise SessionNotActive(session_id, record.status.value)
                completed = record.completed_task_ids | {task_id}
                if not record.task_graph.is_complete(completed):
                    updated = replace(record, completed_task_ids=completed)
                    self._save(record, updated, "task_completed")
                    return updated
                updated = replace(
                    record,
                    status=SessionStatus.RECOVERED,
                    completed_task_ids=completed,
                    finished_at=now,
                )
                self._save(record, updated, "recovered")
                self.scheduler.cancel(session_id)
                events.append(_event(updated, now))
                return updated
        finally:
            await self._publish(events)

    async def expire(self, session_id: UUID) -> SessionRecord | None:
        """Finalize an overdue ACTIVE session as LOST; otherwise do nothing."""
        events: list[SessionEvent] = []
        try:
            async with self._serialized(session_id):
                try:
                    record = self.get(session_id)
                except UnknownSession:
                    logger.warning(
                        "Expiry fired for unknown session",
                        extra={"session_id": str(session_id)},
                    )
                    return None
                now = self.clock.now()
                if not record.is_overdue(now):
                    return None
                return self._finalize_if_overdue(record, now, events)
        finally:
            await self._publish(events)

    async def recover(self, session_id: UUID) -> SessionRecord:
        """Spend one of the owner's tokens to put a LOST session back in play."""
        events: list[SessionEvent] = []
        try:
            async with self._serialized(session_id):
                record = self.get(session_id)
                now = self.clock.now()
                record = self._finalize_if_overdue(record, now, events)
                if record.status is not SessionStatus.LOST:
                    raise NotLost(session_id, record.status.value)
                grant = await self.ledger.try_consume(record.owner_id)
                if not grant.granted:
                    raise RecoveryDenied(record.owner_id, grant.remaining)
                updated = replace(
                    record,
                    status=SessionStatus.ACTIVE,
                    started_at=self.clock.now(),
                    finished_at=None,
                    recovery_count=record.recovery_count + 1,
                )
                try:
                    self._save(record, updated, "revived")
                except Exception:
                    await self.ledger.refund(record.owner_id)
                    raise
                self._arm(updated)
                return updated
        finally:
            await self._publish(events)

    def restore(self) -> int:
        """Reload ACTIVE sessions from persistence and re-arm their deadlines."""
        restored = 0
        for record in self.repository.list_active_sessions():
            current = self._records.setdefault(record.id, record)
            if current.status is SessionStatus.ACTIVE:
                self._arm(current)
                restored += 1
        logger.info("Restored active sessions", extra={"count": restored})
        return restored

    def _finalize_if_overdue(
        self, record: SessionRecord, now: datetime, events: list[SessionEvent]
    ) -> SessionRecord:
        if not record.is_overdue(now):
            return record
        updated = replace(
            record, status=SessionStatus.LOST, finished_at=record.deadline
        )
        self._save(record, updated, "lost")
        self.scheduler.cancel(record.id)
        events.append(_event(updated, now))
        return updated

    def _save(self, before: SessionRecord, after: SessionRecord, event: str) -> None:
        self.repository.update_session(after)
        self._records[after.id] = after
        self._audit(event, before, after)
        logger.info(
            "Session %s %s",
            after.id,
            event,
            extra={"owner_id": after.owner_id, "status": after.status.value},
        )

    def _arm(self, record: SessionRecord) -> None:
        if record.deadline is not None:
            self.scheduler.schedule(record.id, record.deadline)

    async def _publish(self, events: list[SessionEvent]) -> None:
        for event in events:
            await deliver(self.notifier, event)

    def _audit(
        self, event: str, before: SessionRecord | None, after: SessionRecord
    ) -> None:
        try:
            self.audit_service.record_transition(event, before, after, self.clock.now())
        except Exception:
            logger.exception(
                "Failed to record audit entry",
                extra={"session_id": str(after.id), "event_type": event},
            )

    @contextlib.asynccontextmanager
    async def _serialized(self, session_id: UUID) -> AsyncIterator[None]:
        try:
            async with self._locks.hold(session_id):
                yield
        finally:
            self._forget_if_settled(session_id)

    def _forget_if_settled(self, session_id: UUID) -> None:
        if self._locks.in_use(session_id):
            return
        record = self._records.get(session_id)
        if record is not None and record.status in _SETTLED:
            del self._records[session_id]


def _event(record: SessionRecord, occurred_at: datetime) -> SessionEvent:
    return SessionEvent(
        session_id=record.id,
        owner_id=record.owner_id,
        subject_id=record.subject_id,
        status=record.status,
        occurred_at=occurred_at,
    )

