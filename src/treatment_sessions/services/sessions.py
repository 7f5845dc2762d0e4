"""Public session operations consumed by the UI layer."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from treatment_sessions.domain.errors import InvalidCounselling
from treatment_sessions.domain.sessions import (
    OwnerSummary,
    SessionRecord,
    SessionStatus,
    SessionStatusView,
)
from treatment_sessions.domain.tasks import TaskGraph, counselling_problem
from treatment_sessions.services.ledger import RecoveryLedger
from treatment_sessions.services.store import SessionStore


@dataclass
class SessionService:
    """Facade over the session store and recovery ledger."""

    store: SessionStore
    ledger: RecoveryLedger

    async def create_session(
        self,
        owner_id: str,
        subject_id: str,
        duration: timedelta,
        task_graph: TaskGraph,
    ) -> SessionRecord:
        """Register a session that has not been started yet."""
        return await self.store.create(owner_id, subject_id, duration, task_graph)

    async def start(self, session_id: UUID) -> SessionStatusView:
        """Start the timer for a waiting session."""
        record = await self.store.start(session_id)
        return self._view(record)

    async def complete_task(self, session_id: UUID, task_id: str) -> SessionStatusView:
        """Report a finished subtask."""
        record = await self.store.complete_task(session_id, task_id)
        return self._view(record)

    async def submit_counselling(
        self, session_id: UUID, instruction_ids: Iterable[str]
    ) -> SessionStatusView:
        """Validate counselling instructions and complete the counsel task."""
        record = self.store.get(session_id)
        problem = counselling_problem(record.task_graph, instruction_ids)
        if problem is not None:
            raise InvalidCounselling(session_id, problem)
        return await self.complete_task(session_id, record.task_graph.counsel)

    async def recover(self, session_id: UUID) -> SessionStatusView:
        """Spend a recovery token on a lost session."""
        record = await self.store.recover(session_id)
        return self._view(record)

    async def get_status(self, session_id: UUID) -> SessionStatusView:
        """Return the session status, expiring it first if its deadline passed."""
        record = self.store.get(session_id)
        if record.is_overdue(self.store.clock.now()):
            await self.store.expire(session_id)
            record = self.store.get(session_id)
        return self._view(record)

    async def list_sessions(self, owner_id: str) -> list[SessionStatusView]:
        """Return status views for every session an owner has."""
        return [
            await self.get_status(record.id)
            for record in self.store.list_for_owner(owner_id)
        ]

    async def summarize_owner(self, owner_id: str) -> OwnerSummary:
        """Count an owner's sessions per status."""
        counts = {status: 0 for status in SessionStatus}
        for view in await self.list_sessions(owner_id):
            counts[view.status] += 1
        return OwnerSummary(
            owner_id=owner_id,
            waiting=counts[SessionStatus.WAITING],
            active=counts[SessionStatus.ACTIVE],
            recovered=counts[SessionStatus.RECOVERED],
            lost=counts[SessionStatus.LOST],
            recovery_tokens_remaining=self.ledger.remaining(owner_id),
        )

    def _view(self, record: SessionRecord) -> SessionStatusView:
        now = self.store.clock.now()
        if record.started_at is None:
            elapsed = timedelta(0)
        else:
            elapsed = max(timedelta(0), (record.finished_at or now) - record.started_at)
        remaining = max(timedelta(0), record.duration - elapsed)
        return SessionStatusView(
            session_id=record.id,
            status=record.status,
            elapsed=elapsed,
            remaining=remaining,
            deadline=record.deadline,
            completed_tasks=record.completed_task_ids,
            pending_tasks=tuple(record.task_graph.pending(record.completed_task_ids)),
            recovery_tokens_remaining=self.ledger.remaining(record.owner_id),
        )
