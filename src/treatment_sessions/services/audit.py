"""Audit trail of session state transitions."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from treatment_sessions.domain.sessions import SessionRecord


@dataclass(frozen=True)
class AuditEntry:
    """One recorded transition with snapshots of the record around it."""

    session_id: UUID
    owner_id: str
    event_type: str
    occurred_at: datetime
    before: dict[str, object] | None
    after: dict[str, object]


class AuditRepository(Protocol):
    """Persistence interface for audit entries."""

    def append(self, entry: AuditEntry) -> None:
        """Store an audit entry."""


@dataclass
class AuditService:
    """Records every session state change as an audit entry."""

    repository: AuditRepository

    def record_transition(
        self,
        event_type: str,
        before: SessionRecord | None,
        after: SessionRecord,
        occurred_at: datetime,
    ) -> AuditEntry:
        entry = AuditEntry(
            session_id=after.id,
            owner_id=after.owner_id,
            event_type=event_type,
            occurred_at=occurred_at,
            before=snapshot(before) if before is not None else None,
            after=snapshot(after),
        )
        self.repository.append(entry)
        return entry


def snapshot(record: SessionRecord) -> dict[str, object]:
    """Return the audited fields of a session record."""
    return {
        "status": record.status.value,
        "started_at": record.started_at.isoformat() if record.started_at else None,
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
        "completed_task_ids": sorted(record.completed_task_ids),
        "recovery_count": record.recovery_count,
    }
