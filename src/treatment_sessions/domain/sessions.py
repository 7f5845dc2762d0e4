"""Domain models for timed treatment sessions."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from treatment_sessions.domain.tasks import TaskGraph


class SessionStatus(str, Enum):
    """Lifecycle states of a treatment session."""

    WAITING = "WAITING"
    ACTIVE = "ACTIVE"
    RECOVERED = "RECOVERED"
    LOST = "LOST"


@dataclass(frozen=True)
class SessionRecord:
    """Represents one timed attempt at treating a patient."""

    id: UUID
    owner_id: str
    subject_id: str
    status: SessionStatus
    duration: timedelta
    task_graph: TaskGraph
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    completed_task_ids: frozenset[str] = frozenset()
    recovery_count: int = 0

    @property
    def deadline(self) -> datetime | None:
        if self.started_at is None:
            return None
        return self.started_at + self.duration

    def is_overdue(self, now: datetime) -> bool:
        """Return true when an active session has reached its deadline."""
        deadline = self.deadline
        return (
            self.status is SessionStatus.ACTIVE
            and deadline is not None
            and now >= deadline
        )


@dataclass(frozen=True)
class SessionStatusView:
    """Read model returned to the UI layer."""

    session_id: UUID
    status: SessionStatus
    elapsed: timedelta
    remaining: timedelta
    deadline: datetime | None
    completed_tasks: frozenset[str]
    pending_tasks: tuple[str, ...]
    recovery_tokens_remaining: int


@dataclass(frozen=True)
class SessionEvent:
    """Terminal transition delivered to the notification hook."""

    session_id: UUID
    owner_id: str
    subject_id: str
    status: SessionStatus
    occurred_at: datetime


@dataclass(frozen=True)
class OwnerSummary:
    """Waiting-room counters for one student."""

    owner_id: str
    waiting: int
    active: int
    recovered: int
    lost: int
    recovery_tokens_remaining: int
