"""Pydantic models for the session API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from treatment_sessions.domain.sessions import OwnerSummary, SessionStatusView


class CreateSessionRequest(BaseModel):
    """Payload for registering a new patient session."""

    owner_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    duration_seconds: float | None = Field(default=None, gt=0)
    dispense_items: list[str] = Field(default_factory=list)
    accepted_instructions: list[str] | None = None


class CounsellingRequest(BaseModel):
    """Counselling instructions given to the patient."""

    instructions: list[str]


class SessionStatusResponse(BaseModel):
    """Session status as seen by the UI."""

    session_id: UUID
    status: str
    elapsed_seconds: float
    remaining_seconds: float
    deadline: datetime | None
    completed_tasks: list[str]
    pending_tasks: list[str]
    recovery_tokens_remaining: int

    @classmethod
    def from_view(cls, view: SessionStatusView) -> "SessionStatusResponse":
        return cls(
            session_id=view.session_id,
            status=view.status.value,
            elapsed_seconds=view.elapsed.total_seconds(),
            remaining_seconds=view.remaining.total_seconds(),
            deadline=view.deadline,
            completed_tasks=sorted(view.completed_tasks),
            pending_tasks=list(view.pending_tasks),
            recovery_tokens_remaining=view.recovery_tokens_remaining,
        )


class OwnerSummaryResponse(BaseModel):
    """Waiting-room counters for a student."""

    owner_id: str
    waiting: int
    active: int
    recovered: int
    lost: int
    recovery_tokens_remaining: int

    @classmethod
    def from_summary(cls, summary: OwnerSummary) -> "OwnerSummaryResponse":
        return cls(
            owner_id=summary.owner_id,
            waiting=summary.waiting,
            active=summary.active,
            recovered=summary.recovered,
            lost=summary.lost,
            recovery_tokens_remaining=summary.recovery_tokens_remaining,
        )
