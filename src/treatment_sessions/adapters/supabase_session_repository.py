"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from supabase import Client

from treatment_sessions.domain.sessions import SessionRecord, SessionStatus
from treatment_sessions.domain.tasks import TaskGraph
from treatment_sessions.services.store import SessionRepository

_COLUMNS = (
    "id, owner_id, subject_id, status, duration_seconds, task_graph_json, "
    "created_at, started_at, finished_at, completed_task_ids, recovery_count"
)


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for treatment sessions."""

    client: Client

    def create_session(self, record: SessionRecord) -> None:
        """Insert a session row."""
        response = (
            self.client.table("treatment_sessions")
            .insert(_to_row(record))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create session")

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("treatment_sessions")
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _from_row(response.data[0])

    def update_session(self, record: SessionRecord) -> None:
        """Overwrite the mutable columns of a session row."""
        row = _to_row(record)
        row.pop("id")
        row["updated_at"] = datetime.now(tz=UTC).isoformat()
        self.client.table("treatment_sessions").update(row).eq(
            "id", str(record.id)
        ).execute()

    def list_sessions(self, owner_id: str) -> list[SessionRecord]:
        """Return an owner's sessions, oldest first."""
        response = (
            self.client.table("treatment_sessions")
            .select(_COLUMNS)
            .eq("owner_id", owner_id)
            .order("created_at")
            .execute()
        )
        return [_from_row(row) for row in response.data or []]

    def list_active_sessions(self) -> list[SessionRecord]:
        """Return every session that is still running."""
        response = (
            self.client.table("treatment_sessions")
            .select(_COLUMNS)
            .eq("status", SessionStatus.ACTIVE.value)
            .execute()
        )
        return [_from_row(row) for row in response.data or []]


def _to_row(record: SessionRecord) -> dict[str, object]:
    return {
        "id": str(record.id),
        "owner_id": record.owner_id,
        "subject_id": record.subject_id,
        "status": record.status.value,
        "duration_seconds": record.duration.total_seconds(),
        "task_graph_json": record.task_graph.to_dict(),
        "created_at": record.created_at.isoformat(),
        "started_at": _isoformat(record.started_at),
        "finished_at": _isoformat(record.finished_at),
        "completed_task_ids": sorted(record.completed_task_ids),
        "recovery_count": record.recovery_count,
    }


def _from_row(row: dict[str, object]) -> SessionRecord:
    return SessionRecord(
        id=UUID(str(row["id"])),
        owner_id=str(row["owner_id"]),
        subject_id=str(row["subject_id"]),
        status=SessionStatus(row["status"]),
        duration=timedelta(seconds=float(row["duration_seconds"])),  # type: ignore[arg-type]
        task_graph=TaskGraph.from_dict(row["task_graph_json"]),  # type: ignore[arg-type]
        created_at=_parse_datetime(row["created_at"]) or datetime.now(tz=UTC),
        started_at=_parse_datetime(row.get("started_at")),
        finished_at=_parse_datetime(row.get("finished_at")),
        completed_task_ids=frozenset(
            str(task_id) for task_id in row.get("completed_task_ids") or []  # type: ignore[attr-defined]
        ),
        recovery_count=int(row.get("recovery_count") or 0),  # type: ignore[call-overload]
    )


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_datetime(value: object) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
