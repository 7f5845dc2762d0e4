"""Supabase repository for session audit entries."""

from dataclasses import dataclass

from supabase import Client

from treatment_sessions.services.audit import AuditEntry, AuditRepository


@dataclass
class SupabaseAuditRepository(AuditRepository):
    """Appends audit entries to the shared audit_events table."""

    client: Client

    def append(self, entry: AuditEntry) -> None:
        self.client.table("audit_events").insert(
            {
                "owner_id": entry.owner_id,
                "entity_type": "treatment_session",
                "entity_id": str(entry.session_id),
                "event_type": entry.event_type,
                "occurred_at": entry.occurred_at.isoformat(),
                "before_json": entry.before,
                "after_json": entry.after,
            }
        ).execute()
