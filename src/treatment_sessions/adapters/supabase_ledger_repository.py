"""Supabase repository for recovery accounts."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from treatment_sessions.services.ledger import LedgerRepository


@dataclass
class SupabaseLedgerRepository(LedgerRepository):
    """Supabase implementation for per-owner recovery token counts."""

    client: Client

    def get_tokens_consumed(self, owner_id: str) -> int | None:
        """Return the stored consumption count for an owner."""
        response = (
            self.client.table("recovery_accounts")
            .select("tokens_consumed")
            .eq("owner_id", owner_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return int(response.data[0].get("tokens_consumed") or 0)

    def save_tokens_consumed(self, owner_id: str, tokens_consumed: int) -> None:
        """Upsert the consumption count for an owner."""
        self.client.table("recovery_accounts").upsert(
            {
                "owner_id": owner_id,
                "tokens_consumed": tokens_consumed,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="owner_id",
        ).execute()
