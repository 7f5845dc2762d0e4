"""Domain models for the recovery ledger."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RecoveryAccount:
    """Recovery tokens consumed by one owner."""

    owner_id: str
    tokens_consumed: int
    max_tokens: int

    @property
    def remaining(self) -> int:
        return max(0, self.max_tokens - self.tokens_consumed)


@dataclass(frozen=True)
class RecoveryGrant:
    """Outcome of a token request."""

    granted: bool
    remaining: int
