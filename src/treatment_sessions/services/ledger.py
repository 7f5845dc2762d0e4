"""Per-owner recovery token budget."""

import logging
from typing import Protocol

from treatment_sessions.domain.ledger import RecoveryAccount, RecoveryGrant
from treatment_sessions.services.locks import KeyedLocks

logger = logging.getLogger(__name__)


class LedgerRepository(Protocol):
    """Persistence interface for recovery accounts."""

    def get_tokens_consumed(self, owner_id: str) -> int | None:
        """Return the stored consumption count for an owner, if present."""

    def save_tokens_consumed(self, owner_id: str, tokens_consumed: int) -> None:
        """Persist the consumption count for an owner."""


class RecoveryLedger:
    """Atomic compare-and-increment over each owner's recovery tokens.

    Consumption counts are cached per owner for the life of the process; the
    cache holds one integer for every owner whose account was read.
    """

    def __init__(self, repository: LedgerRepository, max_tokens: int = 50) -> None:
        if max_tokens < 0:
            raise ValueError("max_tokens must be non-negative")
        self.repository = repository
        self.max_tokens = max_tokens
        self._consumed: dict[str, int] = {}
        self._locks = KeyedLocks()

    def account(self, owner_id: str) -> RecoveryAccount:
        """Return the current account state for an owner."""
        return RecoveryAccount(
            owner_id=owner_id,
            tokens_consumed=self._load(owner_id),
            max_tokens=self.max_tokens,
        )

    def remaining(self, owner_id: str) -> int:
        """Return how many recoveries the owner may still spend."""
        return self.account(owner_id).remaining

    async def try_consume(self, owner_id: str) -> RecoveryGrant:
        """Consume one token if any remain."""
        async with self._locks.hold(owner_id):
            consumed = self._load(owner_id)
            if consumed >= self.max_tokens:
                logger.info("Recovery denied", extra={"owner_id": owner_id})
                return RecoveryGrant(granted=False, remaining=0)
            consumed += 1
            self.repository.save_tokens_consumed(owner_id, consumed)
            self._consumed[owner_id] = consumed
            remaining = self.max_tokens - consumed
            logger.info(
                "Recovery token consumed",
                extra={"owner_id": owner_id, "remaining": remaining},
            )
            return RecoveryGrant(granted=True, remaining=remaining)

    async def refund(self, owner_id: str) -> int:
        """Give back a token whose recovery could not be applied."""
        async with self._locks.hold(owner_id):
            consumed = self._load(owner_id)
            if consumed > 0:
                consumed -= 1
                self.repository.save_tokens_consumed(owner_id, consumed)
                self._consumed[owner_id] = consumed
            remaining = self.max_tokens - consumed
            logger.warning(
                "Recovery token refunded",
                extra={"owner_id": owner_id, "remaining": remaining},
            )
            return remaining

    def _load(self, owner_id: str) -> int:
        consumed = self._consumed.get(owner_id)
        if consumed is None:
            stored = self.repository.get_tokens_consumed(owner_id)
            consumed = min(max(stored or 0, 0), self.max_tokens)
            self._consumed[owner_id] = consumed
        return consumed
