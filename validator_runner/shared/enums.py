from __future__ import annotations

from enum import Enum


class Commitment(str, Enum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _COMMITMENT_RANK[self]

    def satisfied_by(self, status: str | None) -> bool:
        """True when an RPC `confirmationStatus` meets this commitment."""
        if not status:
            return False
        try:
            return Commitment(status).rank >= self.rank
        except ValueError:
            return False


_COMMITMENT_RANK = {
    Commitment.PROCESSED: 0,
    Commitment.CONFIRMED: 1,
    Commitment.FINALIZED: 2,
}


__all__ = ["Commitment"]
