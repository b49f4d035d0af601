"""Tests for shared/units.py and shared/enums.py."""

from __future__ import annotations

import pytest

from validator_runner.shared.enums import Commitment
from validator_runner.shared.units import LAMPORTS_PER_SOL, lamports_to_sol, sol_to_lamports


class TestUnits:
    """Tests for SOL/lamport conversion."""

    def test_sol_to_lamports(self):
        """Whole and fractional SOL convert exactly."""
        assert sol_to_lamports(1) == LAMPORTS_PER_SOL
        assert sol_to_lamports(5.0) == 5_000_000_000
        assert sol_to_lamports(0.000000001) == 1

    def test_lamports_to_sol(self):
        """Lamports convert back to SOL."""
        assert lamports_to_sol(2_500_000_000) == pytest.approx(2.5)


class TestCommitment:
    """Tests for Commitment ordering."""

    def test_ordering(self):
        """processed < confirmed < finalized."""
        assert Commitment.PROCESSED.rank < Commitment.CONFIRMED.rank < Commitment.FINALIZED.rank

    @pytest.mark.parametrize(
        "wanted,status,expected",
        [
            (Commitment.PROCESSED, "processed", True),
            (Commitment.PROCESSED, "finalized", True),
            (Commitment.CONFIRMED, "processed", False),
            (Commitment.CONFIRMED, "confirmed", True),
            (Commitment.FINALIZED, "confirmed", False),
            (Commitment.FINALIZED, None, False),
            (Commitment.PROCESSED, "bogus", False),
        ],
    )
    def test_satisfied_by(self, wanted, status, expected):
        """A status satisfies every commitment at or below its rank."""
        assert wanted.satisfied_by(status) is expected
