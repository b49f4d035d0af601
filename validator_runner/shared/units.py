from __future__ import annotations

LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(sol: float) -> int:
    """Convert SOL to lamports, rounding to the nearest lamport."""
    return int(round(sol * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL
