"""
Combinatorial efficiency of the multi-jet trigger leg

Each selected jet is in exactly one of three states:

    0  fails both jet legs          p = 1 - eff_tight - eff_loose
    1  loose leg only (25, not 30)  p = eff_loose
    2  tight leg (30 GeV)           p = eff_tight

The trigger efficiency is the summed probability of every state assignment
that fires the trigger. All 3^N assignments are enumerated (each one a
base-3 number with N digits), so the cost is O(N * 3^N); N is bounded by
MAX_JETS.

Firing conditions:

    "any"   at least one tight jet, or at least two loose-only jets
    "pair"  at least one tight jet and a second jet passing either leg
            (the two-jet topology of the electron + dijet + MHT trigger;
            for two jets this is e30_1*e30_2 + e30_1*e25_2 + e30_2*e25_1)
"""

from __future__ import annotations

import itertools
from typing import Sequence

from .exceptions import EfficiencyError

MAX_JETS = 6

FAIL, LOOSE, TIGHT = 0, 1, 2

TRIGGER_CONDITIONS = ("any", "pair")


def fires(n_loose: int, n_tight: int, condition: str = "any") -> bool:
    """Whether an assignment with the given state counts fires the trigger."""
    if condition == "any":
        return n_tight >= 1 or n_loose >= 2
    if condition == "pair":
        return n_tight >= 1 and (n_tight + n_loose) >= 2
    raise ValueError(f"Unknown trigger condition {condition!r}, expected one of {TRIGGER_CONDITIONS}")


def _check_inputs(njets: int, eff_tight: Sequence[float], eff_loose: Sequence[float]) -> None:
    for i in range(njets):
        tight, loose = eff_tight[i], eff_loose[i]
        if not (0.0 <= tight <= 1.0 and 0.0 <= loose <= 1.0):
            raise EfficiencyError(
                f"Jet {i}: efficiencies must lie in [0, 1] (tight={tight}, loose={loose})"
            )
        if tight + loose > 1.0 + 1e-12:
            raise EfficiencyError(
                f"Jet {i}: tight + loose-only efficiency exceeds 1 ({tight} + {loose})"
            )


def dijet_efficiency(
    njets: int,
    eff_tight: Sequence[float],
    eff_loose: Sequence[float],
    condition: str = "any",
    validate: bool = False,
) -> float:
    """
    Probability that the multi-jet trigger leg fires.

    Args:
        njets: Number of selected jets N (only the first N entries are used)
        eff_tight: Per-jet efficiency of the tight leg
        eff_loose: Per-jet efficiency of passing the loose but not the tight leg
        condition: Firing condition, "any" or "pair"
        validate: Check per-jet probabilities, otherwise they are a precondition

    Returns:
        Trigger efficiency in [0, 1] when the preconditions hold

    Raises:
        ValueError: If njets exceeds MAX_JETS or the efficiency sequences
        EfficiencyError: If validate is set and a probability is invalid
    """
    if njets <= 0:
        return 0.0
    if njets > MAX_JETS:
        raise ValueError(f"Jet count {njets} above the enumeration limit of {MAX_JETS}")
    if njets > len(eff_tight) or njets > len(eff_loose):
        raise ValueError(
            f"Need {njets} per-jet efficiencies, got {len(eff_tight)} tight "
            f"and {len(eff_loose)} loose"
        )
    if validate:
        _check_inputs(njets, eff_tight, eff_loose)

    state_probs = [
        (1.0 - eff_tight[i] - eff_loose[i], eff_loose[i], eff_tight[i]) for i in range(njets)
    ]

    total = 0.0
    for digits in itertools.product((FAIL, LOOSE, TIGHT), repeat=njets):
        if not fires(digits.count(LOOSE), digits.count(TIGHT), condition):
            continue
        prob = 1.0
        for jet, state in enumerate(digits):
            prob *= state_probs[jet][state]
        total += prob
    return total
