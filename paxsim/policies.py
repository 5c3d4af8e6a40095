# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# policies.py
# -----------------------------------------------------------------------------
# Purpose:
#   Small decision rules used by passengers and the spawner: attempt outcome,
#   success-chance escalation, and which agent kind to spawn.
#
# Design notes:
#   - Keep pure functions to ease testing (inputs -> decision).
#
# Usage:
#   from paxsim.policies import attempt_succeeds, escalate, pick_kind
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Sequence


def attempt_succeeds(roll: float, chance: float) -> bool:
    """An attempt succeeds when the uniform roll does not exceed the chance."""
    return roll <= chance


def escalate(chance: float, increment: float) -> float:
    """Chance after a failed attempt, clamped to 1.0."""
    return min(1.0, chance + increment)


def pick_kind(kinds: Sequence[str], rng) -> str:
    # uniform over configured kinds; no draw when only one exists
    if len(kinds) == 1:
        return kinds[0]
    return kinds[int(rng.random() * len(kinds)) % len(kinds)]
