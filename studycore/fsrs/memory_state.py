"""
Memory State - FSRS Item State and Recall Probability

Defines the core memory state variables and derived quantities for FSRS.

Key concepts:
- Stability (S): Days until recall probability decays to ~0.9 (in days)
- Difficulty (D): How hard the item is to learn (1-10 scale)
- Recall probability (R): Probability of successful recall at time t
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import math

from studycore.fsrs.constants import (
    Phase,
    S_MIN,
    D_MIN,
    D_MAX,
    DECAY_SCALE,
    DEFAULT_STABILITY,
    DEFAULT_DIFFICULTY,
    MIN_INTERVAL_DAYS,
)


SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class MemoryState:
    """
    Memory state for a single item.

    Instances are never modified; every review produces a new state.
    """
    # Long-term memory parameters
    stability: float  # S, in days
    difficulty: float  # D, range 1-10

    # Interval bookkeeping from the most recent review
    elapsed_days: int
    scheduled_days: int

    # Review tracking
    reps: int  # Non-forgot reviews
    lapses: int  # Forgot reviews
    phase: Phase
    last_reviewed_at: Optional[datetime] = None

    @property
    def is_new(self) -> bool:
        return self.phase == Phase.NEW


def new_memory_state() -> MemoryState:
    """
    Initialize state for an item that has never been reviewed.

    Returns:
        MemoryState with default stability and difficulty
    """
    return MemoryState(
        stability=DEFAULT_STABILITY,
        difficulty=DEFAULT_DIFFICULTY,
        elapsed_days=0,
        scheduled_days=MIN_INTERVAL_DAYS,
        reps=0,
        lapses=0,
        phase=Phase.NEW,
        last_reviewed_at=None,
    )


def recall_probability(stability: float, elapsed_days: float) -> float:
    """
    Calculate recall probability using the FSRS power forgetting curve.

    Formula: R = (1 + t / (9 * S))^-1

    Interpretation:
    - Immediately after review: R = 1.0
    - After t = S days: R = 0.9
    - Decays slowly afterwards, never reaching 0

    Args:
        stability: Current stability in days
        elapsed_days: Days since the last review

    Returns:
        Probability in (0, 1], or 0.0 for a non-positive stability
    """
    if not stability > 0:
        return 0.0
    if elapsed_days <= 0:
        return 1.0

    return (1.0 + elapsed_days / (DECAY_SCALE * stability)) ** -1


def elapsed_days_between(since: Optional[datetime], now: datetime) -> int:
    """
    Whole days between two timestamps, floored and never negative.

    Args:
        since: Earlier timestamp, or None when there is no anchor
        now: Current timestamp

    Returns:
        Elapsed whole days (0 if since is None or in the future)
    """
    if since is None:
        return 0

    seconds = (now - since).total_seconds()
    return max(0, math.floor(seconds / SECONDS_PER_DAY))


def clamp_difficulty(difficulty: float) -> float:
    """Clip difficulty to the valid [1, 10] range."""
    return max(D_MIN, min(D_MAX, difficulty))


def floor_stability(stability: float) -> float:
    """Apply the minimum stability floor."""
    return max(S_MIN, stability)


def is_well_formed(state: MemoryState) -> bool:
    """
    Check whether a stored state can be fed to the update rules.

    A state with non-finite or non-positive numbers or negative counters is
    treated as malformed.
    """
    numbers = (state.stability, state.difficulty)
    if not all(isinstance(x, (int, float)) and math.isfinite(x) for x in numbers):
        return False
    if state.stability <= 0 or state.difficulty <= 0:
        return False
    if state.reps < 0 or state.lapses < 0 or state.elapsed_days < 0:
        return False
    return isinstance(state.phase, Phase)
