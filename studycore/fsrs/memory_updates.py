"""
Memory Updates

Implements stability and difficulty updates applied once per review.

Key principles:
- A first review seeds stability from a per-grade table
- Successful recall grows stability, more so when recall was unlikely
- A lapse shrinks stability, never beyond its pre-lapse value
- Difficulty drifts with the grade and slowly reverts toward the baseline
"""

from __future__ import annotations
from datetime import datetime
import math

from studycore.fsrs.constants import (
    ReviewGrade,
    Phase,
    INITIAL_STABILITY,
    INITIAL_DIFFICULTY_BASE,
    INITIAL_DIFFICULTY_SLOPE,
    DIFFICULTY_GRADE_WEIGHT,
    DIFFICULTY_MEAN_REVERSION,
    NEUTRAL_GRADE,
    GROWTH_EXPONENT,
    GROWTH_STABILITY_DECAY,
    GROWTH_RECALL_GAIN,
    GROWTH_MULTIPLIER,
    LAPSE_SCALE,
    LAPSE_DIFFICULTY_DECAY,
    LAPSE_STABILITY_POWER,
    LAPSE_RECALL_GAIN,
    MIN_INTERVAL_DAYS,
)
from studycore.fsrs.memory_state import (
    MemoryState,
    recall_probability,
    clamp_difficulty,
    floor_stability,
)


def initial_stability(grade: ReviewGrade) -> float:
    """Stability after the very first review, looked up by grade."""
    return floor_stability(INITIAL_STABILITY[grade])


def initial_difficulty(grade: ReviewGrade) -> float:
    """
    Difficulty after the very first review.

    Formula:
        D0(G) = w4 - (G - 3) * w5

    Returns:
        Difficulty clipped to [1, 10]
    """
    offset = int(grade) - int(NEUTRAL_GRADE)
    return clamp_difficulty(INITIAL_DIFFICULTY_BASE - offset * INITIAL_DIFFICULTY_SLOPE)


def initialize_state(grade: ReviewGrade, now: datetime) -> MemoryState:
    """
    Build the memory state produced by the first review of a new item.

    Counters start at zero; process_review increments them.

    Args:
        grade: Rating of the first recall attempt
        now: Review timestamp

    Returns:
        MemoryState in LEARNING (forgot) or REVIEW (any other grade)
    """
    phase = Phase.LEARNING if grade == ReviewGrade.FORGOT else Phase.REVIEW
    return MemoryState(
        stability=initial_stability(grade),
        difficulty=initial_difficulty(grade),
        elapsed_days=0,
        scheduled_days=MIN_INTERVAL_DAYS,
        reps=0,
        lapses=0,
        phase=phase,
        last_reviewed_at=now,
    )


def next_difficulty(difficulty: float, grade: ReviewGrade) -> float:
    """
    Update difficulty after a review of an already-seen item.

    Formula:
        D' = w7 * D0(3) + (1 - w7) * (D - w6 * (G - 3))

    Where:
        - w7 pulls difficulty back toward the baseline D0(3) = w4
        - w6 sets how strongly the grade moves difficulty

    GOOD leaves the grade term at zero, so repeated GOOD reviews settle on
    the baseline.

    Args:
        difficulty: Current difficulty
        grade: User rating

    Returns:
        New difficulty clipped to [1, 10]
    """
    offset = int(grade) - int(NEUTRAL_GRADE)
    blended = (
        DIFFICULTY_MEAN_REVERSION * INITIAL_DIFFICULTY_BASE
        + (1.0 - DIFFICULTY_MEAN_REVERSION) * (difficulty - DIFFICULTY_GRADE_WEIGHT * offset)
    )
    return clamp_difficulty(blended)


def lapse_stability(difficulty: float, stability: float, retrievability: float) -> float:
    """
    Stability after a forgotten review.

    Formula:
        S' = w11 * D^-w12 * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))
        S' = max(S_MIN, min(S, S'))

    The formula alone can exceed the previous stability, so the result is
    capped at the pre-lapse value.
    """
    candidate = (
        LAPSE_SCALE
        * math.pow(difficulty, -LAPSE_DIFFICULTY_DECAY)
        * (math.pow(stability + 1.0, LAPSE_STABILITY_POWER) - 1.0)
        * math.exp(LAPSE_RECALL_GAIN * (1.0 - retrievability))
    )
    return floor_stability(min(stability, candidate))


def growth_factor(
    difficulty: float,
    stability: float,
    retrievability: float,
    grade: ReviewGrade
) -> float:
    """
    Multiplicative stability increase after a successful review.

    Formula:
        f = e^w8 * (11 - D) * S^-w9 * (e^(w10 * (1 - R)) - 1) * m(G) + 1

    Where m(G) is w15 for HARD, w16 for EASY and 1 for GOOD.

    Raises:
        KeyError: If called with FORGOT (use lapse_stability)
    """
    factor = (
        math.exp(GROWTH_EXPONENT)
        * (11.0 - difficulty)
        * math.pow(stability, -GROWTH_STABILITY_DECAY)
        * (math.exp(GROWTH_RECALL_GAIN * (1.0 - retrievability)) - 1.0)
    )
    factor *= GROWTH_MULTIPLIER[grade]
    return factor + 1.0


def next_stability(state: MemoryState, grade: ReviewGrade, elapsed_days: int) -> float:
    """
    Compute stability after a review.

    Branches:
        1. NEW item: initial stability table (current stability ignored)
        2. FORGOT on a reviewed item: lapse formula
        3. HARD/GOOD/EASY on a reviewed item: growth factor

    Args:
        state: Memory state before the review
        grade: User rating
        elapsed_days: Days since the previous review

    Returns:
        New stability, never below S_MIN
    """
    if state.phase == Phase.NEW:
        return initial_stability(grade)

    stability = floor_stability(state.stability)
    difficulty = clamp_difficulty(state.difficulty)
    retrievability = recall_probability(stability, elapsed_days)

    if grade == ReviewGrade.FORGOT:
        return lapse_stability(difficulty, stability, retrievability)

    factor = growth_factor(difficulty, stability, retrievability, grade)
    return floor_stability(stability * factor)
