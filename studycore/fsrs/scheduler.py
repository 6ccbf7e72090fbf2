"""
Scheduler - FSRS Algorithm Logic

Pure FSRS scheduling and state updates (no database calls).

Main workflow:
1. Resolve the stored memory state (caller's responsibility to load it)
2. Compute elapsed days since the last review
3. Apply stability and difficulty update rules
4. Derive the next interval from the desired retention
5. Return the new state + next due date

This module handles ONLY the algorithm logic.
Database I/O is handled by the database module.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from studycore.fsrs import memory_state, memory_updates
from studycore.fsrs.constants import (
    ReviewGrade,
    Phase,
    DEFAULT_DESIRED_RETENTION,
    FORGOT_INTERVAL_DAYS,
)
from studycore.fsrs.scheduling import interval_from_stability, format_interval


@dataclass(frozen=True)
class ReviewResult:
    """Outcome of one processed review."""
    state: memory_state.MemoryState
    next_due: datetime


@dataclass(frozen=True)
class ReviewOption:
    """Predicted outcome of a grade, shown before the user picks one."""
    interval: int
    label: str


def resolve_state(state: Optional[memory_state.MemoryState]) -> memory_state.MemoryState:
    """
    Return a usable prior state.

    Missing state means the item was never reviewed. A malformed state is
    replaced by new-item defaults rather than raising.
    """
    if state is None:
        return memory_state.new_memory_state()
    if not memory_state.is_well_formed(state):
        logger.warning("Discarding malformed memory state {!r}; treating item as new", state)
        return memory_state.new_memory_state()
    return state


def _review_anchor(
    state: memory_state.MemoryState,
    last_reviewed_at: Optional[datetime]
) -> Optional[datetime]:
    if last_reviewed_at is not None:
        return last_reviewed_at
    return state.last_reviewed_at


def _interval_for(grade: ReviewGrade, stability: float, desired_retention: float) -> int:
    if grade == ReviewGrade.FORGOT:
        return FORGOT_INTERVAL_DAYS
    return interval_from_stability(stability, desired_retention)


def process_review(
    state: Optional[memory_state.MemoryState],
    grade: ReviewGrade,
    *,
    now: datetime,
    desired_retention: float = DEFAULT_DESIRED_RETENTION,
    last_reviewed_at: Optional[datetime] = None
) -> ReviewResult:
    """
    Process a review and return the updated memory state + next due date.

    This is the core FSRS algorithm. No database calls, no clock reads.
    Caller is responsible for:
    1. Loading the state (None for an item never reviewed)
    2. Supplying the item creation time as last_reviewed_at when the item
       has no review yet
    3. Saving the returned state

    Args:
        state: Memory state before the review, or None for a new item
        grade: User rating (FORGOT, HARD, GOOD, EASY)
        now: Review timestamp
        desired_retention: Target recall probability used to size intervals
        last_reviewed_at: Anchor for elapsed time; defaults to the state's
            own last review

    Returns:
        ReviewResult with the new state and the next due date
    """
    current = resolve_state(state)
    elapsed_days = memory_state.elapsed_days_between(
        _review_anchor(current, last_reviewed_at),
        now
    )

    new_stability = memory_updates.next_stability(current, grade, elapsed_days)

    if current.phase == Phase.NEW:
        new_difficulty = memory_updates.initial_difficulty(grade)
    else:
        new_difficulty = memory_updates.next_difficulty(current.difficulty, grade)

    if grade == ReviewGrade.FORGOT:
        new_phase = Phase.LEARNING if current.phase == Phase.NEW else Phase.RELEARNING
    else:
        new_phase = Phase.REVIEW

    interval = _interval_for(grade, new_stability, desired_retention)
    forgot = grade == ReviewGrade.FORGOT

    new_state = memory_state.MemoryState(
        stability=new_stability,
        difficulty=new_difficulty,
        elapsed_days=elapsed_days,
        scheduled_days=interval,
        reps=current.reps + (0 if forgot else 1),
        lapses=current.lapses + (1 if forgot else 0),
        phase=new_phase,
        last_reviewed_at=now,
    )

    logger.debug(
        "Review {}: S {:.2f} -> {:.2f}, D {:.2f} -> {:.2f}, {} -> {}, next in {}d",
        grade.name,
        current.stability,
        new_stability,
        current.difficulty,
        new_difficulty,
        current.phase.value,
        new_phase.value,
        interval,
    )

    return ReviewResult(state=new_state, next_due=now + timedelta(days=interval))


def review_options(
    state: Optional[memory_state.MemoryState],
    *,
    now: datetime,
    desired_retention: float = DEFAULT_DESIRED_RETENTION,
    last_reviewed_at: Optional[datetime] = None
) -> dict[ReviewGrade, ReviewOption]:
    """
    Predict the interval each grade would produce, without changing state.

    Returns:
        Mapping of grade to its interval and display label
    """
    current = resolve_state(state)
    elapsed_days = memory_state.elapsed_days_between(
        _review_anchor(current, last_reviewed_at),
        now
    )

    options = {}
    for grade in ReviewGrade:
        stability = memory_updates.next_stability(current, grade, elapsed_days)
        interval = _interval_for(grade, stability, desired_retention)
        options[grade] = ReviewOption(interval=interval, label=format_interval(interval))
    return options
