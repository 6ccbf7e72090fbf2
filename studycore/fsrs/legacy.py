"""
Legacy Fixed-Stage Scheduling

The scheduler used before adaptive (FSRS) scheduling was available: each
lesson walks through a fixed table of intervals, one stage per review.

Legacy mode has no notion of a recall grade. Any review advances one
stage; forgetting is not modelled at all. This is a deliberate asymmetry
with the adaptive scheduler and is kept as-is.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence, Union
import math

from studycore.fsrs.constants import (
    ReviewGrade,
    Phase,
    DifficultyLabel,
    DEFAULT_DIFFICULTY,
    INTERVAL_PRESETS,
    LEGACY_DIFFICULTY,
    LEGACY_HARD_FACTOR,
    LEGACY_EASY_FACTOR,
    FORGOT_INTERVAL_DAYS,
    MIN_INTERVAL_DAYS,
)
from studycore.fsrs.memory_state import MemoryState, new_memory_state, floor_stability
from studycore.fsrs.scheduler import ReviewOption
from studycore.fsrs.scheduling import format_interval


@dataclass(frozen=True)
class LegacyFixedSchedule:
    """Progress through a fixed interval table."""
    current_stage: int = 0
    completed: bool = False


# A lesson is scheduled by exactly one of these
ScheduleState = Union[LegacyFixedSchedule, MemoryState]


@dataclass(frozen=True)
class LegacyAdvanceResult:
    """Outcome of a legacy review. next_due is None once completed."""
    schedule: LegacyFixedSchedule
    next_due: Optional[datetime]


def cram_intervals(intervals: Sequence[int]) -> list[int]:
    """Halve every interval, rounding up."""
    return [math.ceil(days * 0.5) for days in intervals]


def effective_intervals(intervals: Sequence[int], cram_mode: bool) -> list[int]:
    """Interval table in use, with cram mode applied when active."""
    return cram_intervals(intervals) if cram_mode else list(intervals)


def first_review_due(start: datetime, intervals: Sequence[int], cram_mode: bool) -> datetime:
    """Due date of the first review of a lesson starting at `start`."""
    table = effective_intervals(intervals, cram_mode)
    first = table[0] if table else MIN_INTERVAL_DAYS
    return start + timedelta(days=first)


def legacy_advance(
    schedule: LegacyFixedSchedule,
    intervals: Sequence[int],
    cram_mode: bool,
    *,
    now: datetime
) -> LegacyAdvanceResult:
    """
    Advance a lesson by one stage after a review.

    When the next stage would fall past the end of the table the lesson is
    marked completed and the stage stays where it is.

    Args:
        schedule: Current legacy progress
        intervals: Interval table in days
        cram_mode: Halve every interval (ceiling) before use
        now: Review timestamp

    Returns:
        LegacyAdvanceResult with the new schedule and next due date
    """
    if schedule.completed:
        return LegacyAdvanceResult(schedule=schedule, next_due=None)

    table = effective_intervals(intervals, cram_mode)
    next_stage = schedule.current_stage + 1

    if next_stage >= len(table):
        return LegacyAdvanceResult(schedule=replace(schedule, completed=True), next_due=None)

    return LegacyAdvanceResult(
        schedule=replace(schedule, current_stage=next_stage),
        next_due=now + timedelta(days=table[next_stage]),
    )


def legacy_review_options(
    schedule: LegacyFixedSchedule,
    intervals: Sequence[int]
) -> dict[ReviewGrade, ReviewOption]:
    """
    Intervals shown on the review sheet in legacy mode.

    Only the GOOD option matches what legacy_advance will actually do; the
    other grades are indicative.
    """
    if intervals:
        upcoming = intervals[min(schedule.current_stage + 1, len(intervals) - 1)]
    else:
        upcoming = MIN_INTERVAL_DAYS
    upcoming = max(MIN_INTERVAL_DAYS, upcoming)

    days = {
        ReviewGrade.FORGOT: FORGOT_INTERVAL_DAYS,
        ReviewGrade.HARD: max(MIN_INTERVAL_DAYS, math.floor(upcoming * LEGACY_HARD_FACTOR)),
        ReviewGrade.GOOD: upcoming,
        ReviewGrade.EASY: math.ceil(upcoming * LEGACY_EASY_FACTOR),
    }
    return {
        grade: ReviewOption(interval=interval, label=format_interval(interval))
        for grade, interval in days.items()
    }


def migrate_legacy_to_adaptive(
    schedule: LegacyFixedSchedule,
    intervals: Sequence[int],
    difficulty_label: DifficultyLabel,
    review_history: Sequence[datetime] = (),
    fallback_reviewed_at: Optional[datetime] = None
) -> MemoryState:
    """
    Build an equivalent adaptive state for a lesson on the legacy schedule.

    The legacy schedule itself is left untouched. Lapses cannot be recovered
    from legacy progress and start at zero.

    Args:
        schedule: Legacy progress to convert
        intervals: Interval table the lesson was following
        difficulty_label: Author-assigned difficulty of the lesson
        review_history: Timestamps of past reviews, oldest first
        fallback_reviewed_at: Last-review time to use when the history is
            empty but the lesson has progressed (typically its creation time)

    Returns:
        MemoryState seeded from the current stage
    """
    if intervals:
        stage_interval = intervals[min(schedule.current_stage, len(intervals) - 1)]
    else:
        stage_interval = MIN_INTERVAL_DAYS

    reps = max(len(review_history), schedule.current_stage)
    if reps == 0:
        # Never reviewed: stays NEW, which requires no review timestamp
        phase, last_reviewed_at = Phase.NEW, None
    else:
        phase = Phase.REVIEW
        last_reviewed_at = review_history[-1] if review_history else fallback_reviewed_at

    return MemoryState(
        stability=floor_stability(stage_interval or MIN_INTERVAL_DAYS),
        difficulty=LEGACY_DIFFICULTY.get(DifficultyLabel(difficulty_label), DEFAULT_DIFFICULTY),
        elapsed_days=0,
        scheduled_days=max(MIN_INTERVAL_DAYS, stage_interval),
        reps=reps,
        lapses=0,
        phase=phase,
        last_reviewed_at=last_reviewed_at,
    )


def reset_schedule(adaptive: bool) -> ScheduleState:
    """Fresh schedule for a lesson whose progress is reset."""
    return new_memory_state() if adaptive else LegacyFixedSchedule()


def preset_name(intervals: Optional[Sequence[int]]) -> str:
    """Name of the preset matching an interval table, or "Custom"."""
    if intervals is None:
        return "Custom"
    for name, preset in INTERVAL_PRESETS.items():
        if tuple(intervals) == preset:
            return name
    return "Custom"
