"""
FSRS - Free Spaced Repetition Scheduler

Main API for the study tracker.

This module implements an adaptive review scheduler with:
- Power forgetting curve: R = (1 + t / (9 * S))^-1
- Stability and difficulty updates after every graded review
- Intervals sized to hit a desired retention
- A legacy fixed-stage scheduler and one-way migration out of it

Quick start:
    from datetime import datetime, timezone
    from studycore import fsrs

    # Process a review (algorithm only, no DB calls)
    result = fsrs.process_review(None, fsrs.ReviewGrade.GOOD, now=datetime.now(timezone.utc))
    result.state.scheduled_days  # 2
"""

# Core scheduler API (algorithm logic)
from studycore.fsrs.scheduler import (
    ReviewResult,
    ReviewOption,
    process_review,
    review_options,
)
from studycore.fsrs.scheduling import interval_from_stability, format_interval
from studycore.fsrs.memory_updates import (
    initialize_state,
    initial_stability,
    initial_difficulty,
    next_difficulty,
    next_stability,
)

# Legacy fixed-stage scheduling
from studycore.fsrs.legacy import (
    LegacyFixedSchedule,
    LegacyAdvanceResult,
    ScheduleState,
    cram_intervals,
    first_review_due,
    legacy_advance,
    legacy_review_options,
    migrate_legacy_to_adaptive,
    preset_name,
    reset_schedule,
)

# Constants and parameters
from studycore.fsrs.constants import (
    ReviewGrade,
    Phase,
    DifficultyLabel,
    WEIGHTS,
    S_MIN,
    D_MIN,
    D_MAX,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_INTERVALS,
    INITIAL_STABILITY,
    GROWTH_MULTIPLIER,
    LEGACY_DIFFICULTY,
)

# Memory state (for advanced usage)
from studycore.fsrs.memory_state import (
    MemoryState,
    new_memory_state,
    recall_probability,
    elapsed_days_between,
)


__all__ = [
    # Core algorithm
    "ReviewResult",
    "ReviewOption",
    "process_review",
    "review_options",
    "interval_from_stability",
    "format_interval",
    "initialize_state",
    "initial_stability",
    "initial_difficulty",
    "next_difficulty",
    "next_stability",

    # Legacy scheduling
    "LegacyFixedSchedule",
    "LegacyAdvanceResult",
    "ScheduleState",
    "cram_intervals",
    "first_review_due",
    "legacy_advance",
    "legacy_review_options",
    "migrate_legacy_to_adaptive",
    "preset_name",
    "reset_schedule",

    # Enums
    "ReviewGrade",
    "Phase",
    "DifficultyLabel",

    # Memory state
    "MemoryState",
    "new_memory_state",
    "recall_probability",
    "elapsed_days_between",

    # Parameters
    "WEIGHTS",
    "S_MIN",
    "D_MIN",
    "D_MAX",
    "DEFAULT_DESIRED_RETENTION",
    "DEFAULT_INTERVALS",
    "INITIAL_STABILITY",
    "GROWTH_MULTIPLIER",
    "LEGACY_DIFFICULTY",
]
