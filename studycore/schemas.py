"""
Pydantic models for lessons and study settings.

These models define the records handed between the lesson store and its
callers. Scheduling state is carried as a tagged variant: a lesson is on
either the legacy fixed-stage schedule or the adaptive memory model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from studycore.fsrs.constants import (
    DifficultyLabel,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_INTERVALS,
)
from studycore.fsrs.legacy import LegacyFixedSchedule, ScheduleState
from studycore.fsrs.memory_state import MemoryState


# ---- Settings ----

class StudySettings(BaseModel):
    """User-level scheduling settings."""
    intervals: list[int] = Field(
        default_factory=lambda: list(DEFAULT_INTERVALS),
        min_length=1,
        description="Legacy interval table in days"
    )
    cram_mode: bool = Field(False, description="Halve legacy intervals and surface the next 48h")
    use_fsrs: bool = Field(True, description="Schedule reviews with the adaptive memory model")
    desired_retention: float = Field(
        DEFAULT_DESIRED_RETENTION,
        ge=0.7,
        le=0.97,
        description="Target recall probability used to size adaptive intervals"
    )

    @field_validator("intervals")
    @classmethod
    def _positive_intervals(cls, value: list[int]) -> list[int]:
        if any(days < 1 for days in value):
            raise ValueError("intervals must be positive day counts")
        return value


# ---- Lessons ----

class Lesson(BaseModel):
    """A study item with its scheduling state."""
    id: str
    title: str
    category: str
    subject: str
    difficulty: DifficultyLabel = DifficultyLabel.MEDIUM
    date_added: datetime
    next_review_date: datetime
    custom_intervals: Optional[list[int]] = None
    review_history: list[datetime] = Field(default_factory=list)
    schedule: ScheduleState

    @property
    def is_adaptive(self) -> bool:
        return isinstance(self.schedule, MemoryState)

    @property
    def completed(self) -> bool:
        """Only the legacy schedule has an end; adaptive lessons never complete."""
        return isinstance(self.schedule, LegacyFixedSchedule) and self.schedule.completed

    def intervals(self, settings: StudySettings) -> list[int]:
        """Interval table for this lesson: its own, else the global one."""
        return list(self.custom_intervals or settings.intervals)
