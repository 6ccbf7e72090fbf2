"""
Lesson repository - main API for managing lessons and their reviews.

Ties the pure scheduling core to the database: load a lesson, run the
appropriate scheduler, save the new state and log the review.

Every function that depends on the current time takes `now` explicitly.
Naive timestamps are taken to be UTC, matching how the store reads them back.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

from loguru import logger

from studycore.fsrs import database
from studycore.fsrs.constants import (
    ReviewGrade,
    DifficultyLabel,
    CRAM_WINDOW_HOURS,
)
from studycore.fsrs.legacy import (
    LegacyFixedSchedule,
    first_review_due,
    legacy_advance,
    legacy_review_options,
    migrate_legacy_to_adaptive,
    reset_schedule,
)
from studycore.fsrs.memory_state import MemoryState, recall_probability, elapsed_days_between
from studycore.fsrs.models import SCHEDULE_ADAPTIVE, SCHEDULE_LEGACY
from studycore.fsrs.scheduler import ReviewOption, process_review, review_options
from studycore.schemas import Lesson, StudySettings


# Cram mode works through hard lessons first
CRAM_ORDER = {
    DifficultyLabel.HARD: 0,
    DifficultyLabel.MEDIUM: 1,
    DifficultyLabel.EASY: 2,
}

# Lessons of a deleted category move here unless deleted with it
UNCATEGORIZED = "Uncategorized"

# Fields a caller may change with update_lesson
EDITABLE_FIELDS = {"title", "category", "subject", "difficulty", "custom_intervals", "next_review_date"}


class LessonNotFoundError(LookupError):
    """Raised when a lesson id does not exist in the store."""

    def __init__(self, lesson_id: str):
        super().__init__(f"Lesson not found: {lesson_id}")
        self.lesson_id = lesson_id


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive timestamp as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _local_date(value: datetime, now: datetime) -> date:
    """Calendar date of `value` in the timezone of `now`."""
    if value.tzinfo is not None and now.tzinfo is not None:
        value = value.astimezone(now.tzinfo)
    return value.date()


# ---- Lesson CRUD ----

def add_lesson(
    title: str,
    category: str,
    subject: str,
    settings: StudySettings,
    *,
    now: datetime,
    difficulty: DifficultyLabel = DifficultyLabel.MEDIUM,
    start_date: Optional[datetime] = None,
    custom_intervals: Optional[Sequence[int]] = None
) -> Lesson:
    """
    Create a lesson and schedule its first review.

    The first review falls one interval (cram-adjusted) after start_date.
    New lessons get an adaptive state when adaptive scheduling is on,
    otherwise a legacy schedule at stage 0.
    """
    now = _utc(now)
    start_date = _utc(start_date)
    intervals = list(custom_intervals or settings.intervals)
    lesson = Lesson(
        id=str(uuid.uuid4()),
        title=title,
        category=category,
        subject=subject,
        difficulty=difficulty,
        date_added=now,
        next_review_date=first_review_due(start_date or now, intervals, settings.cram_mode),
        custom_intervals=list(custom_intervals) if custom_intervals else None,
        schedule=reset_schedule(settings.use_fsrs),
    )
    database.save_lesson(lesson)
    logger.info("Added lesson {} ({!r} in {})", lesson.id, title, category)
    return lesson


def get_lesson(lesson_id: str) -> Lesson:
    """
    Load a lesson.

    Raises:
        LessonNotFoundError: If no lesson has this id
    """
    lesson = database.load_lesson(lesson_id)
    if lesson is None:
        raise LessonNotFoundError(lesson_id)
    return lesson


def list_lessons(category: Optional[str] = None) -> list[Lesson]:
    """All lessons, optionally limited to one category."""
    return database.load_lessons(category)


def update_lesson(lesson_id: str, **changes) -> Lesson:
    """
    Edit a lesson's details.

    Scheduling state and review history cannot be edited here; use
    review_lesson or reset_lesson_progress.

    Args:
        lesson_id: Lesson to edit
        **changes: Any of title, category, subject, difficulty,
            custom_intervals (None restores the global table) and
            next_review_date

    Raises:
        LessonNotFoundError: If no lesson has this id
        ValueError: If a field is not editable or a value is invalid
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot edit lesson fields: {', '.join(sorted(unknown))}")

    if "difficulty" in changes:
        changes["difficulty"] = DifficultyLabel(changes["difficulty"])
    if "next_review_date" in changes:
        changes["next_review_date"] = _utc(changes["next_review_date"])
    if changes.get("custom_intervals") is not None:
        intervals = [int(days) for days in changes["custom_intervals"]]
        if not intervals or any(days < 1 for days in intervals):
            raise ValueError("custom_intervals must be a non-empty list of positive day counts")
        changes["custom_intervals"] = intervals
    elif "custom_intervals" in changes:
        changes["custom_intervals"] = None

    for field in ("title", "category", "subject"):
        if field in changes and not str(changes[field]).strip():
            raise ValueError(f"{field} must not be empty")

    lesson = get_lesson(lesson_id)
    updated = lesson.model_copy(update=changes)
    database.save_lesson(updated)
    logger.info("Updated lesson {}: {}", lesson_id, ", ".join(sorted(changes)))
    return updated


def delete_lesson(lesson_id: str):
    """
    Delete a lesson and its review history.

    Raises:
        LessonNotFoundError: If no lesson has this id
    """
    if not database.delete_lesson_rows(lesson_id):
        raise LessonNotFoundError(lesson_id)
    logger.info("Deleted lesson {}", lesson_id)


def duplicate_lesson(lesson_id: str, settings: StudySettings, *, now: datetime) -> Lesson:
    """
    Copy a lesson with fresh progress.

    The copy keeps title (suffixed), category, subject, difficulty and
    custom intervals; scheduling starts over.
    """
    original = get_lesson(lesson_id)
    return add_lesson(
        f"{original.title} (Copy)",
        original.category,
        original.subject,
        settings,
        now=now,
        difficulty=original.difficulty,
        custom_intervals=original.custom_intervals,
    )


# ---- Reviews ----

def review_lesson(
    lesson_id: str,
    grade: ReviewGrade,
    settings: StudySettings,
    *,
    now: datetime
) -> Lesson:
    """
    Log a review and update the lesson's schedule.

    This is the main entry point for reviewing.

    Workflow:
    1. Load the lesson
    2. Pick the scheduler: adaptive when enabled (migrating a legacy
       lesson first), legacy otherwise; lessons already on the adaptive
       model stay there
    3. Save the new schedule, the review event and today's activity tick
       in one transaction

    In legacy mode the grade is recorded but does not affect scheduling.

    Raises:
        LessonNotFoundError: If no lesson has this id
    """
    now = _utc(now)
    lesson = get_lesson(lesson_id)
    schedule = lesson.schedule

    if settings.use_fsrs and isinstance(schedule, LegacyFixedSchedule):
        schedule = migrate_legacy_to_adaptive(
            schedule,
            lesson.intervals(settings),
            lesson.difficulty,
            review_history=lesson.review_history,
            fallback_reviewed_at=lesson.date_added,
        )
        logger.info("Migrated lesson {} to adaptive scheduling on review", lesson.id)

    if isinstance(schedule, MemoryState):
        updated, event = _review_adaptive(lesson, schedule, grade, settings, now)
    else:
        updated, event = _review_legacy(lesson, schedule, grade, settings, now)

    database.save_review(updated, event, now.date())

    return updated.model_copy(update={"review_history": [*lesson.review_history, now]})


def _review_adaptive(
    lesson: Lesson,
    state: MemoryState,
    grade: ReviewGrade,
    settings: StudySettings,
    now: datetime
) -> tuple[Lesson, dict]:
    anchor = state.last_reviewed_at or lesson.date_added
    result = process_review(
        state,
        grade,
        now=now,
        desired_retention=settings.desired_retention,
        last_reviewed_at=anchor,
    )

    reviewed_before = not state.is_new
    event = {
        'lesson_id': lesson.id,
        'timestamp': now,
        'grade': grade,
        'schedule_mode': SCHEDULE_ADAPTIVE,
        'stability_before': state.stability if reviewed_before else None,
        'difficulty_before': state.difficulty if reviewed_before else None,
        'retrievability_before': (
            recall_probability(state.stability, elapsed_days_between(anchor, now))
            if reviewed_before else None
        ),
        'stability_after': result.state.stability,
        'difficulty_after': result.state.difficulty,
        'scheduled_days': result.state.scheduled_days,
    }
    updated = lesson.model_copy(update={
        "schedule": result.state,
        "next_review_date": result.next_due,
    })
    return updated, event


def _review_legacy(
    lesson: Lesson,
    schedule: LegacyFixedSchedule,
    grade: ReviewGrade,
    settings: StudySettings,
    now: datetime
) -> tuple[Lesson, dict]:
    result = legacy_advance(schedule, lesson.intervals(settings), settings.cram_mode, now=now)

    changes = {"schedule": result.schedule}
    if result.next_due is not None:
        changes["next_review_date"] = result.next_due
    else:
        logger.info("Lesson {} completed its interval table", lesson.id)

    event = {
        'lesson_id': lesson.id,
        'timestamp': now,
        'grade': grade,
        'schedule_mode': SCHEDULE_LEGACY,
        'stage_after': result.schedule.current_stage,
    }
    return lesson.model_copy(update=changes), event


def review_preview(lesson: Lesson, settings: StudySettings, *, now: datetime) -> dict[ReviewGrade, ReviewOption]:
    """Intervals each grade would give this lesson, for the review sheet."""
    schedule = lesson.schedule
    if settings.use_fsrs or isinstance(schedule, MemoryState):
        state = schedule if isinstance(schedule, MemoryState) else None
        anchor = state.last_reviewed_at if state and state.last_reviewed_at else lesson.date_added
        return review_options(
            state,
            now=_utc(now),
            desired_retention=settings.desired_retention,
            last_reviewed_at=_utc(anchor),
        )
    return legacy_review_options(schedule, lesson.intervals(settings))


def get_review_history(lesson_id: str, limit: Optional[int] = None) -> list[dict]:
    """Logged reviews of a lesson, newest first."""
    return database.get_review_events(lesson_id=lesson_id, limit=limit)


# ---- Progress management ----

def reset_lesson_progress(lesson_id: str, settings: StudySettings, *, now: datetime) -> Lesson:
    """
    Start a lesson over: fresh schedule, cleared history, first review one
    interval from now.

    Raises:
        LessonNotFoundError: If no lesson has this id
    """
    now = _utc(now)
    lesson = get_lesson(lesson_id)
    reset = lesson.model_copy(update={
        "schedule": reset_schedule(settings.use_fsrs),
        "review_history": [],
        "next_review_date": first_review_due(now, lesson.intervals(settings), settings.cram_mode),
    })
    database.save_reset_lesson(reset)
    logger.info("Reset progress of lesson {}", lesson_id)
    return reset


def migrate_all_to_fsrs(settings: StudySettings) -> int:
    """
    Move every lesson still on the legacy schedule to the adaptive model.

    Lessons already adaptive are left alone. Next review dates are kept.

    Returns:
        Number of lessons migrated
    """
    migrated = []
    for lesson in database.load_lessons():
        if not isinstance(lesson.schedule, LegacyFixedSchedule):
            continue
        state = migrate_legacy_to_adaptive(
            lesson.schedule,
            lesson.intervals(settings),
            lesson.difficulty,
            review_history=lesson.review_history,
            fallback_reviewed_at=lesson.date_added,
        )
        migrated.append(lesson.model_copy(update={"schedule": state}))

    database.batch_save_lessons(migrated)
    logger.info("Migrated {} lessons to adaptive scheduling", len(migrated))
    return len(migrated)


# ---- Due lists ----

def _open_lessons() -> list[Lesson]:
    return [lesson for lesson in database.load_lessons() if not lesson.completed]


def get_due_today_lessons(*, now: datetime) -> list[Lesson]:
    """Open lessons whose review falls on today's date."""
    now = _utc(now)
    today = now.date()
    return [
        lesson for lesson in _open_lessons()
        if _local_date(lesson.next_review_date, now) == today
    ]


def get_missed_lessons(*, now: datetime) -> list[Lesson]:
    """Open lessons whose review date is before today."""
    now = _utc(now)
    today = now.date()
    return [
        lesson for lesson in _open_lessons()
        if _local_date(lesson.next_review_date, now) < today
    ]


def get_cram_mode_lessons(settings: StudySettings, *, now: datetime) -> list[Lesson]:
    """
    Lessons due within the next 48 hours, hardest first.

    Empty when cram mode is off.
    """
    if not settings.cram_mode:
        return []

    horizon = _utc(now) + timedelta(hours=CRAM_WINDOW_HOURS)
    due = [lesson for lesson in _open_lessons() if lesson.next_review_date <= horizon]
    return sorted(due, key=lambda lesson: CRAM_ORDER[lesson.difficulty])


# ---- Categories ----

def set_category_exam_date(category: str, exam_date: Optional[date]):
    """Set (or clear with None) the exam date of a category."""
    database.save_category_exam_date(category, exam_date)


def rename_category(old_name: str, new_name: str) -> int:
    """
    Rename a category on all its lessons and carry its exam date over.

    Renaming onto an existing category merges the two; the target keeps its
    own exam date if it has one.

    Returns:
        Number of lessons moved

    Raises:
        ValueError: If the new name is empty
    """
    new_name = new_name.strip()
    if not new_name:
        raise ValueError("Category name must not be empty")
    if new_name == old_name:
        return 0

    moved = database.rename_category_rows(old_name, new_name)
    logger.info("Renamed category {!r} to {!r} ({} lessons)", old_name, new_name, moved)
    return moved


def delete_category(name: str, delete_lessons: bool = False) -> int:
    """
    Delete a category.

    Its lessons move to "Uncategorized", or are deleted together with their
    review history when delete_lessons is set.

    Returns:
        Number of lessons moved or deleted
    """
    affected = database.delete_category_rows(
        name,
        move_to=None if delete_lessons else UNCATEGORIZED,
    )
    action = "deleted" if delete_lessons else f"moved to {UNCATEGORIZED!r}"
    logger.info("Deleted category {!r} ({} lessons {})", name, affected, action)
    return affected


def get_days_until_exam(category: str, *, today: date) -> Optional[int]:
    """Days from today to the category's exam, or None without an exam date."""
    exam_date = database.load_category_exam_date(category)
    if exam_date is None:
        return None
    return (exam_date - today).days

