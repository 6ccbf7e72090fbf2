"""
Database - Lesson Store I/O Operations

Handles all database operations for lessons, review events, activity
history and categories. Uses SQLAlchemy ORM; SQLite by default, any
SQLAlchemy URL via DATABASE_URL.

This module handles ONLY database I/O.
Algorithm logic is handled by the scheduler module.
"""

from __future__ import annotations
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from loguru import logger
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session

from studycore import config
from studycore.fsrs.constants import Phase, DifficultyLabel
from studycore.fsrs.legacy import LegacyFixedSchedule, ScheduleState
from studycore.fsrs.memory_state import MemoryState, new_memory_state
from studycore.fsrs.models import (
    Base,
    Lesson as LessonModel,
    ReviewEvent as ReviewEventModel,
    ActivityDay as ActivityDayModel,
    Category as CategoryModel,
    SCHEDULE_LEGACY,
    SCHEDULE_ADAPTIVE,
)
from studycore.schemas import Lesson


ACTIVITY_RETENTION_DAYS = 365

_engines: dict[str, Engine] = {}


def get_engine() -> Engine:
    """
    Get SQLAlchemy engine for the configured database.

    Engines are cached per URL. Server databases get a connection pool;
    SQLite files get their parent directory created.

    Returns:
        SQLAlchemy Engine instance
    """
    db_url = config.get_database_url()
    engine = _engines.get(db_url)
    if engine is not None:
        return engine

    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(db_url, echo=False)
    else:
        engine = create_engine(
            db_url,
            pool_size=5,           # Keep 5 connections open
            max_overflow=10,       # Allow up to 10 extra connections
            pool_pre_ping=True,    # Verify connections before use
            echo=False
        )

    _engines[db_url] = engine
    return engine


def get_session() -> Session:
    """
    Get a SQLAlchemy session for database operations.

    Returns:
        SQLAlchemy Session instance
    """
    SessionLocal = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return SessionLocal()


def dispose_engines():
    """Close every cached engine (used between test databases)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()


def init_db():
    """
    Initialize database schema if tables don't exist.

    Safe to call multiple times - only creates tables that are missing.
    """
    engine = get_engine()
    existing_tables = set(inspect(engine).get_table_names())
    missing = set(Base.metadata.tables) - existing_tables
    if missing:
        Base.metadata.create_all(engine)
        logger.info("Created tables: {}", ", ".join(sorted(missing)))


def reset_db():
    """
    DANGEROUS: Delete all data and recreate tables.

    Only use this for testing or when you want to start fresh.
    All lessons and review history will be lost!
    """
    engine = get_engine()
    Base.metadata.drop_all(engine)
    logger.warning("All tables dropped")

    # Recreate tables
    init_db()


# ---- Row mapping ----

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize aware timestamps to UTC before writing."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


def _schedule_from_row(row: LessonModel) -> ScheduleState:
    if row.schedule_mode == SCHEDULE_ADAPTIVE:
        if row.phase not in {phase.value for phase in Phase}:
            logger.warning(
                "Lesson {} has unknown phase {!r}; loading it as a new item",
                row.id,
                row.phase,
            )
            return new_memory_state()
        return MemoryState(
            stability=row.stability,
            difficulty=row.memory_difficulty,
            elapsed_days=row.elapsed_days or 0,
            scheduled_days=row.scheduled_days or 1,
            reps=row.reps or 0,
            lapses=row.lapses or 0,
            phase=Phase(row.phase),
            last_reviewed_at=_as_utc(row.last_reviewed_at),
        )
    return LegacyFixedSchedule(
        current_stage=row.current_stage or 0,
        completed=bool(row.completed),
    )


def _write_schedule(row: LessonModel, schedule: ScheduleState):
    """Write one schedule variant and clear the other's columns."""
    if isinstance(schedule, MemoryState):
        row.schedule_mode = SCHEDULE_ADAPTIVE
        row.current_stage = None
        row.completed = None
        row.stability = schedule.stability
        row.memory_difficulty = schedule.difficulty
        row.elapsed_days = schedule.elapsed_days
        row.scheduled_days = schedule.scheduled_days
        row.reps = schedule.reps
        row.lapses = schedule.lapses
        row.phase = schedule.phase.value
        row.last_reviewed_at = _to_storage(schedule.last_reviewed_at)
    else:
        row.schedule_mode = SCHEDULE_LEGACY
        row.current_stage = schedule.current_stage
        row.completed = schedule.completed
        row.stability = None
        row.memory_difficulty = None
        row.elapsed_days = None
        row.scheduled_days = None
        row.reps = None
        row.lapses = None
        row.phase = None
        row.last_reviewed_at = None


def _history_for(session: Session, lesson_id: str) -> list[datetime]:
    events = session.query(ReviewEventModel.timestamp).filter(
        ReviewEventModel.lesson_id == lesson_id
    ).order_by(ReviewEventModel.timestamp.asc(), ReviewEventModel.id.asc()).all()
    return [_as_utc(ts) for (ts,) in events]


def _lesson_from_row(session: Session, row: LessonModel) -> Lesson:
    return Lesson(
        id=row.id,
        title=row.title,
        category=row.category,
        subject=row.subject,
        difficulty=DifficultyLabel(row.difficulty_label),
        date_added=_as_utc(row.date_added),
        next_review_date=_as_utc(row.next_review_date),
        custom_intervals=row.custom_intervals,
        review_history=_history_for(session, row.id),
        schedule=_schedule_from_row(row),
    )


# ---- Lessons ----

def load_lesson(lesson_id: str) -> Optional[Lesson]:
    """
    Load a lesson from database.

    Returns:
        Lesson if found, None otherwise
    """
    session = get_session()
    try:
        row = session.get(LessonModel, lesson_id)
        if row is None:
            return None
        return _lesson_from_row(session, row)
    finally:
        session.close()


def load_lessons(category: Optional[str] = None) -> list[Lesson]:
    """
    Load all lessons, oldest first.

    Args:
        category: Only return lessons in this category
    """
    session = get_session()
    try:
        query = session.query(LessonModel)
        if category is not None:
            query = query.filter(LessonModel.category == category)
        rows = query.order_by(LessonModel.date_added.asc(), LessonModel.id.asc()).all()
        return [_lesson_from_row(session, row) for row in rows]
    finally:
        session.close()


def save_lesson(lesson: Lesson):
    """
    Save a lesson to database (insert or update).

    Review history is not written here; it is derived from review events.
    """
    session = get_session()
    try:
        _write_lesson(session, lesson)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def save_review(lesson: Lesson, event: dict, day: date):
    """
    Save a reviewed lesson, its review event and the day's activity tick
    in a single transaction.

    Either all three are written or none is, so the review history derived
    from events always matches the saved schedule.
    """
    session = get_session()
    try:
        _write_lesson(session, lesson)
        _add_review_event(session, event)
        _tick_activity(session, day)
        session.commit()
    except Exception:
        session.rollback()
        logger.error("Review of lesson {} not saved; rolled back", lesson.id)
        raise
    finally:
        session.close()


def _ensure_category(session: Session, name: str):
    if session.get(CategoryModel, name) is None:
        session.add(CategoryModel(name=name))
        session.flush()


def _write_lesson(session: Session, lesson: Lesson):
    row = session.get(LessonModel, lesson.id)
    if row is None:
        row = LessonModel(id=lesson.id)
        session.add(row)

    row.title = lesson.title
    row.category = lesson.category
    row.subject = lesson.subject
    row.difficulty_label = lesson.difficulty.value
    row.date_added = _to_storage(lesson.date_added)
    row.next_review_date = _to_storage(lesson.next_review_date)
    row.custom_intervals = lesson.custom_intervals
    _write_schedule(row, lesson.schedule)

    _ensure_category(session, lesson.category)


def batch_save_lessons(lessons: list[Lesson]):
    """
    Save multiple lessons' schedules in a single transaction.

    Only the schedule and next review date are written; lessons must exist.
    """
    if not lessons:
        return

    session = get_session()
    try:
        for lesson in lessons:
            row = session.get(LessonModel, lesson.id)
            if row is None:
                continue
            row.next_review_date = _to_storage(lesson.next_review_date)
            _write_schedule(row, lesson.schedule)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def delete_lesson_rows(lesson_id: str) -> bool:
    """
    Delete a lesson and its review events.

    Returns:
        True if a lesson was deleted
    """
    session = get_session()
    try:
        session.query(ReviewEventModel).filter(
            ReviewEventModel.lesson_id == lesson_id
        ).delete(synchronize_session=False)
        deleted = session.query(LessonModel).filter(
            LessonModel.id == lesson_id
        ).delete(synchronize_session=False)
        session.commit()
        return deleted > 0
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def save_reset_lesson(lesson: Lesson):
    """
    Save a lesson whose progress was reset and forget its review history,
    in a single transaction.
    """
    session = get_session()
    try:
        _write_lesson(session, lesson)
        session.query(ReviewEventModel).filter(
            ReviewEventModel.lesson_id == lesson.id
        ).delete(synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---- Review events ----

def _add_review_event(session: Session, event: dict):
    """
    Add one review event to the session.

    Args:
        event: Dict with keys lesson_id, timestamp, schedule_mode and
            optionally grade, stability_before, difficulty_before,
            retrievability_before, stability_after, difficulty_after,
            scheduled_days, stage_after
    """
    grade = event.get('grade')
    session.add(ReviewEventModel(
        lesson_id=event['lesson_id'],
        timestamp=_to_storage(event["timestamp"]),
        grade=int(grade) if grade is not None else None,
        schedule_mode=event['schedule_mode'],
        stability_before=event.get('stability_before'),
        difficulty_before=event.get('difficulty_before'),
        retrievability_before=event.get('retrievability_before'),
        stability_after=event.get('stability_after'),
        difficulty_after=event.get('difficulty_after'),
        scheduled_days=event.get('scheduled_days'),
        stage_after=event.get('stage_after'),
    ))


def get_review_events(lesson_id: Optional[str] = None, limit: Optional[int] = None) -> list[dict]:
    """
    Get review events, newest first.

    Args:
        lesson_id: Only events of this lesson
        limit: Maximum number of events
    """
    session = get_session()
    try:
        query = session.query(ReviewEventModel)
        if lesson_id is not None:
            query = query.filter(ReviewEventModel.lesson_id == lesson_id)
        query = query.order_by(ReviewEventModel.timestamp.desc(), ReviewEventModel.id.desc())
        if limit is not None:
            query = query.limit(limit)

        return [
            {
                "id": event.id,
                "lesson_id": event.lesson_id,
                "timestamp": _as_utc(event.timestamp),
                "grade": event.grade,
                "schedule_mode": event.schedule_mode,
                "stability_before": event.stability_before,
                "difficulty_before": event.difficulty_before,
                "retrievability_before": event.retrievability_before,
                "stability_after": event.stability_after,
                "difficulty_after": event.difficulty_after,
                "scheduled_days": event.scheduled_days,
                "stage_after": event.stage_after,
            }
            for event in query.all()
        ]
    finally:
        session.close()


# ---- Activity history ----

def record_activity(day: date):
    """
    Count one review on `day` and drop days older than a year.
    """
    session = get_session()
    try:
        _tick_activity(session, day)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _tick_activity(session: Session, day: date):
    record = session.get(ActivityDayModel, day)
    if record is None:
        session.add(ActivityDayModel(day=day, count=1))
    else:
        record.count += 1

    cutoff = day - timedelta(days=ACTIVITY_RETENTION_DAYS)
    session.query(ActivityDayModel).filter(
        ActivityDayModel.day < cutoff
    ).delete(synchronize_session=False)


def load_activity() -> list[dict]:
    """All activity days, oldest first, as {'date', 'count'} dicts."""
    session = get_session()
    try:
        rows = session.query(ActivityDayModel).order_by(ActivityDayModel.day.asc()).all()
        return [{"date": row.day, "count": row.count} for row in rows]
    finally:
        session.close()


# ---- Categories ----

def save_category_exam_date(name: str, exam_date: Optional[date]):
    """Set or clear the exam date of a category, creating it if needed."""
    session = get_session()
    try:
        category = session.get(CategoryModel, name)
        if category is None:
            session.add(CategoryModel(name=name, exam_date=exam_date))
        else:
            category.exam_date = exam_date
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def load_category_exam_date(name: str) -> Optional[date]:
    session = get_session()
    try:
        category = session.get(CategoryModel, name)
        return category.exam_date if category else None
    finally:
        session.close()


def rename_category_rows(old_name: str, new_name: str) -> int:
    """
    Move every lesson of a category to a new name and rename its row.

    When the target row already exists the two are merged; the target's
    exam date wins unless it has none.

    Returns:
        Number of lessons moved
    """
    session = get_session()
    try:
        moved = session.query(LessonModel).filter(
            LessonModel.category == old_name
        ).update({LessonModel.category: new_name}, synchronize_session=False)

        old = session.get(CategoryModel, old_name)
        target = session.get(CategoryModel, new_name)
        if target is None:
            session.add(CategoryModel(name=new_name, exam_date=old.exam_date if old else None))
        elif target.exam_date is None and old is not None:
            target.exam_date = old.exam_date
        if old is not None:
            session.delete(old)

        session.commit()
        return moved
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def delete_category_rows(name: str, move_to: Optional[str] = None) -> int:
    """
    Delete a category row and deal with its lessons.

    Args:
        name: Category to delete
        move_to: Category receiving the lessons; None deletes the lessons
            and their review events instead

    Returns:
        Number of lessons moved or deleted
    """
    session = get_session()
    try:
        lessons = session.query(LessonModel).filter(LessonModel.category == name)
        if move_to is None:
            lesson_ids = [lesson_id for (lesson_id,) in lessons.with_entities(LessonModel.id).all()]
            if lesson_ids:
                session.query(ReviewEventModel).filter(
                    ReviewEventModel.lesson_id.in_(lesson_ids)
                ).delete(synchronize_session=False)
            affected = lessons.delete(synchronize_session=False)
        else:
            affected = lessons.update({LessonModel.category: move_to}, synchronize_session=False)

        category = session.get(CategoryModel, name)
        if category is not None and name != move_to:
            session.delete(category)
        if move_to is not None:
            session.flush()
            _ensure_category(session, move_to)

        session.commit()
        return affected
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def load_category_names() -> list[str]:
    session = get_session()
    try:
        return [name for (name,) in session.query(CategoryModel.name).order_by(CategoryModel.name).all()]
    finally:
        session.close()
