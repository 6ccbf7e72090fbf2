"""
SQLAlchemy ORM Models for the Study Tracker Database

Defines Lesson, ReviewEvent, ActivityDay and Category models.
A lesson row stores its schedule as a tagged variant: `schedule_mode`
selects which group of columns is meaningful.
"""

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()

SCHEDULE_LEGACY = "legacy"
SCHEDULE_ADAPTIVE = "adaptive"


class Lesson(Base):
    """
    Persistent record for a single lesson and its scheduling state.
    """
    __tablename__ = 'lessons'

    id = Column(String(36), primary_key=True, nullable=False)

    # Lesson metadata
    title = Column(String(255), nullable=False)
    category = Column(String(255), nullable=False, index=True)
    subject = Column(String(255), nullable=False)
    difficulty_label = Column(String(16), nullable=False)
    date_added = Column(DateTime(timezone=True), nullable=False)
    next_review_date = Column(DateTime(timezone=True), nullable=False)
    custom_intervals = Column(JSON, nullable=True)

    # Which schedule columns below are in use
    schedule_mode = Column(String(16), nullable=False)

    # Legacy fixed-stage schedule
    current_stage = Column(Integer, nullable=True)
    completed = Column(Boolean, nullable=True)

    # Adaptive memory state
    stability = Column(Float, nullable=True)
    memory_difficulty = Column(Float, nullable=True)
    elapsed_days = Column(Integer, nullable=True)
    scheduled_days = Column(Integer, nullable=True)
    reps = Column(Integer, nullable=True)
    lapses = Column(Integer, nullable=True)
    phase = Column(String(16), nullable=True)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Lesson({self.id}, {self.title!r}, {self.schedule_mode})>"


class ReviewEvent(Base):
    """
    Log entry for a single review of a lesson.

    Captures the memory state before/after adaptive reviews and the stage
    reached by legacy reviews.
    """
    __tablename__ = 'review_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lesson_id = Column(String(36), nullable=False, index=True)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    grade = Column(Integer, nullable=True)  # 1=FORGOT, 2=HARD, 3=GOOD, 4=EASY
    schedule_mode = Column(String(16), nullable=False)

    # State before review (adaptive only)
    stability_before = Column(Float, nullable=True)
    difficulty_before = Column(Float, nullable=True)
    retrievability_before = Column(Float, nullable=True)

    # State after review
    stability_after = Column(Float, nullable=True)
    difficulty_after = Column(Float, nullable=True)
    scheduled_days = Column(Integer, nullable=True)
    stage_after = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<ReviewEvent(id={self.id}, {self.lesson_id}, grade={self.grade})>"


class ActivityDay(Base):
    """Number of reviews done on one calendar day."""
    __tablename__ = 'activity_history'

    day = Column(Date, primary_key=True)
    count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ActivityDay({self.day}, {self.count})>"


class Category(Base):
    """A lesson category with an optional exam date."""
    __tablename__ = 'categories'

    name = Column(String(255), primary_key=True)
    exam_date = Column(Date, nullable=True)

    def __repr__(self):
        return f"<Category({self.name!r}, exam={self.exam_date})>"
