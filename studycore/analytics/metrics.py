"""
Metric computations for the stats page.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

import pandas as pd

from studycore.fsrs.constants import Phase
from studycore.fsrs.legacy import LegacyFixedSchedule
from studycore.schemas import Lesson, StudySettings


# Lessons whose exam is this many pending lessons per day away get a warning
EXAM_PRESSURE_THRESHOLD = 3

LESSON_COLUMNS = ["id", "category", "difficulty", "mode", "phase", "completed", "mastered"]


def _is_mastered(lesson: Lesson, settings: StudySettings) -> bool:
    """
    Legacy lessons are mastered once completed; adaptive lessons once their
    scheduled interval reaches the last interval of their table.
    """
    schedule = lesson.schedule
    if isinstance(schedule, LegacyFixedSchedule):
        return schedule.completed
    if schedule.phase == Phase.NEW:
        return False
    return schedule.scheduled_days >= max(lesson.intervals(settings))


def lessons_frame(lessons: list[Lesson], settings: StudySettings) -> pd.DataFrame:
    """
    One row per lesson with the fields the stats page groups by.
    """
    if not lessons:
        return pd.DataFrame(columns=LESSON_COLUMNS)

    rows = []
    for lesson in lessons:
        schedule = lesson.schedule
        adaptive = not isinstance(schedule, LegacyFixedSchedule)
        rows.append({
            "id": lesson.id,
            "category": lesson.category,
            "difficulty": lesson.difficulty.value,
            "mode": "adaptive" if adaptive else "legacy",
            "phase": schedule.phase.value if adaptive else None,
            "completed": lesson.completed,
            "mastered": _is_mastered(lesson, settings),
        })
    return pd.DataFrame(rows, columns=LESSON_COLUMNS)


def mastery_stats(lessons_df: pd.DataFrame) -> dict:
    """
    Completed vs in-progress counts and the mastery percentage.
    """
    total = len(lessons_df)
    if total == 0:
        return {"completed": 0, "in_progress": 0, "total": 0, "mastery_percentage": 0}

    completed = int(lessons_df["mastered"].sum())
    return {
        "completed": completed,
        "in_progress": total - completed,
        "total": total,
        "mastery_percentage": int(round(completed / total * 100)),
    }


def category_stats(
    lessons_df: pd.DataFrame,
    category: str,
    days_until_exam: Optional[int]
) -> dict:
    """
    Totals for one category, with a warning when the exam is close
    relative to the pending workload.
    """
    scoped = lessons_df[lessons_df["category"] == category]
    total = len(scoped)
    completed = int(scoped["mastered"].sum()) if total else 0
    pending = total - completed

    show_warning = (
        days_until_exam is not None
        and days_until_exam > 0
        and pending > 0
        and pending / days_until_exam > EXAM_PRESSURE_THRESHOLD
    )

    return {
        "total": total,
        "completed": completed,
        "pending": pending,
        "days_until_exam": days_until_exam,
        "show_warning": show_warning,
    }


def phase_distribution(lessons_df: pd.DataFrame) -> pd.Series:
    """
    Count of adaptive lessons per phase, in lifecycle order.
    """
    order = [phase.value for phase in Phase]
    adaptive = lessons_df[lessons_df["mode"] == "adaptive"]
    if adaptive.empty:
        return pd.Series(0, index=order, dtype="int64")
    return adaptive["phase"].value_counts().reindex(order, fill_value=0).astype("int64")


def activity_series(activity: list[dict], end: Optional[date] = None) -> pd.Series:
    """
    Dense daily review counts from the first recorded day to `end`.

    Args:
        activity: Records with 'date' and 'count' keys
        end: Last day of the series (default: last recorded day)
    """
    if not activity:
        return pd.Series(dtype="int64")

    df = pd.DataFrame(activity)
    df["date"] = pd.to_datetime(df["date"])
    counts = df.groupby("date")["count"].sum()

    last = pd.Timestamp(end) if end is not None else counts.index.max()
    day_index = pd.date_range(start=counts.index.min(), end=last, freq="D")
    return counts.reindex(day_index, fill_value=0).astype("int64")
