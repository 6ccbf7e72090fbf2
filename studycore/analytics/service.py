"""
Service layer to assemble the stats dashboard.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import pandas as pd

from studycore import lesson_repo
from studycore.analytics.metrics import (
    activity_series,
    category_stats,
    lessons_frame,
    mastery_stats,
    phase_distribution,
)
from studycore.fsrs import database
from studycore.schemas import StudySettings


@dataclass(frozen=True)
class StatsDashboard:
    """
    Precomputed metrics and series for the stats page.
    """
    mastery: dict
    categories: dict[str, dict]
    phases: pd.Series
    activity_daily: pd.Series


def build_stats_dashboard(settings: StudySettings, *, today: date) -> StatsDashboard:
    """
    Build all KPI values and series needed by the stats page.
    """
    lessons_df = lessons_frame(lesson_repo.list_lessons(), settings)

    names = sorted(set(database.load_category_names()) | set(lessons_df["category"]))
    categories = {
        name: category_stats(
            lessons_df,
            name,
            lesson_repo.get_days_until_exam(name, today=today),
        )
        for name in names
    }

    return StatsDashboard(
        mastery=mastery_stats(lessons_df),
        categories=categories,
        phases=phase_distribution(lessons_df),
        activity_daily=activity_series(database.load_activity(), end=today),
    )
