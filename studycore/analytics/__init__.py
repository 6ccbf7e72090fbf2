"""
Analytics package exports.
"""

from studycore.analytics.metrics import (
    activity_series,
    category_stats,
    lessons_frame,
    mastery_stats,
    phase_distribution,
)
from studycore.analytics.service import StatsDashboard, build_stats_dashboard

__all__ = [
    "activity_series",
    "category_stats",
    "lessons_frame",
    "mastery_stats",
    "phase_distribution",
    "StatsDashboard",
    "build_stats_dashboard",
]
