"""
Scheduling - Interval Derivation and Display

Turns a stability value into a review interval for a target retention,
and formats intervals for the review sheet.
"""

from __future__ import annotations
import math

from studycore.fsrs.constants import (
    DECAY_SCALE,
    DEFAULT_DESIRED_RETENTION,
    MIN_INTERVAL_DAYS,
    MAX_INTERVAL_DAYS,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return math.floor(value + 0.5)


def clamp_interval(days: int) -> int:
    """Clip an interval to [1, 365] days."""
    return max(MIN_INTERVAL_DAYS, min(MAX_INTERVAL_DAYS, days))


def interval_from_stability(
    stability: float,
    desired_retention: float = DEFAULT_DESIRED_RETENTION
) -> int:
    """
    Calculate the next interval from stability and desired retention.

    Formula:
        I = round(9 * S * (1 / r - 1))

    Solving R(I) = r on the forgetting curve gives this interval, so a
    higher target retention means shorter intervals.

    Args:
        stability: Stability in days
        desired_retention: Target recall probability in (0, 1)

    Returns:
        Interval in whole days, clipped to [1, 365]
    """
    if not stability > 0:
        return MIN_INTERVAL_DAYS

    interval = DECAY_SCALE * stability * (1.0 / desired_retention - 1.0)
    if not math.isfinite(interval):
        return MAX_INTERVAL_DAYS if interval > 0 else MIN_INTERVAL_DAYS
    return clamp_interval(round_half_up(interval))


def format_interval(days: float) -> str:
    """
    Format an interval for display.

    Intervals are expected in whole days. Fractional days below a week are
    truncated (6.9 -> "6d"); longer spans are rounded half-up.

    Examples:
        0.5 -> "<1d", 3 -> "3d", 14 -> "2w", 60 -> "2mo", 400 -> "1y"
    """
    if days < 1:
        return "<1d"
    if days < 7:
        return f"{int(days)}d"
    if days < 30:
        return f"{round_half_up(days / 7)}w"
    if days < 365:
        return f"{round_half_up(days / 30)}mo"
    return f"{round_half_up(days / 365)}y"
