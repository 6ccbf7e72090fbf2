"""
FSRS Constants and Parameters

All configurable parameters for the scheduling algorithm in one place.
Weights follow the FSRS default parameter vector (w0..w16); each named
constant below points at the entry it uses so the formulas stay auditable.
"""

from enum import Enum, IntEnum


# ---- Review Grades ----

class ReviewGrade(IntEnum):
    """User rating of a recall attempt."""
    FORGOT = 1  # Recall failed
    HARD = 2    # Recalled with high effort
    GOOD = 3    # Recalled normally
    EASY = 4    # Recalled instantly


class Phase(str, Enum):
    """Lifecycle stage of a memory state."""
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class DifficultyLabel(str, Enum):
    """Author-assigned hardness of a lesson."""
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


# ---- Default Weight Vector ----

WEIGHTS = (
    0.4, 0.6, 2.4, 5.8,       # w0-w3: initial stability per grade
    4.93, 0.94,               # w4-w5: initial difficulty base and slope
    0.86, 0.01,               # w6-w7: difficulty grade weight, mean reversion
    1.49, 0.14, 0.94,         # w8-w10: success growth
    2.18, 0.05, 0.34, 1.26,   # w11-w14: lapse stability
    0.29, 2.61,               # w15-w16: hard penalty, easy bonus
)


# ---- Global Constants ----

S_MIN = 0.1      # Minimum stability (days)
D_MIN = 1.0      # Minimum difficulty
D_MAX = 10.0     # Maximum difficulty

DEFAULT_STABILITY = 0.4   # Stability of an item that was never reviewed
DEFAULT_DIFFICULTY = 5.0  # Difficulty of an item that was never reviewed

DECAY_SCALE = 9.0                # R(t) = (1 + t / (9 * S))^-1
DEFAULT_DESIRED_RETENTION = 0.9
MIN_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 365
FORGOT_INTERVAL_DAYS = 1


# ---- Initial Stability by Grade ----

INITIAL_STABILITY = {
    ReviewGrade.FORGOT: WEIGHTS[0],
    ReviewGrade.HARD: WEIGHTS[1],
    ReviewGrade.GOOD: WEIGHTS[2],
    ReviewGrade.EASY: WEIGHTS[3],
}


# ---- Difficulty Parameters ----
# D0(G) = w4 - (G - 3) * w5
# D'(D, G) = w7 * D0(3) + (1 - w7) * (D - w6 * (G - 3))

INITIAL_DIFFICULTY_BASE = WEIGHTS[4]
INITIAL_DIFFICULTY_SLOPE = WEIGHTS[5]
DIFFICULTY_GRADE_WEIGHT = WEIGHTS[6]
DIFFICULTY_MEAN_REVERSION = WEIGHTS[7]
NEUTRAL_GRADE = ReviewGrade.GOOD


# ---- Stability Growth on Success ----

GROWTH_EXPONENT = WEIGHTS[8]         # e^w8 scale
GROWTH_STABILITY_DECAY = WEIGHTS[9]  # S^-w9
GROWTH_RECALL_GAIN = WEIGHTS[10]     # e^(w10 * (1 - R)) - 1

GROWTH_MULTIPLIER = {
    ReviewGrade.HARD: WEIGHTS[15],
    ReviewGrade.GOOD: 1.0,
    ReviewGrade.EASY: WEIGHTS[16],
}


# ---- Stability After a Lapse ----
# S'(D, S, R) = w11 * D^-w12 * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))

LAPSE_SCALE = WEIGHTS[11]
LAPSE_DIFFICULTY_DECAY = WEIGHTS[12]
LAPSE_STABILITY_POWER = WEIGHTS[13]
LAPSE_RECALL_GAIN = WEIGHTS[14]


# ---- Legacy Fixed-Stage Scheduling ----

DEFAULT_INTERVALS = (1, 1, 4, 7, 14, 30)

INTERVAL_PRESETS = {
    "Standard": (1, 1, 4, 7, 14, 30),
    "Aggressive": (1, 2, 4, 7, 14),
    "Relaxed": (1, 3, 7, 14, 30, 60),
}

# Difficulty assigned to a lesson when it leaves the fixed-stage schedule
LEGACY_DIFFICULTY = {
    DifficultyLabel.EASY: 3.0,
    DifficultyLabel.MEDIUM: 5.0,
    DifficultyLabel.HARD: 7.0,
}

# Legacy preview multipliers for the review sheet
LEGACY_HARD_FACTOR = 0.6
LEGACY_EASY_FACTOR = 1.5

CRAM_WINDOW_HOURS = 48
