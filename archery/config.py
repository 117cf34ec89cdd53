"""
Central configuration for the Archery Scoring & Rating Engine.

All shared constants and configuration values should be defined here
to avoid duplication and ensure consistency across modules.
"""

import os
from pathlib import Path

# --- Project Paths ---
PROJECT_ROOT = Path(__file__).parent.parent
DATA_FOLDER = Path(os.environ.get("ARCHERY_DATA_DIR", PROJECT_ROOT / "data"))
SNAPSHOT_FOLDER = DATA_FOLDER / "snapshot"

# Snapshot file names (one CSV per entity table)
USERS_FILE = "users.csv"
ROUNDS_FILE = "rounds.csv"
ENDS_FILE = "ends.csv"
SHOTS_FILE = "shots.csv"

# Debounce before a dirty repository is flushed to disk
FLUSH_DEBOUNCE_SECONDS = 0.5

# --- Target Face ---
# Normalised 0-100 coordinate space, centre of the target face
TARGET_CENTER = (50.0, 50.0)

# Rings from the centre outward: (max radius, score label)
TARGET_RINGS = (
    (4.0, "X"),
    (8.0, "10"),
    (12.0, "9"),   # yellow
    (16.0, "8"),   # red
    (20.0, "7"),
    (24.0, "6"),   # blue
    (28.0, "5"),
    (32.0, "4"),   # black
    (36.0, "3"),
    (40.0, "2"),   # white
    (44.0, "1"),
)
MISS_LABEL = "M"

# Score labels, highest first. Sorting and tie-breaks follow this order.
SCORE_ORDER = ("X", "10", "9", "8", "7", "6", "5", "4", "3", "2", "1", "M")
SCORE_POINTS = {
    "X": 10, "10": 10, "9": 9, "8": 8, "7": 7, "6": 6,
    "5": 5, "4": 4, "3": 3, "2": 2, "1": 1, "M": 0,
}
POINTS_PER_ARROW = 10

# --- Round Configuration ---
DEFAULT_DISTANCE = 18
DEFAULT_ARROWS_PER_END = 6
DEFAULT_TOTAL_ENDS = 6

ROUND_TYPES = ("personal", "club", "competition")
ROUND_STATUSES = ("in_progress", "completed", "cancelled")
TERMINAL_STATUSES = frozenset({"completed", "cancelled"})
WEATHER_OPTIONS = ("sunny", "cloudy", "rainy", "snowy", "windy", "indoor")
CONDITION_OPTIONS = ("excellent", "good", "normal", "poor", "bad")
GENDERS = ("male", "female", "other")

# Standard round formats: label -> (distance, arrows per end, ends, total arrows)
ROUND_PRESETS = {
    "70mW": {"distance": 70, "arrows_per_end": 6, "total_ends": 12, "total_arrows": 72},
    "50m30m": {"distance": 50, "arrows_per_end": 6, "total_ends": 12, "total_arrows": 72},
    "30mW": {"distance": 30, "arrows_per_end": 6, "total_ends": 12, "total_arrows": 72},
    "18mW": {"distance": 18, "arrows_per_end": 6, "total_ends": 10, "total_arrows": 60},
}

# --- Archer Rating Configuration ---
# Piecewise-linear breakpoints (score, rating); (0, 0) anchors the low ramp.
# Based on a 720-point 70mW round.
COMPETITION_RATING_BREAKPOINTS = (
    (0, 0.0),
    (300, 0.5),
    (400, 2.0),
    (500, 3.5),
    (600, 5.0),
    (685, 9.99),
    (720, 10.0),
)

# Practice scores are rated slightly more conservatively and top out at 9.5
PRACTICE_RATING_BREAKPOINTS = (
    (0, 0.0),
    (310, 0.5),
    (410, 2.0),
    (510, 3.5),
    (610, 5.0),
    (690, 9.0),
    (720, 9.5),
)

RECENT_ROUNDS_FOR_RATING = 5  # Most recent rounds per category that feed the rating

# Composite rating -> rank label, highest threshold first
ARCHER_RATING_RANKS = (
    {"rank": "SA", "min_rating": 16, "color": "#FFD700"},
    {"rank": "AA", "min_rating": 13, "color": "#C0C0C0"},
    {"rank": "A", "min_rating": 10, "color": "#CD7F32"},
    {"rank": "BB", "min_rating": 7, "color": "#4169E1"},
    {"rank": "B", "min_rating": 5, "color": "#32CD32"},
    {"rank": "C", "min_rating": 0, "color": "#808080"},
)

# --- Masters Ranking Configuration ---
MASTERS_WINDOW_DAYS = 90
MASTERS_BASE_POINTS = 1000  # Points for a perfect round before the type multiplier

ROUND_TYPE_MULTIPLIERS = {
    "competition": 1.5,
    "club": 1.2,
    "personal": 1.0,
}

# Added to a score (per round) when ranking; unknown genders get 0
GENDER_HANDICAP = {
    "male": 0,
    "female": 30,
    "other": 0,
}

# 18 tiers, descending minimum points. Scanned top-down; the first match wins.
MASTERS_RANKS = (
    {"rank": 1, "name": "Masters", "min_points": 15000, "color": "#FF4500"},
    {"rank": 2, "name": "Diamond I", "min_points": 13000, "color": "#B9F2FF"},
    {"rank": 3, "name": "Diamond II", "min_points": 11500, "color": "#B9F2FF"},
    {"rank": 4, "name": "Diamond III", "min_points": 10000, "color": "#B9F2FF"},
    {"rank": 5, "name": "Diamond IV", "min_points": 8500, "color": "#B9F2FF"},
    {"rank": 6, "name": "Platinum I", "min_points": 7500, "color": "#E5E4E2"},
    {"rank": 7, "name": "Platinum II", "min_points": 6500, "color": "#E5E4E2"},
    {"rank": 8, "name": "Platinum III", "min_points": 5500, "color": "#E5E4E2"},
    {"rank": 9, "name": "Platinum IV", "min_points": 4500, "color": "#E5E4E2"},
    {"rank": 10, "name": "Gold I", "min_points": 4000, "color": "#FFD700"},
    {"rank": 11, "name": "Gold II", "min_points": 3500, "color": "#FFD700"},
    {"rank": 12, "name": "Gold III", "min_points": 3000, "color": "#FFD700"},
    {"rank": 13, "name": "Gold IV", "min_points": 2500, "color": "#FFD700"},
    {"rank": 14, "name": "Silver", "min_points": 2000, "color": "#C0C0C0"},
    {"rank": 15, "name": "Bronze I", "min_points": 1500, "color": "#CD7F32"},
    {"rank": 16, "name": "Bronze II", "min_points": 1000, "color": "#CD7F32"},
    {"rank": 17, "name": "Bronze III", "min_points": 500, "color": "#CD7F32"},
    {"rank": 18, "name": "Bronze IV", "min_points": 0, "color": "#CD7F32"},
)
RECENT_SCORES_SHOWN = 5  # Recent scores listed per Masters entry

# --- Leaderboard Defaults ---
MASTERS_DEFAULT_LIMIT = 30
DAILY_DEFAULT_LIMIT = 10
BEST_SCORE_DEFAULT_LIMIT = 50
PRACTICE_DEFAULT_LIMIT = 50

# Best-score type filters -> round types they admit
BEST_SCORE_TYPE_FILTERS = {
    "practice": frozenset({"personal", "club"}),
    "competition": frozenset({"competition"}),
    "personal": frozenset({"personal"}),
    "club": frozenset({"club"}),
    "all": frozenset(ROUND_TYPES),
}

PRACTICE_PERIODS = frozenset({"week", "month"})
