"""
Rating Functions

These functions convert a round's raw point total into a normalised rating.
Both are piecewise-linear over fixed breakpoints (see archery.config):

- Competition: 0..10, tuned on a 720-point 70mW round
  (600 -> 5.0, 685 -> 9.99, 720 -> 10.0)
- Practice: 0..9.5, the same shape shifted ~10 points harder
  (610 -> 5.0, 690 -> 9.0, 720 -> 9.5)

Below the first breakpoint the rating ramps linearly from 0; above the last
it is clamped to the maximum. Negative scores rate 0.
"""

import numpy as np

from archery.config import (
    ARCHER_RATING_RANKS,
    COMPETITION_RATING_BREAKPOINTS,
    PRACTICE_RATING_BREAKPOINTS,
)

_COMPETITION_X, _COMPETITION_Y = (np.array(col, dtype=float) for col in zip(*COMPETITION_RATING_BREAKPOINTS))
_PRACTICE_X, _PRACTICE_Y = (np.array(col, dtype=float) for col in zip(*PRACTICE_RATING_BREAKPOINTS))


def competition_rating(score: float) -> float:
    """Rating (0-10) for a competition score."""
    return float(np.interp(score, _COMPETITION_X, _COMPETITION_Y))


def practice_rating(score: float) -> float:
    """Rating (0-9.5) for a practice score."""
    return float(np.interp(score, _PRACTICE_X, _PRACTICE_Y))


def rating_rank(rating: float) -> dict:
    """
    Map a composite rating to its rank label.

    Returns:
        Dict with 'rank' (SA/AA/A/BB/B/C) and display 'color'
    """
    for rank_info in ARCHER_RATING_RANKS:
        if rating >= rank_info["min_rating"]:
            return {"rank": rank_info["rank"], "color": rank_info["color"]}
    lowest = ARCHER_RATING_RANKS[-1]
    return {"rank": lowest["rank"], "color": lowest["color"]}
