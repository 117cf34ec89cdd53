"""
Target zone mapping: hit coordinates -> score labels.

Coordinates live in a normalised 0-100 space centred on (50, 50). Rings are
tested from the centre outward and the first ring whose radius contains the
hit wins; anything past the outermost ring is a miss.
"""

import math

import numpy as np

from archery.config import MISS_LABEL, TARGET_CENTER, TARGET_RINGS
from archery.scoring.models import HitPosition, Score

_RING_RADII = np.array([radius for radius, _ in TARGET_RINGS])
_RING_LABELS = np.array([label for _, label in TARGET_RINGS] + [MISS_LABEL])


def score_from_position(x: float, y: float) -> Score:
    """Map a single hit coordinate to its score."""
    cx, cy = TARGET_CENTER
    distance = math.hypot(x - cx, y - cy)

    for max_radius, label in TARGET_RINGS:
        if distance <= max_radius:
            return Score(label)

    return Score(MISS_LABEL)


def score_from_hit(position: HitPosition) -> Score:
    return score_from_position(position.x, position.y)


def score_positions(xs, ys) -> list[Score]:
    """
    Vectorised variant of score_from_position for arrays of hits.

    Args:
        xs: Sequence of x coordinates
        ys: Sequence of y coordinates (same length as xs)

    Returns:
        List of Score labels, one per hit, in input order
    """
    cx, cy = TARGET_CENTER
    distances = np.hypot(np.asarray(xs, dtype=float) - cx, np.asarray(ys, dtype=float) - cy)
    # side='left' puts a hit exactly on a ring boundary inside that ring
    ring_idx = np.searchsorted(_RING_RADII, distances, side='left')
    return [Score(label) for label in _RING_LABELS[ring_idx]]
