"""
Round, End and Shot entities.

A round is the aggregate root: it owns its ends, and each end owns its shots.
Derived totals on Round and End are written only by the aggregator in
archery.scoring.rounds.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from archery.config import (
    DEFAULT_ARROWS_PER_END,
    DEFAULT_DISTANCE,
    DEFAULT_TOTAL_ENDS,
    POINTS_PER_ARROW,
    SCORE_ORDER,
    SCORE_POINTS,
    TARGET_CENTER,
    TERMINAL_STATUSES,
)
from archery.errors import ValidationError
from archery.utils import utc_now


class Score(str, Enum):
    """Score label of a single arrow."""

    X = "X"
    TEN = "10"
    NINE = "9"
    EIGHT = "8"
    SEVEN = "7"
    SIX = "6"
    FIVE = "5"
    FOUR = "4"
    THREE = "3"
    TWO = "2"
    ONE = "1"
    MISS = "M"

    @property
    def points(self) -> int:
        return SCORE_POINTS[self.value]

    @property
    def order(self) -> int:
        """Position in the X-to-M ordering; 0 is the best score."""
        return SCORE_ORDER.index(self.value)

    @property
    def is_x(self) -> bool:
        return self is Score.X

    @property
    def is_ten(self) -> bool:
        """True for both X and 10, the two labels counted as tens."""
        return self in (Score.X, Score.TEN)

    @classmethod
    def parse(cls, label) -> "Score":
        """
        Parse a score label.

        Accepts Score members, strings ("X", "x", "10", "m") and ints 0-10
        (0 is a miss).

        Raises:
            ValidationError: If the label is not a valid score
        """
        if isinstance(label, cls):
            return label
        if isinstance(label, bool):
            raise ValidationError(f"Invalid score label: {label!r}")
        if isinstance(label, int):
            label = "M" if label == 0 else str(label)
        text = str(label).strip().upper()
        try:
            return cls(text)
        except ValueError:
            raise ValidationError(
                f"Invalid score label: {label!r}. Allowed values: {', '.join(SCORE_ORDER)}"
            ) from None


class RoundType(str, Enum):
    PERSONAL = "personal"
    CLUB = "club"
    COMPETITION = "competition"


class RoundStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATUSES


@dataclass(frozen=True)
class HitPosition:
    """Hit location in the 0-100 target space, centre at (50, 50)."""

    x: float
    y: float

    def distance_from_center(self) -> float:
        cx, cy = TARGET_CENTER
        return math.hypot(self.x - cx, self.y - cy)


@dataclass
class User:
    id: Optional[int]
    name: str
    gender: str = "male"
    best_scores: Dict[str, int] = field(default_factory=dict)  # distance label -> self-reported best
    nickname: Optional[str] = None
    affiliation: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass
class Round:
    id: Optional[int]
    user_id: int
    date: datetime
    distance: int = DEFAULT_DISTANCE
    distance_label: Optional[str] = None
    arrows_per_end: int = DEFAULT_ARROWS_PER_END
    total_ends: int = DEFAULT_TOTAL_ENDS
    total_arrows: int = DEFAULT_ARROWS_PER_END * DEFAULT_TOTAL_ENDS
    round_type: RoundType = RoundType.PERSONAL
    competition_name: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[str] = None  # HH:MM
    weather: Optional[str] = None
    condition: Optional[str] = None
    concerns: Optional[str] = None
    memo: Optional[str] = None
    status: RoundStatus = RoundStatus.IN_PROGRESS
    total_score: int = 0
    total_x: int = 0
    total_10: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def display_distance(self) -> str:
        return self.distance_label or f"{self.distance}m"

    @property
    def max_score(self) -> int:
        return self.total_arrows * POINTS_PER_ARROW

    @property
    def is_competition(self) -> bool:
        return self.round_type == RoundType.COMPETITION


@dataclass
class End:
    id: Optional[int]
    round_id: int
    end_index: int
    end_total: int = 0
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Shot:
    id: Optional[int]
    end_id: int
    arrow_index: int
    score: Score
    position: Optional[HitPosition] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def points(self) -> int:
        return self.score.points
