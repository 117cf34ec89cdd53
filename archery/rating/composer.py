"""
Archer Rating Composer

Combines a user's recent competition and practice form into one composite
rating: the latest RECENT_ROUNDS_FOR_RATING completed rounds of each kind are
averaged, each average goes through its rating function, and the two ratings
are summed. The composite runs from 0 to 19.5 (10.0 competition plus 9.5
practice, reached only by perfect averages in both) and maps to a rank
label SA/AA/A/BB/B/C.

A user without any completed round has no rating at all, which is different
from a low rating.
"""

import statistics
from dataclasses import dataclass, field
from typing import List, Optional

from archery.config import RECENT_ROUNDS_FOR_RATING
from archery.errors import NoDataError
from archery.rating.curves import competition_rating, practice_rating, rating_rank
from archery.scoring.models import Round, RoundStatus
from archery.storage.repository import RoundRepository
from archery.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


@dataclass
class ArcherRating:
    user_id: int
    rating: float
    rank: str
    rank_color: str
    competition_rating: float = 0.0
    practice_rating: float = 0.0
    competition_count: int = 0
    practice_count: int = 0
    competition_scores: List[int] = field(default_factory=list)
    practice_scores: List[int] = field(default_factory=list)

    def to_record(self) -> dict:
        """Plain record with ratings rounded to two decimals for display."""
        return {
            'user_id': self.user_id,
            'rating': round(self.rating, 2),
            'rank': self.rank,
            'rank_color': self.rank_color,
            'competition_rating': round(self.competition_rating, 2),
            'practice_rating': round(self.practice_rating, 2),
            'competition_count': self.competition_count,
            'practice_count': self.practice_count,
            'competition_scores': list(self.competition_scores),
            'practice_scores': list(self.practice_scores),
        }


def most_recent(rounds: List[Round], n: int = RECENT_ROUNDS_FOR_RATING) -> List[Round]:
    """Newest n rounds; rounds on the same date keep insertion (id) order."""
    by_insertion = sorted(rounds, key=lambda r: r.id)
    return sorted(by_insertion, key=lambda r: r.date, reverse=True)[:n]


def compute_archer_rating(repository: RoundRepository, user_id: int) -> Optional[ArcherRating]:
    """
    Compute a user's composite archer rating.

    Returns:
        ArcherRating, or None when the user has no completed rounds
    """
    completed = [
        r for r in repository.get_rounds_for_user(user_id)
        if r.status == RoundStatus.COMPLETED
    ]
    if not completed:
        logger.debug(f"No completed rounds for user {user_id}; no rating available")
        return None

    competition_scores = [r.total_score for r in most_recent([r for r in completed if r.is_competition])]
    practice_scores = [r.total_score for r in most_recent([r for r in completed if not r.is_competition])]

    comp = competition_rating(statistics.fmean(competition_scores)) if competition_scores else 0.0
    prac = practice_rating(statistics.fmean(practice_scores)) if practice_scores else 0.0
    total = comp + prac
    rank_info = rating_rank(total)

    return ArcherRating(
        user_id=user_id,
        rating=total,
        rank=rank_info["rank"],
        rank_color=rank_info["color"],
        competition_rating=comp,
        practice_rating=prac,
        competition_count=len(competition_scores),
        practice_count=len(practice_scores),
        competition_scores=competition_scores,
        practice_scores=practice_scores,
    )


def require_archer_rating(repository: RoundRepository, user_id: int) -> ArcherRating:
    """
    Like compute_archer_rating, but a missing rating is an error.

    Raises:
        NoDataError: If the user has no completed rounds
    """
    rating = compute_archer_rating(repository, user_id)
    if rating is None:
        raise NoDataError(f"No rating available for user {user_id}: no completed rounds")
    return rating
