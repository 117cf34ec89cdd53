"""
Ratings and Rankings

Modules:
- curves: Score to rating functions (competition, practice)
- composer: Composite archer rating from recent rounds
- rankings: Masters, daily, best-score and practice-volume leaderboards
"""


def __getattr__(name):
    """Lazy imports so importing the package does not pull in pandas."""
    if name == "compute_archer_rating":
        from archery.rating.composer import compute_archer_rating
        return compute_archer_rating
    if name == "masters_ranking":
        from archery.rating.rankings import masters_ranking
        return masters_ranking
    if name == "daily_ranking":
        from archery.rating.rankings import daily_ranking
        return daily_ranking
    if name == "best_score_ranking":
        from archery.rating.rankings import best_score_ranking
        return best_score_ranking
    if name == "practice_volume_ranking":
        from archery.rating.rankings import practice_volume_ranking
        return practice_volume_ranking
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
