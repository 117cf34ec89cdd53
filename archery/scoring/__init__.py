"""
Scoring

Modules:
- models: Round, End, Shot and Score types
- target: Hit coordinate to score label mapping
- rounds: Shot entry and round aggregation
"""


def __getattr__(name):
    """Lazy imports to avoid circular imports with archery.storage."""
    if name == "score_from_position":
        from archery.scoring.target import score_from_position
        return score_from_position
    if name == "score_positions":
        from archery.scoring.target import score_positions
        return score_positions
    if name == "RoundAggregator":
        from archery.scoring.rounds import RoundAggregator
        return RoundAggregator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
