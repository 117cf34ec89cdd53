"""
Leaderboards for archery rounds

Four read-only projections over the completed-round history:
- Masters: 90-day points total with type multipliers and a per-round
  gender handicap, mapped to 18 tiers (Masters ... Bronze IV)
- Daily: single-day leaderboard of rounds with a flat gender handicap
- Best-Score: each archer's best round for a type/distance filter,
  ties broken on X count
- Practice-Volume: arrows shot this week (Monday start) or this month

Every ranking is computed from a pandas frame of completed rounds, sorted
with explicit total tie-breaks, and returned as a RankingResult of plain
records. The requesting user's own entry is located in the full sorted
list, so it is available even when outside the top-N slice.

Usage:
    from archery.rating.rankings import masters_ranking
    result = masters_ranking(repository, limit=30, user_id=7)
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

import pandas as pd

from archery.config import (
    BEST_SCORE_DEFAULT_LIMIT,
    BEST_SCORE_TYPE_FILTERS,
    DAILY_DEFAULT_LIMIT,
    GENDER_HANDICAP,
    MASTERS_BASE_POINTS,
    MASTERS_DEFAULT_LIMIT,
    MASTERS_RANKS,
    MASTERS_WINDOW_DAYS,
    POINTS_PER_ARROW,
    PRACTICE_DEFAULT_LIMIT,
    PRACTICE_PERIODS,
    RECENT_SCORES_SHOWN,
    ROUND_TYPE_MULTIPLIERS,
)
from archery.storage.repository import RoundRepository
from archery.utils import (
    ensure_utc,
    round_half_up,
    setup_logging,
    start_of_period,
    start_of_utc_day,
    utc_now,
    validate_choice,
    validate_limit,
)

# --- Module Logger ---
logger = setup_logging(__name__)

ROUND_COLUMNS = [
    'round_id', 'user_id', 'date', 'round_type', 'distance_label',
    'total_score', 'total_x', 'total_10', 'total_arrows',
]
USER_COLUMNS = [
    'user_id', 'user_name', 'gender', 'nickname', 'affiliation', 'avatar_url', 'best_scores',
]


@dataclass
class RankingResult:
    entries: List[dict] = field(default_factory=list)
    user_entry: Optional[dict] = None
    meta: dict = field(default_factory=dict)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.entries)


# --- Frame Builders ---
def completed_rounds_frame(repository: RoundRepository) -> pd.DataFrame:
    """
    One row per completed round whose owner exists.

    Returns:
        DataFrame with ROUND_COLUMNS plus the owner's USER_COLUMNS
    """
    rows = [
        {
            'round_id': r.id,
            'user_id': r.user_id,
            'date': ensure_utc(r.date),
            'round_type': r.round_type.value,
            'distance_label': r.display_distance,
            'total_score': r.total_score,
            'total_x': r.total_x,
            'total_10': r.total_10,
            'total_arrows': r.total_arrows,
        }
        for r in repository.get_all_completed_rounds()
    ]
    rounds_df = pd.DataFrame(rows, columns=ROUND_COLUMNS)
    users_df = pd.DataFrame(
        [
            {
                'user_id': u.id,
                'user_name': u.name,
                'gender': u.gender or 'male',
                'nickname': u.nickname,
                'affiliation': u.affiliation,
                'avatar_url': u.avatar_url,
                'best_scores': u.best_scores or None,
            }
            for u in repository.get_all_users()
        ],
        columns=USER_COLUMNS,
    )

    if rounds_df.empty or users_df.empty:
        return pd.DataFrame(columns=ROUND_COLUMNS + USER_COLUMNS[1:])

    # Inner join drops rounds whose owner no longer exists
    df = rounds_df.merge(users_df, on='user_id', how='inner')
    dropped = len(rounds_df) - len(df)
    if dropped:
        logger.debug(f"Skipped {dropped} completed rounds without a user record")
    if not df.empty:
        df['date'] = pd.to_datetime(df['date'], utc=True)
    return df


def _user_info(df: pd.DataFrame) -> pd.DataFrame:
    return df.drop_duplicates('user_id')[USER_COLUMNS]


def _gender_handicap(genders: pd.Series) -> pd.Series:
    return genders.map(GENDER_HANDICAP).fillna(0).astype(int)


def _finalize(df: pd.DataFrame, columns: List[str], limit: int, user_id: Optional[int]) -> RankingResult:
    """Assign 1-based ranks to a sorted frame, slice top-N, locate the user."""
    df = df.reset_index(drop=True)
    df.insert(0, 'rank', df.index + 1)
    df = df[['rank'] + columns].copy()
    if 'date' in df.columns:
        df['date'] = df['date'].dt.strftime('%Y-%m-%d')

    records = df.to_dict('records')
    user_entry = None
    if user_id is not None:
        user_entry = next((r for r in records if r['user_id'] == user_id), None)
    return RankingResult(entries=records[:limit], user_entry=user_entry)


# --- Masters ---
def masters_points(score: int, max_score: int, round_type: str) -> int:
    """
    Points for one round: round(score / max_score x 1000) x type multiplier.

    Competition rounds count 1.5x, club rounds 1.2x, personal rounds 1.0x.
    """
    if max_score <= 0:
        return 0
    base_points = round_half_up(score / max_score * MASTERS_BASE_POINTS)
    multiplier = ROUND_TYPE_MULTIPLIERS.get(round_type, 1.0)
    return round_half_up(base_points * multiplier)


def masters_tier(points: float) -> int:
    """Tier number (1 = Masters ... 18 = Bronze IV) for a points total."""
    for tier in MASTERS_RANKS:
        if points >= tier["min_points"]:
            return tier["rank"]
    return MASTERS_RANKS[-1]["rank"]


def masters_rank_info(rank_number: int) -> dict:
    """Tier metadata for a tier number; unknown numbers resolve to Bronze IV."""
    return dict(next((t for t in MASTERS_RANKS if t["rank"] == rank_number), MASTERS_RANKS[-1]))


def masters_ranking(
    repository: RoundRepository,
    limit: int = MASTERS_DEFAULT_LIMIT,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RankingResult:
    """
    Masters ranking over the trailing MASTERS_WINDOW_DAYS.

    The gender handicap is added once per contributing round. Ordering uses
    the handicap-adjusted total; the tier comes from the raw points total.
    """
    validate_limit(limit)
    now = ensure_utc(now) if now is not None else utc_now()
    cutoff = now - timedelta(days=MASTERS_WINDOW_DAYS)

    df = completed_rounds_frame(repository)
    if not df.empty:
        df = df[df['date'] >= cutoff]
    df = df[df['total_arrows'] > 0] if not df.empty else df
    if df.empty:
        logger.info("Masters ranking: no rounds in window")
        return RankingResult(meta={'window_start': cutoff.date().isoformat(), 'ranks': list(MASTERS_RANKS)})

    df = df.copy()
    df['points'] = [
        masters_points(score, arrows * POINTS_PER_ARROW, kind)
        for score, arrows, kind in zip(df['total_score'], df['total_arrows'], df['round_type'])
    ]

    recent: dict[int, list] = {}
    for row in df.sort_values(['date', 'round_id'], ascending=[False, True]).itertuples(index=False):
        scores = recent.setdefault(row.user_id, [])
        if len(scores) < RECENT_SCORES_SHOWN:
            scores.append({
                'score': int(row.total_score),
                'type': 'competition' if row.round_type == 'competition' else 'practice',
                'date': row.date.strftime('%Y-%m-%d'),
            })

    totals = (
        df.groupby('user_id')
        .agg(masters_rating=('points', 'sum'), round_count=('round_id', 'count'))
        .reset_index()
        .merge(_user_info(df), on='user_id', how='left')
    )
    totals['recent_scores'] = totals['user_id'].map(recent)

    totals['handicap'] = _gender_handicap(totals['gender']) * totals['round_count']
    totals['adjusted_rating'] = totals['masters_rating'] + totals['handicap']
    totals['masters_rank'] = totals['masters_rating'].apply(masters_tier)
    totals['masters_rank_name'] = totals['masters_rank'].apply(lambda n: masters_rank_info(n)['name'])
    totals = totals.sort_values(['adjusted_rating', 'user_id'], ascending=[False, True])

    result = _finalize(
        totals,
        [
            'user_id', 'user_name', 'nickname', 'affiliation', 'avatar_url', 'gender',
            'best_scores', 'masters_rank', 'masters_rank_name', 'masters_rating',
            'handicap', 'adjusted_rating', 'round_count', 'recent_scores',
        ],
        limit,
        user_id,
    )
    result.meta = {'window_start': cutoff.date().isoformat(), 'ranks': list(MASTERS_RANKS)}
    logger.info(f"Masters ranking: {len(totals)} archers from {len(df)} rounds since {cutoff.date()}")
    return result


# --- Daily ---
def daily_ranking(
    repository: RoundRepository,
    date: Optional[date | datetime] = None,
    limit: int = DAILY_DEFAULT_LIMIT,
    user_id: Optional[int] = None,
) -> RankingResult:
    """
    Leaderboard of completed rounds shot on one UTC calendar day.

    Each round is its own entry; the gender handicap is added once, flat, to
    the round score. Ties fall back to the earlier round.
    """
    validate_limit(limit)
    day_start = start_of_utc_day(date if date is not None else utc_now())
    day_end = day_start + timedelta(days=1)
    meta = {'date': day_start.date().isoformat()}

    df = completed_rounds_frame(repository)
    if not df.empty:
        df = df[(df['date'] >= day_start) & (df['date'] < day_end)]
    if df.empty:
        logger.info(f"Daily ranking {meta['date']}: no rounds")
        return RankingResult(meta=meta)

    df = df.copy()
    df['handicap'] = _gender_handicap(df['gender'])
    df['adjusted_score'] = df['total_score'] + df['handicap']
    df = df.sort_values(['adjusted_score', 'date', 'round_id'], ascending=[False, True, True])

    result = _finalize(
        df.rename(columns={'total_score': 'score'}),
        [
            'user_id', 'user_name', 'nickname', 'affiliation', 'avatar_url', 'gender',
            'best_scores', 'round_id', 'score', 'handicap', 'adjusted_score',
            'distance_label', 'round_type', 'date',
        ],
        limit,
        user_id,
    )
    result.meta = meta
    logger.info(f"Daily ranking {meta['date']}: {len(df)} rounds")
    return result


# --- Best Score ---
def best_score_ranking(
    repository: RoundRepository,
    round_type: str = "practice",
    distance_label: Optional[str] = None,
    limit: int = BEST_SCORE_DEFAULT_LIMIT,
    user_id: Optional[int] = None,
) -> RankingResult:
    """
    Each archer's single best completed round, ranked by score then X count.

    Args:
        round_type: 'practice' (personal + club), 'competition', 'all',
            or a single round type
        distance_label: Only rounds with this display distance (e.g. '70mW')
    """
    validate_choice(round_type, BEST_SCORE_TYPE_FILTERS, "round type filter")
    validate_limit(limit)
    meta = {'type': round_type, 'distance': distance_label}

    df = completed_rounds_frame(repository)
    if not df.empty:
        df = df[df['round_type'].isin(BEST_SCORE_TYPE_FILTERS[round_type])]
        if distance_label:
            df = df[df['distance_label'] == distance_label]
    if df.empty:
        logger.info(f"Best-score ranking ({round_type}, {distance_label or 'any distance'}): no rounds")
        return RankingResult(meta=meta)

    # A user's best round: highest score, then most Xs, then the earliest
    best = (
        df.sort_values(
            ['total_score', 'total_x', 'date', 'round_id'],
            ascending=[False, False, True, True],
        )
        .drop_duplicates('user_id', keep='first')
        .sort_values(['total_score', 'total_x', 'user_id'], ascending=[False, False, True])
    )

    result = _finalize(
        best.rename(columns={'total_score': 'best_score'}),
        [
            'user_id', 'user_name', 'nickname', 'affiliation', 'avatar_url',
            'round_id', 'best_score', 'total_x', 'total_10', 'distance_label', 'round_type', 'date',
        ],
        limit,
        user_id,
    )
    result.meta = meta
    logger.info(f"Best-score ranking ({round_type}, {distance_label or 'any distance'}): {len(best)} archers")
    return result


# --- Practice Volume ---
def practice_volume_ranking(
    repository: RoundRepository,
    period: str = "month",
    limit: int = PRACTICE_DEFAULT_LIMIT,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RankingResult:
    """
    Arrows shot per archer since the start of the current week or month.

    Weeks start Monday 00:00 UTC. Sessions are completed rounds of any type.
    """
    validate_choice(period, PRACTICE_PERIODS, "period")
    validate_limit(limit)
    now = ensure_utc(now) if now is not None else utc_now()
    period_start = start_of_period(now, period)
    meta = {'period': period, 'start_date': period_start.date().isoformat()}

    df = completed_rounds_frame(repository)
    if not df.empty:
        df = df[(df['date'] >= period_start) & (df['date'] <= now)]
    if df.empty:
        logger.info(f"Practice ranking ({period}): no rounds since {meta['start_date']}")
        return RankingResult(meta=meta)

    volume = (
        df.groupby('user_id')
        .agg(total_arrows=('total_arrows', 'sum'), session_count=('round_id', 'count'))
        .reset_index()
        .merge(_user_info(df), on='user_id', how='left')
        .sort_values(['total_arrows', 'user_id'], ascending=[False, True])
    )

    result = _finalize(
        volume,
        ['user_id', 'user_name', 'nickname', 'affiliation', 'avatar_url', 'total_arrows', 'session_count'],
        limit,
        user_id,
    )
    result.meta = meta
    logger.info(f"Practice ranking ({period}): {len(volume)} archers since {meta['start_date']}")
    return result
