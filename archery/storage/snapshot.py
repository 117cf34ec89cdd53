"""
CSV snapshots of an InMemoryRepository.

One CSV per entity table (users, rounds, ends, shots) is written atomically
into a snapshot folder. Loading rebuilds a repository with the same ids, so
id counters continue where they left off.

SnapshotScheduler decouples persistence from the aggregator: mutations only
mark rounds dirty, and the scheduler flushes once the debounce interval has
passed since the last change (or immediately on flush()).

Usage:
    from archery.storage.snapshot import save_snapshot, load_snapshot
    save_snapshot(repository)
    repository = load_snapshot()
"""

import json
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from archery.config import (
    ENDS_FILE,
    FLUSH_DEBOUNCE_SECONDS,
    ROUNDS_FILE,
    SHOTS_FILE,
    SNAPSHOT_FOLDER,
    USERS_FILE,
)
from archery.scoring.models import End, HitPosition, Round, RoundStatus, RoundType, Score, Shot, User
from archery.storage.repository import InMemoryRepository
from archery.utils import atomic_write_csv, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

USER_FIELDS = ['id', 'name', 'gender', 'best_scores', 'nickname', 'affiliation', 'avatar_url']
ROUND_FIELDS = [
    'id', 'user_id', 'date', 'distance', 'distance_label', 'arrows_per_end', 'total_ends',
    'total_arrows', 'round_type', 'competition_name', 'location', 'start_time', 'weather',
    'condition', 'concerns', 'memo', 'status', 'total_score', 'total_x', 'total_10',
    'created_at', 'updated_at',
]
END_FIELDS = ['id', 'round_id', 'end_index', 'end_total', 'created_at']
SHOT_FIELDS = ['id', 'end_id', 'arrow_index', 'score', 'position_x', 'position_y', 'created_at', 'updated_at']


# --- Serialisation ---
def _users_frame(repository: InMemoryRepository) -> pd.DataFrame:
    rows = [
        {
            'id': u.id,
            'name': u.name,
            'gender': u.gender,
            'best_scores': json.dumps(u.best_scores, ensure_ascii=False) if u.best_scores else None,
            'nickname': u.nickname,
            'affiliation': u.affiliation,
            'avatar_url': u.avatar_url,
        }
        for u in repository.get_all_users()
    ]
    return pd.DataFrame(rows, columns=USER_FIELDS)


def _rounds_frame(repository: InMemoryRepository) -> pd.DataFrame:
    rows = []
    for r in repository.get_all_rounds():
        row = {name: getattr(r, name) for name in ROUND_FIELDS}
        row['round_type'] = r.round_type.value
        row['status'] = r.status.value
        for name in ('date', 'created_at', 'updated_at'):
            row[name] = row[name].isoformat()
        rows.append(row)
    return pd.DataFrame(rows, columns=ROUND_FIELDS)


def _ends_frame(repository: InMemoryRepository) -> pd.DataFrame:
    rows = [
        {
            'id': e.id,
            'round_id': e.round_id,
            'end_index': e.end_index,
            'end_total': e.end_total,
            'created_at': e.created_at.isoformat(),
        }
        for r in repository.get_all_rounds()
        for e in repository.get_ends_for_round(r.id)
    ]
    return pd.DataFrame(rows, columns=END_FIELDS)


def _shots_frame(repository: InMemoryRepository) -> pd.DataFrame:
    rows = [
        {
            'id': s.id,
            'end_id': s.end_id,
            'arrow_index': s.arrow_index,
            'score': s.score.value,
            'position_x': s.position.x if s.position else None,
            'position_y': s.position.y if s.position else None,
            'created_at': s.created_at.isoformat(),
            'updated_at': s.updated_at.isoformat(),
        }
        for r in repository.get_all_rounds()
        for e in repository.get_ends_for_round(r.id)
        for s in repository.get_shots_for_end(e.id)
    ]
    return pd.DataFrame(rows, columns=SHOT_FIELDS)


def save_snapshot(repository: InMemoryRepository, folder: Optional[Path] = None) -> Path:
    """
    Write the repository to CSV files.

    Args:
        repository: Repository to save
        folder: Destination folder (default: SNAPSHOT_FOLDER)

    Returns:
        The snapshot folder
    """
    target = Path(folder) if folder is not None else SNAPSHOT_FOLDER
    with repository.consistent_view():
        frames = {
            USERS_FILE: _users_frame(repository),
            ROUNDS_FILE: _rounds_frame(repository),
            ENDS_FILE: _ends_frame(repository),
            SHOTS_FILE: _shots_frame(repository),
        }

    for filename, df in frames.items():
        atomic_write_csv(df, target / filename, index=False)

    logger.info(
        f"Saved snapshot to {target}: {len(frames[USERS_FILE])} users, "
        f"{len(frames[ROUNDS_FILE])} rounds, {len(frames[SHOTS_FILE])} shots"
    )
    return target


# --- Deserialisation ---
def _read(path: Path, columns: list[str]) -> pd.DataFrame:
    if not path.exists():
        logger.warning(f"Snapshot file missing, treating as empty: {path}")
        return pd.DataFrame(columns=columns)
    df = pd.read_csv(path, dtype=object, keep_default_na=False, na_values=[''])
    return df.astype(object).where(df.notna(), None)


def _timestamp(value) -> datetime:
    stamp = pd.Timestamp(value)
    stamp = stamp.tz_localize("UTC") if stamp.tzinfo is None else stamp.tz_convert("UTC")
    return stamp.to_pydatetime()


def load_snapshot(folder: Optional[Path] = None) -> InMemoryRepository:
    """
    Rebuild an InMemoryRepository from a snapshot folder.

    Missing files load as empty tables; a missing folder yields an empty
    repository.
    """
    source = Path(folder) if folder is not None else SNAPSHOT_FOLDER
    repository = InMemoryRepository()

    for row in _read(source / USERS_FILE, USER_FIELDS).to_dict('records'):
        repository.create_user(User(
            id=int(row['id']),
            name=row['name'] or "",
            gender=row['gender'] or "male",
            best_scores=json.loads(row['best_scores']) if row['best_scores'] else {},
            nickname=row['nickname'],
            affiliation=row['affiliation'],
            avatar_url=row['avatar_url'],
        ))

    for row in _read(source / ROUNDS_FILE, ROUND_FIELDS).to_dict('records'):
        repository.create_round(Round(
            id=int(row['id']),
            user_id=int(row['user_id']),
            date=_timestamp(row['date']),
            distance=int(row['distance']),
            distance_label=row['distance_label'],
            arrows_per_end=int(row['arrows_per_end']),
            total_ends=int(row['total_ends']),
            total_arrows=int(row['total_arrows']),
            round_type=RoundType(row['round_type']),
            competition_name=row['competition_name'],
            location=row['location'],
            start_time=row['start_time'],
            weather=row['weather'],
            condition=row['condition'],
            concerns=row['concerns'],
            memo=row['memo'],
            status=RoundStatus(row['status']),
            total_score=int(row['total_score']),
            total_x=int(row['total_x']),
            total_10=int(row['total_10']),
            created_at=_timestamp(row['created_at']),
            updated_at=_timestamp(row['updated_at']),
        ))

    for row in _read(source / ENDS_FILE, END_FIELDS).to_dict('records'):
        repository.create_end(End(
            id=int(row['id']),
            round_id=int(row['round_id']),
            end_index=int(row['end_index']),
            end_total=int(row['end_total']),
            created_at=_timestamp(row['created_at']),
        ))

    for row in _read(source / SHOTS_FILE, SHOT_FIELDS).to_dict('records'):
        has_position = row['position_x'] is not None and row['position_y'] is not None
        repository.create_shot(Shot(
            id=int(row['id']),
            end_id=int(row['end_id']),
            arrow_index=int(row['arrow_index']),
            score=Score.parse(row['score']),
            position=HitPosition(float(row['position_x']), float(row['position_y'])) if has_position else None,
            created_at=_timestamp(row['created_at']),
            updated_at=_timestamp(row['updated_at']),
        ))

    logger.info(
        f"Loaded snapshot from {source}: {len(repository.users)} users, "
        f"{len(repository.rounds)} rounds, {len(repository.shots)} shots"
    )
    return repository


class SnapshotScheduler:
    """
    Debounced flushing of aggregator changes to a CSV snapshot.

    Call poll() from the host's event loop or a timer; it flushes when the
    aggregator has pending changes and no new change arrived for
    `debounce` seconds.
    """

    def __init__(self, repository, aggregator, folder: Optional[Path] = None,
                 debounce: float = FLUSH_DEBOUNCE_SECONDS, clock=time.monotonic):
        self.repository = repository
        self.aggregator = aggregator
        self.folder = folder
        self.debounce = debounce
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: set[int] = set()
        self._last_change: Optional[float] = None
        self.flush_count = 0

    def poll(self) -> bool:
        """Collect dirty signals and flush if the debounce interval has elapsed."""
        with self._lock:
            dirty = self.aggregator.drain_dirty()
            if dirty:
                self._pending |= dirty
                self._last_change = self._clock()
            if not self._pending or self._clock() - self._last_change < self.debounce:
                return False
        return self.flush()

    def flush(self) -> bool:
        """Write a snapshot now if anything is pending."""
        with self._lock:
            self._pending |= self.aggregator.drain_dirty()
            if not self._pending:
                return False
            rounds = len(self._pending)
            save_snapshot(self.repository, self.folder)
            self._pending.clear()
            self._last_change = None
            self.flush_count += 1
        logger.debug(f"Flushed snapshot after changes to {rounds} rounds")
        return True
