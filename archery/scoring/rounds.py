"""
Shot / End / Round aggregation.

RoundAggregator is the only writer of rounds. Every mutation runs under a
per-round lock and inside a repository transaction, and finishes by
recomputing the end and round totals from the stored shots:

    round.total_score == sum of shot points
    round.total_x     == number of X shots
    round.total_10    == number of X and 10 shots
    end.end_total     == sum of shot points in that end

Writers on different rounds do not wait on each other; a failed mutation
only rolls back the entries it wrote.

Mutations return a MutationResult whose `dirty` flag tells the caller that
persistence is due. The aggregator never persists anything itself; it keeps
the ids of dirty rounds for a flush scheduler to drain.

Usage:
    from archery.scoring.rounds import RoundAggregator
    aggregator = RoundAggregator(repository)
    result = aggregator.start_round(user_id, preset="70mW")
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from archery.config import (
    CONDITION_OPTIONS,
    DEFAULT_ARROWS_PER_END,
    DEFAULT_DISTANCE,
    DEFAULT_TOTAL_ENDS,
    ROUND_PRESETS,
    WEATHER_OPTIONS,
)
from archery.errors import (
    CapacityExceededError,
    InvalidTransitionError,
    NoDataError,
    NotFoundError,
    ValidationError,
)
from archery.scoring.models import End, HitPosition, Round, RoundStatus, RoundType, Score, Shot
from archery.scoring.target import score_from_hit
from archery.storage.repository import RoundRepository
from archery.utils import ensure_utc, setup_logging, utc_now, validate_choice, validate_limit

# --- Module Logger ---
logger = setup_logging(__name__)


@dataclass(frozen=True)
class RoundTotals:
    total_score: int = 0
    total_x: int = 0
    total_10: int = 0


def summarize_shots(shots: Iterable[Shot]) -> RoundTotals:
    """Derive round totals from a collection of shots."""
    total_score = total_x = total_10 = 0
    for shot in shots:
        total_score += shot.points
        if shot.score.is_x:
            total_x += 1
        if shot.score.is_ten:
            total_10 += 1
    return RoundTotals(total_score, total_x, total_10)


@dataclass
class MutationResult:
    round: Round
    end: Optional[End] = None
    shot: Optional[Shot] = None
    dirty: bool = True


@dataclass
class EndDetail:
    end: End
    shots: List[Shot] = field(default_factory=list)


@dataclass
class RoundDetail:
    round: Round
    ends: List[EndDetail] = field(default_factory=list)

    def filled_arrows(self) -> int:
        return sum(len(e.shots) for e in self.ends)


def _coerce_position(position) -> Optional[HitPosition]:
    if position is None or isinstance(position, HitPosition):
        return position
    try:
        x, y = position
        return HitPosition(float(x), float(y))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid hit position: {position!r}. Expected (x, y)") from None


def _parse_round_type(value) -> RoundType:
    try:
        return RoundType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid round type: '{value}'. "
            f"Allowed values: {', '.join(t.value for t in RoundType)}"
        ) from None


class RoundAggregator:
    """Maintains round structure and derived totals as shots are entered."""

    def __init__(self, repository: RoundRepository):
        self.repository = repository
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._dirty_rounds: set[int] = set()
        self._dirty_guard = threading.Lock()

    # --- Locking / dirty tracking ---
    def _round_lock(self, round_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(round_id)
            if lock is None:
                lock = self._locks[round_id] = threading.RLock()
            return lock

    @contextmanager
    def _writing(self, round_id: int):
        """Single writer per round; the body commits atomically."""
        with self._round_lock(round_id), self.repository.transaction():
            yield

    def _mark_dirty(self, round_id: int) -> None:
        with self._dirty_guard:
            self._dirty_rounds.add(round_id)

    def drain_dirty(self) -> set[int]:
        """Return and clear the ids of rounds changed since the last drain."""
        with self._dirty_guard:
            dirty, self._dirty_rounds = self._dirty_rounds, set()
        return dirty

    @property
    def has_pending_changes(self) -> bool:
        with self._dirty_guard:
            return bool(self._dirty_rounds)

    # --- Lookups ---
    def _require_round(self, round_id: int) -> Round:
        round_ = self.repository.get_round(round_id)
        if round_ is None:
            raise NotFoundError(f"Round {round_id} not found")
        return round_

    def _require_end(self, end_id: int) -> End:
        end = self.repository.get_end(end_id)
        if end is None:
            raise NotFoundError(f"End {end_id} not found")
        return end

    def _require_shot(self, shot_id: int) -> Shot:
        shot = self.repository.get_shot(shot_id)
        if shot is None:
            raise NotFoundError(f"Shot {shot_id} not found")
        return shot

    @staticmethod
    def _require_open(round_: Round, privileged: bool) -> None:
        if round_.status.is_terminal and not privileged:
            raise InvalidTransitionError(
                f"Round {round_.id} is {round_.status.value}; shot entry is closed"
            )

    def _recompute(self, round_: Round) -> Round:
        """Rewrite end totals and round totals from the stored shots."""
        all_shots: List[Shot] = []
        for end in self.repository.get_ends_for_round(round_.id):
            shots = self.repository.get_shots_for_end(end.id)
            end_total = sum(s.points for s in shots)
            if end.end_total != end_total:
                end.end_total = end_total
                self.repository.update_end(end)
            all_shots.extend(shots)

        totals = summarize_shots(all_shots)
        round_.total_score = totals.total_score
        round_.total_x = totals.total_x
        round_.total_10 = totals.total_10
        round_.updated_at = utc_now()
        return self.repository.update_round(round_)

    # --- Round lifecycle ---
    def start_round(
        self,
        user_id: int,
        *,
        preset: Optional[str] = None,
        distance: Optional[int] = None,
        distance_label: Optional[str] = None,
        arrows_per_end: Optional[int] = None,
        total_ends: Optional[int] = None,
        total_arrows: Optional[int] = None,
        round_type: str = "personal",
        competition_name: Optional[str] = None,
        location: Optional[str] = None,
        start_time: Optional[str] = None,
        weather: Optional[str] = None,
        condition: Optional[str] = None,
        concerns: Optional[str] = None,
        memo: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> MutationResult:
        """
        Create an in-progress round and pre-allocate its empty ends.

        Explicit arguments override the preset. total_arrows defaults to
        arrows_per_end x total_ends.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If the format or metadata is invalid, or a
                competition round has no competition name
        """
        if self.repository.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        base = {}
        if preset is not None:
            validate_choice(preset, ROUND_PRESETS, "round preset")
            base = ROUND_PRESETS[preset]
            distance_label = distance_label or preset

        distance = distance if distance is not None else base.get("distance", DEFAULT_DISTANCE)
        arrows_per_end = arrows_per_end or base.get("arrows_per_end", DEFAULT_ARROWS_PER_END)
        total_ends = total_ends or base.get("total_ends", DEFAULT_TOTAL_ENDS)
        total_arrows = total_arrows or base.get("total_arrows", arrows_per_end * total_ends)

        if arrows_per_end < 1 or total_ends < 1 or total_arrows < 1:
            raise ValidationError(
                f"Round format must be positive: {arrows_per_end} arrows x {total_ends} ends, "
                f"{total_arrows} total"
            )

        kind = _parse_round_type(round_type)
        if kind == RoundType.COMPETITION and not competition_name:
            raise ValidationError("Competition rounds require a competition name")
        if weather is not None:
            validate_choice(weather, WEATHER_OPTIONS, "weather")
        if condition is not None:
            validate_choice(condition, CONDITION_OPTIONS, "condition")

        now = utc_now()
        with self.repository.transaction():
            round_ = self.repository.create_round(Round(
                id=None,
                user_id=user_id,
                date=ensure_utc(date) if date is not None else now,
                distance=distance,
                distance_label=distance_label,
                arrows_per_end=arrows_per_end,
                total_ends=total_ends,
                total_arrows=total_arrows,
                round_type=kind,
                competition_name=competition_name,
                location=location,
                start_time=start_time,
                weather=weather,
                condition=condition,
                concerns=concerns,
                memo=memo,
                created_at=now,
                updated_at=now,
            ))
            for end_index in range(1, total_ends + 1):
                self.repository.create_end(End(id=None, round_id=round_.id, end_index=end_index, created_at=now))

        logger.info(
            f"Started round {round_.id} for user {user_id}: {round_.display_distance}, "
            f"{total_ends} ends x {arrows_per_end} arrows ({kind.value})"
        )
        self._mark_dirty(round_.id)
        return MutationResult(round=round_)

    def complete_round(self, round_id: int) -> MutationResult:
        """
        Transition an in-progress round to completed.

        Raises:
            InvalidTransitionError: If the round does not exist or is already
                completed or cancelled
        """
        return self._finish(round_id, RoundStatus.COMPLETED)

    def cancel_round(self, round_id: int) -> MutationResult:
        return self._finish(round_id, RoundStatus.CANCELLED)

    def _finish(self, round_id: int, status: RoundStatus) -> MutationResult:
        with self._writing(round_id):
            round_ = self.repository.get_round(round_id)
            if round_ is None:
                raise InvalidTransitionError(f"Round {round_id} does not exist")
            if round_.status.is_terminal:
                raise InvalidTransitionError(
                    f"Round {round_id} is already {round_.status.value}"
                )
            round_.status = status
            round_ = self._recompute(round_)

        logger.info(f"Round {round_id} {status.value} with {round_.total_score} points")
        self._mark_dirty(round_id)
        return MutationResult(round=round_)

    def delete_round(self, round_id: int) -> None:
        """
        Delete a round together with all of its ends and shots.

        Raises:
            NotFoundError: If the round does not exist
        """
        with self._writing(round_id):
            self._require_round(round_id)
            ends = self.repository.get_ends_for_round(round_id)
            shot_count = 0
            for end in ends:
                for shot in self.repository.get_shots_for_end(end.id):
                    self.repository.delete_shot(shot.id)
                    shot_count += 1
                self.repository.delete_end(end.id)
            self.repository.delete_round(round_id)

        with self._locks_guard:
            self._locks.pop(round_id, None)
        logger.info(f"Deleted round {round_id} ({len(ends)} ends, {shot_count} shots)")
        self._mark_dirty(round_id)

    def update_memo(self, round_id: int, memo: Optional[str]) -> MutationResult:
        with self._writing(round_id):
            round_ = self._require_round(round_id)
            round_.memo = memo
            round_.updated_at = utc_now()
            round_ = self.repository.update_round(round_)
        self._mark_dirty(round_id)
        return MutationResult(round=round_)

    # --- Shot entry ---
    def record_shot(
        self,
        end_id: int,
        arrow_index: int,
        score=None,
        position=None,
        privileged: bool = False,
    ) -> MutationResult:
        """
        Record (or overwrite) the shot in an arrow slot of an end.

        Args:
            end_id: End receiving the shot
            arrow_index: 1-based arrow slot within the end
            score: Score label; derived from position when omitted
            position: Optional HitPosition or (x, y) pair
            privileged: Allow entry into a completed or cancelled round

        Raises:
            NotFoundError: If the end or its round does not exist
            CapacityExceededError: If arrow_index is outside 1..arrows_per_end
            InvalidTransitionError: If the round is closed to shot entry
            ValidationError: If neither a valid score nor a position is given
        """
        position = _coerce_position(position)
        if score is None:
            if position is None:
                raise ValidationError("A shot needs a score or a hit position")
            score = score_from_hit(position)
        score = Score.parse(score)

        round_id = self._require_end(end_id).round_id
        with self._writing(round_id):
            end = self._require_end(end_id)
            round_ = self._require_round(round_id)
            self._require_open(round_, privileged)
            if not 1 <= arrow_index <= round_.arrows_per_end:
                raise CapacityExceededError(
                    f"Arrow {arrow_index} is outside 1..{round_.arrows_per_end} for end {end_id}"
                )

            now = utc_now()
            existing = next(
                (s for s in self.repository.get_shots_for_end(end_id) if s.arrow_index == arrow_index),
                None,
            )
            if existing is not None:
                existing.score = score
                existing.position = position
                existing.updated_at = now
                shot = self.repository.update_shot(existing)
            else:
                shot = self.repository.create_shot(Shot(
                    id=None,
                    end_id=end_id,
                    arrow_index=arrow_index,
                    score=score,
                    position=position,
                    created_at=now,
                    updated_at=now,
                ))

            round_ = self._recompute(round_)
            end = self.repository.get_end(end_id)

        logger.debug(f"Round {round_id} end {end.end_index} arrow {arrow_index}: {score.value}")
        self._mark_dirty(round_id)
        return MutationResult(round=round_, end=end, shot=shot)

    def revise_shot(self, shot_id: int, new_score=None, new_position=None) -> MutationResult:
        """
        Correct an existing shot in place.

        Score and position are independent: passing only new_position attaches
        hit coordinates without touching the score. Corrections are allowed
        on completed rounds.

        Raises:
            NotFoundError: If the shot does not exist
            ValidationError: If nothing is being changed
        """
        if new_score is None and new_position is None:
            raise ValidationError("Nothing to revise: pass a new score and/or position")
        position = _coerce_position(new_position)
        score = Score.parse(new_score) if new_score is not None else None

        shot = self._require_shot(shot_id)
        round_id = self._require_end(shot.end_id).round_id
        with self._writing(round_id):
            shot = self._require_shot(shot_id)
            round_ = self._require_round(round_id)
            if score is not None:
                shot.score = score
            if position is not None:
                shot.position = position
            shot.updated_at = utc_now()
            shot = self.repository.update_shot(shot)
            round_ = self._recompute(round_)
            end = self.repository.get_end(shot.end_id)

        logger.debug(f"Revised shot {shot_id} in round {round_id}")
        self._mark_dirty(round_id)
        return MutationResult(round=round_, end=end, shot=shot)

    def remove_shot(self, shot_id: int, privileged: bool = False) -> MutationResult:
        """
        Delete a shot and recompute totals.

        Raises:
            NotFoundError: If the shot does not exist
            InvalidTransitionError: If the round is closed and not privileged
        """
        shot = self._require_shot(shot_id)
        round_id = self._require_end(shot.end_id).round_id
        with self._writing(round_id):
            result = self._remove_locked(round_id, self._require_shot(shot_id), privileged)
        self._mark_dirty(round_id)
        return result

    def undo_last_shot(self, round_id: int) -> MutationResult:
        """
        Remove the most recently filled arrow slot of an in-progress round.

        Raises:
            NotFoundError: If the round does not exist
            NoDataError: If the round has no shots
        """
        with self._writing(round_id):
            self._require_round(round_id)
            last = None
            for end in reversed(self.repository.get_ends_for_round(round_id)):
                shots = self.repository.get_shots_for_end(end.id)
                if shots:
                    last = shots[-1]
                    break
            if last is None:
                raise NoDataError(f"Round {round_id} has no shots to undo")
            result = self._remove_locked(round_id, last, privileged=False)
        self._mark_dirty(round_id)
        return result

    def _remove_locked(self, round_id: int, shot: Shot, privileged: bool) -> MutationResult:
        round_ = self._require_round(round_id)
        self._require_open(round_, privileged)
        self.repository.delete_shot(shot.id)
        round_ = self._recompute(round_)
        end = self.repository.get_end(shot.end_id)
        logger.debug(f"Removed shot {shot.id} (arrow {shot.arrow_index}) from round {round_id}")
        return MutationResult(round=round_, end=end, shot=shot)

    # --- Reads ---
    def get_round_detail(self, round_id: int) -> RoundDetail:
        """Round with its ends (by end index) and their shots (by arrow index)."""
        with self._round_lock(round_id):
            round_ = self._require_round(round_id)
            ends = [
                EndDetail(end=end, shots=self.repository.get_shots_for_end(end.id))
                for end in self.repository.get_ends_for_round(round_id)
            ]
        return RoundDetail(round=round_, ends=ends)

    def rounds_for_user(self, user_id: int, limit: int = 20) -> List[Round]:
        """
        Most recent rounds of a user, newest first.

        Raises:
            ValidationError: If limit is not positive
        """
        validate_limit(limit)
        rounds = sorted(
            self.repository.get_rounds_for_user(user_id),
            key=lambda r: (r.date, r.id),
            reverse=True,
        )
        return rounds[:limit]
