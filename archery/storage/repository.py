"""
Repository abstraction for users, rounds, ends and shots.

The engine only talks to RoundRepository. InMemoryRepository is the default
implementation; archery.storage.snapshot saves it to and loads it from CSV.
Every getter returns copies, so callers never hold live references into the
store and must write changes back through an update method.
"""

import copy
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, List, Optional

from archery.errors import NotFoundError
from archery.scoring.models import End, Round, RoundStatus, Shot, User
from archery.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

_clone = copy.deepcopy
_MISSING = object()


class RoundRepository(ABC):
    """Storage contract consumed by the aggregator, composer and rankings."""

    # --- Users ---
    @abstractmethod
    def create_user(self, user: User) -> User: ...

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_all_users(self) -> List[User]: ...

    @abstractmethod
    def update_user(self, user: User) -> User: ...

    # --- Rounds ---
    @abstractmethod
    def create_round(self, round_: Round) -> Round: ...

    @abstractmethod
    def get_round(self, round_id: int) -> Optional[Round]: ...

    @abstractmethod
    def get_rounds_for_user(self, user_id: int) -> List[Round]: ...

    @abstractmethod
    def get_all_rounds(self) -> List[Round]: ...

    @abstractmethod
    def update_round(self, round_: Round) -> Round: ...

    @abstractmethod
    def delete_round(self, round_id: int) -> bool: ...

    # --- Ends ---
    @abstractmethod
    def create_end(self, end: End) -> End: ...

    @abstractmethod
    def get_end(self, end_id: int) -> Optional[End]: ...

    @abstractmethod
    def get_ends_for_round(self, round_id: int) -> List[End]: ...

    @abstractmethod
    def update_end(self, end: End) -> End: ...

    @abstractmethod
    def delete_end(self, end_id: int) -> bool: ...

    # --- Shots ---
    @abstractmethod
    def create_shot(self, shot: Shot) -> Shot: ...

    @abstractmethod
    def get_shot(self, shot_id: int) -> Optional[Shot]: ...

    @abstractmethod
    def get_shots_for_end(self, end_id: int) -> List[Shot]: ...

    @abstractmethod
    def update_shot(self, shot: Shot) -> Shot: ...

    @abstractmethod
    def delete_shot(self, shot_id: int) -> bool: ...

    @abstractmethod
    def transaction(self):
        """Context manager; all writes inside commit together or not at all."""

    @contextmanager
    def consistent_view(self):
        """Context manager for multi-table reads that must not see a half-applied mutation."""
        yield self

    def get_all_completed_rounds(self) -> List[Round]:
        return [r for r in self.get_all_rounds() if r.status == RoundStatus.COMPLETED]

    def get_shots_for_round(self, round_id: int) -> List[Shot]:
        shots = []
        for end in self.get_ends_for_round(round_id):
            shots.extend(self.get_shots_for_end(end.id))
        return shots


class InMemoryRepository(RoundRepository):
    """
    Thread-safe dict-backed repository.

    The store lock is held only for individual reads and writes. Child
    lookups (rounds of a user, ends of a round, shots of an end) go through
    parent indexes, so their cost does not depend on the size of the store.

    transaction() keeps a per-thread journal of the entries it overwrote and
    replays it backwards if the body raises. Rollback therefore only touches
    what that transaction wrote, and transactions on different rounds run
    side by side. Id counters are never rolled back; ids stay unique.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._quiet = threading.Condition(self._lock)
        self._open_transactions = 0
        self._viewers = 0
        self._local = threading.local()

        self.users: Dict[int, User] = {}
        self.rounds: Dict[int, Round] = {}
        self.ends: Dict[int, End] = {}
        self.shots: Dict[int, Shot] = {}
        self.counters = {"user": 1, "round": 1, "end": 1, "shot": 1}

        self._tables = {"user": self.users, "round": self.rounds, "end": self.ends, "shot": self.shots}
        # kind -> (parent id -> child ids, parent attribute)
        self._indexes: Dict[str, tuple] = {
            "round": ({}, "user_id"),
            "end": ({}, "round_id"),
            "shot": ({}, "end_id"),
        }

    # --- Low-level writes ---
    def _next_id(self, kind: str) -> int:
        value = self.counters[kind]
        self.counters[kind] = value + 1
        return value

    def _journal(self) -> Optional[list]:
        stack = getattr(self._local, "journals", None)
        return stack[-1] if stack else None

    def _put(self, kind: str, key: int, entity, record: bool = True):
        """Store (or with _MISSING, remove) one entry and keep its parent index current."""
        table = self._tables[kind]
        previous = table.get(key, _MISSING)
        index = self._indexes.get(kind)
        if index is not None:
            children, parent_attr = index
            if previous is not _MISSING:
                siblings = children.get(getattr(previous, parent_attr))
                if siblings is not None:
                    siblings.discard(key)
                    if not siblings:
                        del children[getattr(previous, parent_attr)]
            if entity is not _MISSING:
                children.setdefault(getattr(entity, parent_attr), set()).add(key)

        if entity is _MISSING:
            table.pop(key, None)
        else:
            table[key] = entity

        journal = self._journal() if record else None
        if journal is not None:
            journal.append((kind, key, previous))
        return previous

    def _insert(self, kind: str, entity):
        with self._lock:
            if entity.id is None:
                entity = replace(entity, id=self._next_id(kind))
            else:
                # Keep the counter ahead of explicitly supplied ids (snapshot loads)
                self.counters[kind] = max(self.counters[kind], entity.id + 1)
            self._put(kind, entity.id, _clone(entity))
            return _clone(entity)

    def _update(self, kind: str, entity, label: str):
        with self._lock:
            if entity.id not in self._tables[kind]:
                raise NotFoundError(f"{label} {entity.id} does not exist")
            self._put(kind, entity.id, _clone(entity))
            return _clone(entity)

    def _delete(self, kind: str, key: int) -> bool:
        with self._lock:
            if key not in self._tables[kind]:
                return False
            self._put(kind, key, _MISSING)
            return True

    def _children(self, kind: str, parent_id: int) -> list:
        children, _ = self._indexes[kind]
        table = self._tables[kind]
        return [_clone(table[key]) for key in children.get(parent_id, ())]

    # --- Transactions ---
    @contextmanager
    def transaction(self) -> Iterator["InMemoryRepository"]:
        stack = self._local.__dict__.setdefault("journals", [])
        outermost = not stack
        if outermost:
            with self._lock:
                while self._viewers:
                    self._quiet.wait()
                self._open_transactions += 1

        journal: list = []
        stack.append(journal)
        try:
            yield self
        except BaseException:
            stack.pop()
            with self._lock:
                for kind, key, previous in reversed(journal):
                    self._put(kind, key, previous, record=False)
            logger.debug(f"Transaction rolled back ({len(journal)} writes)")
            raise
        else:
            stack.pop()
            if stack:
                # A nested commit is undone with its parent
                stack[-1].extend(journal)
        finally:
            if outermost:
                with self._lock:
                    self._open_transactions -= 1
                    if not self._open_transactions:
                        self._quiet.notify_all()

    @contextmanager
    def consistent_view(self) -> Iterator["InMemoryRepository"]:
        """
        Hold the store still for a multi-table read.

        Waits until no transaction is open and keeps new ones from starting
        until the block exits. Must not be entered from inside a transaction.
        """
        with self._lock:
            self._viewers += 1
            try:
                while self._open_transactions:
                    self._quiet.wait()
                yield self
            finally:
                self._viewers -= 1
                self._quiet.notify_all()

    # --- Users ---
    def create_user(self, user: User) -> User:
        return self._insert("user", user)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._get(self.users, user_id)

    def get_all_users(self) -> List[User]:
        with self._lock:
            return [_clone(u) for u in self.users.values()]

    def update_user(self, user: User) -> User:
        return self._update("user", user, "User")

    @staticmethod
    def _get(table: dict, key: int):
        entity = table.get(key)
        return _clone(entity) if entity is not None else None

    # --- Rounds ---
    def create_round(self, round_: Round) -> Round:
        return self._insert("round", round_)

    def get_round(self, round_id: int) -> Optional[Round]:
        with self._lock:
            return self._get(self.rounds, round_id)

    def get_rounds_for_user(self, user_id: int) -> List[Round]:
        with self._lock:
            rounds = self._children("round", user_id)
        return sorted(rounds, key=lambda r: r.id)

    def get_all_rounds(self) -> List[Round]:
        with self._lock:
            return [_clone(r) for r in self.rounds.values()]

    def update_round(self, round_: Round) -> Round:
        return self._update("round", round_, "Round")

    def delete_round(self, round_id: int) -> bool:
        return self._delete("round", round_id)

    # --- Ends ---
    def create_end(self, end: End) -> End:
        return self._insert("end", end)

    def get_end(self, end_id: int) -> Optional[End]:
        with self._lock:
            return self._get(self.ends, end_id)

    def get_ends_for_round(self, round_id: int) -> List[End]:
        with self._lock:
            ends = self._children("end", round_id)
        return sorted(ends, key=lambda e: e.end_index)

    def update_end(self, end: End) -> End:
        return self._update("end", end, "End")

    def delete_end(self, end_id: int) -> bool:
        return self._delete("end", end_id)

    # --- Shots ---
    def create_shot(self, shot: Shot) -> Shot:
        return self._insert("shot", shot)

    def get_shot(self, shot_id: int) -> Optional[Shot]:
        with self._lock:
            return self._get(self.shots, shot_id)

    def get_shots_for_end(self, end_id: int) -> List[Shot]:
        with self._lock:
            shots = self._children("shot", end_id)
        return sorted(shots, key=lambda s: s.arrow_index)

    def update_shot(self, shot: Shot) -> Shot:
        return self._update("shot", shot, "Shot")

    def delete_shot(self, shot_id: int) -> bool:
        return self._delete("shot", shot_id)
