"""
Tests for the in-memory repository: error kinds, rollback and lookup cost.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

import archery.storage.repository as repository_module
from archery.errors import NotFoundError
from archery.scoring.models import End, Round, RoundStatus, Score, Shot, User
from archery.scoring.rounds import RoundAggregator
from archery.storage.repository import InMemoryRepository

from conftest import FIXED_NOW, add_user


def seed_round_with_shots(repo, user_id, ends=12, arrows_per_end=6):
    """A completed round with every arrow slot filled, written straight to the store."""
    round_ = repo.create_round(Round(
        id=None,
        user_id=user_id,
        date=FIXED_NOW,
        arrows_per_end=arrows_per_end,
        total_ends=ends,
        total_arrows=ends * arrows_per_end,
        status=RoundStatus.COMPLETED,
        total_score=ends * arrows_per_end * 9,
    ))
    for end_index in range(1, ends + 1):
        end = repo.create_end(End(id=None, round_id=round_.id, end_index=end_index,
                                  end_total=arrows_per_end * 9))
        for arrow_index in range(1, arrows_per_end + 1):
            repo.create_shot(Shot(id=None, end_id=end.id, arrow_index=arrow_index, score=Score.NINE))
    return round_


class TestRepositoryErrors:
    """Tests for missing-entity handling."""

    def test_update_missing_user(self, repo):
        with pytest.raises(NotFoundError):
            repo.update_user(User(id=42, name="Ghost"))

    def test_update_missing_round(self, repo):
        with pytest.raises(NotFoundError):
            repo.update_round(Round(id=42, user_id=1, date=FIXED_NOW))

    def test_update_missing_shot(self, repo):
        with pytest.raises(NotFoundError):
            repo.update_shot(Shot(id=42, end_id=1, arrow_index=1, score=Score.X))

    def test_delete_reports_whether_anything_was_removed(self, repo):
        user = add_user(repo, "Kim")
        round_ = seed_round_with_shots(repo, user.id, ends=1)
        assert repo.delete_round(round_.id)
        assert not repo.delete_round(round_.id)


class TestTransactions:
    """Tests for journal-based rollback."""

    def test_rollback_restores_written_entries(self, repo):
        user = add_user(repo, "Kim")
        round_ = seed_round_with_shots(repo, user.id, ends=2)
        end = repo.get_ends_for_round(round_.id)[0]
        doomed_shot = repo.get_shots_for_end(end.id)[0]

        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.create_shot(Shot(id=None, end_id=end.id, arrow_index=7, score=Score.X))
                end.end_total = 0
                repo.update_end(end)
                repo.delete_shot(doomed_shot.id)
                raise RuntimeError("abort")

        assert [s.arrow_index for s in repo.get_shots_for_end(end.id)] == [1, 2, 3, 4, 5, 6]
        assert repo.get_end(end.id).end_total == 54
        assert repo.get_shot(doomed_shot.id) == doomed_shot

    def test_nested_commit_is_undone_with_parent(self, repo):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                with repo.transaction():
                    add_user(repo, "Inner")
                add_user(repo, "Outer")
                raise RuntimeError("abort")
        assert repo.get_all_users() == []

    def test_failed_nested_transaction_keeps_parent_writes(self, repo):
        with repo.transaction():
            add_user(repo, "Kept")
            with pytest.raises(RuntimeError):
                with repo.transaction():
                    add_user(repo, "Dropped")
                    raise RuntimeError("abort")
        assert [u.name for u in repo.get_all_users()] == ["Kept"]

    def test_ids_stay_unique_after_rollback(self, repo):
        first = add_user(repo, "Kim")
        with pytest.raises(RuntimeError):
            with repo.transaction():
                add_user(repo, "Lee")
                raise RuntimeError("abort")
        assert add_user(repo, "Park").id > first.id + 1

    def test_consistent_view_waits_for_open_transaction(self, repo):
        in_transaction = threading.Event()
        release = threading.Event()
        entered = threading.Event()

        def writer():
            with repo.transaction():
                add_user(repo, "Kim")
                in_transaction.set()
                release.wait(5)
                add_user(repo, "Lee")

        def reader():
            with repo.consistent_view():
                entered.set()
                return len(repo.get_all_users())

        with ThreadPoolExecutor(max_workers=2) as pool:
            write = pool.submit(writer)
            assert in_transaction.wait(5)
            read = pool.submit(reader)
            assert not entered.wait(0.2)
            release.set()
            write.result(5)
            assert read.result(5) == 2


class TestMutationCost:
    """Recording a shot must not scale with unrelated history."""

    @staticmethod
    def clones_for_one_shot(repo, monkeypatch):
        user = add_user(repo, "Kim")
        aggregator = RoundAggregator(repo)
        round_ = aggregator.start_round(user.id, preset="70mW").round
        end = repo.get_ends_for_round(round_.id)[0]

        copies = []
        original = repository_module._clone

        def counting_clone(entity):
            copies.append(type(entity).__name__)
            return original(entity)

        monkeypatch.setattr(repository_module, "_clone", counting_clone)
        aggregator.record_shot(end.id, 1, "X")
        monkeypatch.setattr(repository_module, "_clone", original)
        return len(copies)

    def test_history_does_not_change_work_done(self, monkeypatch):
        empty = InMemoryRepository()
        busy = InMemoryRepository()
        other = add_user(busy, "History")
        for _ in range(150):
            seed_round_with_shots(busy, other.id)
        assert len(busy.shots) == 150 * 72

        assert self.clones_for_one_shot(busy, monkeypatch) == self.clones_for_one_shot(empty, monkeypatch)

    def test_child_lookups_use_indexes(self, repo):
        user = add_user(repo, "Kim")
        rounds = [seed_round_with_shots(repo, user.id, ends=2) for _ in range(3)]
        ends = repo.get_ends_for_round(rounds[1].id)
        assert [e.end_index for e in ends] == [1, 2]
        assert all(e.round_id == rounds[1].id for e in ends)
        assert len(repo.get_shots_for_round(rounds[1].id)) == 12
        assert [r.id for r in repo.get_rounds_for_user(user.id)] == [r.id for r in rounds]
