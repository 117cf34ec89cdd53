"""
Tests for CSV snapshots and the flush scheduler.
"""

from archery.scoring.models import HitPosition, RoundStatus, Score
from archery.storage.snapshot import SnapshotScheduler, load_snapshot, save_snapshot

from conftest import add_user


class FakeClock:
    def __init__(self):
        self.value = 100.0

    def __call__(self):
        return self.value


class TestSnapshotRoundTrip:
    """Tests for save_snapshot / load_snapshot."""

    def test_round_trip(self, repo, aggregator, tmp_path):
        user = add_user(repo, "Kim", gender="female", best_scores={"70mW": 655}, nickname="kk")
        round_ = aggregator.start_round(user.id, preset="18mW", weather="indoor", memo="new limbs").round
        ends = aggregator.get_round_detail(round_.id).ends
        aggregator.record_shot(ends[0].end.id, 1, "X", position=(50.5, 49.5))
        aggregator.record_shot(ends[0].end.id, 2, "M")
        aggregator.complete_round(round_.id)

        save_snapshot(repo, tmp_path)
        loaded = load_snapshot(tmp_path)

        assert loaded.get_user(user.id) == repo.get_user(user.id)
        assert loaded.get_round(round_.id) == repo.get_round(round_.id)
        assert loaded.get_ends_for_round(round_.id) == repo.get_ends_for_round(round_.id)
        shots = loaded.get_shots_for_round(round_.id)
        assert [s.score for s in shots] == [Score.X, Score.MISS]
        assert shots[0].position == HitPosition(50.5, 49.5)
        assert shots[1].position is None
        assert loaded.get_round(round_.id).status == RoundStatus.COMPLETED

    def test_id_counters_continue(self, repo, tmp_path):
        add_user(repo, "Kim")
        add_user(repo, "Lee")
        save_snapshot(repo, tmp_path)
        loaded = load_snapshot(tmp_path)
        assert add_user(loaded, "Park").id == 3

    def test_missing_folder_loads_empty(self, tmp_path):
        loaded = load_snapshot(tmp_path / "nothing-here")
        assert loaded.get_all_users() == []
        assert loaded.get_all_rounds() == []


class TestSnapshotScheduler:
    """Tests for debounced flushing."""

    def test_debounce(self, repo, aggregator, tmp_path):
        clock = FakeClock()
        scheduler = SnapshotScheduler(repo, aggregator, folder=tmp_path, debounce=0.5, clock=clock)
        user = add_user(repo, "Kim")
        aggregator.start_round(user.id)

        assert not scheduler.poll()
        clock.value += 0.3
        assert not scheduler.poll()
        clock.value += 0.3
        assert scheduler.poll()
        assert scheduler.flush_count == 1
        assert (tmp_path / "rounds.csv").exists()

        # Nothing new to write
        clock.value += 5
        assert not scheduler.poll()

    def test_new_change_restarts_debounce(self, repo, aggregator, tmp_path):
        clock = FakeClock()
        scheduler = SnapshotScheduler(repo, aggregator, folder=tmp_path, debounce=0.5, clock=clock)
        user = add_user(repo, "Kim")
        round_ = aggregator.start_round(user.id).round

        scheduler.poll()
        clock.value += 0.4
        aggregator.update_memo(round_.id, "focus on release")
        assert not scheduler.poll()
        clock.value += 0.4
        assert not scheduler.poll()
        clock.value += 0.2
        assert scheduler.poll()

    def test_flush_now(self, repo, aggregator, tmp_path):
        scheduler = SnapshotScheduler(repo, aggregator, folder=tmp_path, clock=FakeClock())
        assert not scheduler.flush()
        aggregator.start_round(add_user(repo, "Kim").id)
        assert scheduler.flush()
        assert load_snapshot(tmp_path).get_all_rounds()[0].user_id == 1
