"""
Tests for rating functions and the archer rating composer.
"""

from datetime import timedelta

import pytest

from archery.errors import NoDataError
from archery.rating.composer import compute_archer_rating, most_recent, require_archer_rating
from archery.rating.curves import competition_rating, practice_rating, rating_rank
from archery.scoring.models import RoundStatus

from conftest import FIXED_NOW, add_completed_round


class TestRatingFunctions:
    """Tests for competition_rating and practice_rating."""

    def test_competition_anchor_points(self):
        assert competition_rating(720) == 10.0
        assert competition_rating(0) == 0.0
        assert competition_rating(600) == 5.0
        assert competition_rating(685) == pytest.approx(9.99)

    def test_practice_anchor_points(self):
        assert practice_rating(720) == 9.5
        assert practice_rating(610) == 5.0
        assert practice_rating(690) == pytest.approx(9.0)

    def test_interpolates_between_breakpoints(self):
        assert competition_rating(550) == pytest.approx(4.25)
        assert practice_rating(460) == pytest.approx(2.75)

    def test_linear_ramp_below_first_breakpoint(self):
        assert competition_rating(150) == pytest.approx(0.25)

    def test_clamped(self):
        assert competition_rating(-50) == 0.0
        assert practice_rating(-1) == 0.0
        assert competition_rating(800) == 10.0
        assert practice_rating(800) == 9.5

    def test_monotonic_and_bounded(self):
        previous_comp = previous_prac = 0.0
        for score in range(-10, 760, 5):
            comp = competition_rating(score)
            prac = practice_rating(score)
            assert 0.0 <= comp <= 10.0
            assert 0.0 <= prac <= 9.5
            assert comp >= previous_comp
            assert prac >= previous_prac
            previous_comp, previous_prac = comp, prac


class TestRatingRank:
    """Tests for rating_rank thresholds."""

    @pytest.mark.parametrize("rating,rank", [
        (19.5, "SA"),
        (16.0, "SA"),
        (15.99, "AA"),
        (13.0, "AA"),
        (10.0, "A"),
        (7.0, "BB"),
        (5.0, "B"),
        (4.99, "C"),
        (0.0, "C"),
    ])
    def test_thresholds(self, rating, rank):
        assert rating_rank(rating)["rank"] == rank

    def test_has_colour(self):
        assert rating_rank(17)["color"].startswith("#")


class TestComposer:
    """Tests for compute_archer_rating."""

    def test_competition_only(self, repo, archer):
        for days, score in enumerate([650, 680, 700]):
            add_completed_round(repo, archer.id, score, date=FIXED_NOW - timedelta(days=days),
                                round_type="competition")

        rating = compute_archer_rating(repo, archer.id)

        assert rating.competition_rating == competition_rating(2030 / 3)
        assert rating.practice_rating == 0.0
        assert rating.practice_count == 0
        assert rating.competition_count == 3
        assert rating.rating == rating.competition_rating + rating.practice_rating
        assert rating.rank == rating_rank(rating.rating)["rank"]

    def test_combined(self, repo, archer):
        add_completed_round(repo, archer.id, 720, round_type="competition")
        add_completed_round(repo, archer.id, 720, round_type="club")
        rating = compute_archer_rating(repo, archer.id)
        assert rating.rating == 19.5
        assert rating.rating == competition_rating(720) + practice_rating(720)
        assert rating.rank == "SA"

    def test_club_and_personal_count_as_practice(self, repo, archer):
        add_completed_round(repo, archer.id, 610, round_type="club")
        add_completed_round(repo, archer.id, 610, round_type="personal")
        rating = compute_archer_rating(repo, archer.id)
        assert rating.practice_count == 2
        assert rating.practice_rating == 5.0

    def test_only_five_most_recent_count(self, repo, archer):
        # The oldest round would drag the average down if it were included
        add_completed_round(repo, archer.id, 0, date=FIXED_NOW - timedelta(days=30))
        for days in range(5):
            add_completed_round(repo, archer.id, 610, date=FIXED_NOW - timedelta(days=days))
        rating = compute_archer_rating(repo, archer.id)
        assert rating.practice_scores == [610] * 5
        assert rating.practice_rating == 5.0

    def test_ignores_unfinished_rounds(self, repo, archer):
        add_completed_round(repo, archer.id, 700, status=RoundStatus.IN_PROGRESS)
        add_completed_round(repo, archer.id, 700, status=RoundStatus.CANCELLED)
        assert compute_archer_rating(repo, archer.id) is None

    def test_no_rounds_is_none(self, repo, archer):
        assert compute_archer_rating(repo, archer.id) is None

    def test_require_raises(self, repo, archer):
        with pytest.raises(NoDataError):
            require_archer_rating(repo, archer.id)

    def test_to_record_rounds_for_display(self, repo, archer):
        for score in (650, 680, 700):
            add_completed_round(repo, archer.id, score, round_type="competition")
        record = compute_archer_rating(repo, archer.id).to_record()
        assert record["rating"] == round(competition_rating(2030 / 3), 2)


class TestMostRecent:
    """Tests for the recency selection used by the composer."""

    def test_same_date_keeps_insertion_order(self, repo, archer):
        rounds = [add_completed_round(repo, archer.id, s) for s in (600, 610, 620)]
        picked = most_recent(rounds, 2)
        assert [r.total_score for r in picked] == [600, 610]

    def test_newest_first(self, repo, archer):
        old = add_completed_round(repo, archer.id, 500, date=FIXED_NOW - timedelta(days=2))
        new = add_completed_round(repo, archer.id, 600, date=FIXED_NOW)
        assert [r.id for r in most_recent([old, new])] == [new.id, old.id]
