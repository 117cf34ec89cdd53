"""
Shared fixtures for engine tests.
"""

from datetime import datetime, timezone

import pytest

from archery.scoring.models import Round, RoundStatus, RoundType, User
from archery.scoring.rounds import RoundAggregator
from archery.storage.repository import InMemoryRepository

# Wednesday; the week started Monday 2025-06-16
FIXED_NOW = datetime(2025, 6, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def aggregator(repo):
    return RoundAggregator(repo)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def archer(repo):
    return repo.create_user(User(id=None, name="Kim", gender="male"))


@pytest.fixture
def female_archer(repo):
    return repo.create_user(User(id=None, name="Lee", gender="female"))


def add_user(repo, name, gender="male", **kwargs):
    return repo.create_user(User(id=None, name=name, gender=gender, **kwargs))


def add_completed_round(
    repo,
    user_id,
    score,
    date=FIXED_NOW,
    round_type="personal",
    total_x=0,
    total_arrows=72,
    distance_label="70mW",
    status=RoundStatus.COMPLETED,
):
    """Seed a finished round with explicit totals, bypassing shot entry."""
    return repo.create_round(Round(
        id=None,
        user_id=user_id,
        date=date,
        distance=70,
        distance_label=distance_label,
        arrows_per_end=6,
        total_ends=total_arrows // 6,
        total_arrows=total_arrows,
        round_type=RoundType(round_type),
        competition_name="Cup" if round_type == "competition" else None,
        status=status,
        total_score=score,
        total_x=total_x,
        total_10=total_x,
    ))
