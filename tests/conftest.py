"""
Shared pytest fixtures for tournament engine tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.models import Team, Match, POOL_PLAY


def make_teams(count):
    """Teams T1..Tn with ids 1..n."""
    return [Team(id=i, name=f"T{i}", players=[f"P{i}a", f"P{i}b"]) for i in range(1, count + 1)]


def played(match_id, team1, team2, score1, score2, phase=POOL_PLAY, round=None, completed=True):
    """A match with a result already entered."""
    return Match(id=match_id, team1=team1, team2=team2, team1_score=score1, team2_score=score2,
                 completed=completed, phase=phase, round=round)


def ranked_pool_matches(teams):
    """
    Completed pool play results that rank the teams in list order:
    every team beats every team listed after it.
    """
    matches = []
    match_id = 1
    for i, winner in enumerate(teams):
        for loser in teams[i + 1:]:
            matches.append(played(match_id, winner, loser, 15, 10))
            match_id += 1
    return matches


@pytest.fixture
def six_teams():
    return make_teams(6)


@pytest.fixture
def eight_teams():
    return make_teams(8)


@pytest.fixture
def store(tmp_path):
    from storage import TournamentStore
    return TournamentStore(str(tmp_path / "tournament"))


@pytest.fixture
def client(tmp_path):
    """Create a test client backed by a temporary data directory."""
    from app import app
    app.config['TESTING'] = True
    app.config['DATA_DIR'] = str(tmp_path / "tournament")
    with app.test_client() as client:
        yield client
