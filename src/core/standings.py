"""
Standings calculation from completed matches.
"""
from typing import List

from .models import Match, StandingsRow, Team


def compute_standings(teams: List[Team], matches: List[Match]) -> List[StandingsRow]:
    """
    Build one standings row per team from the completed matches.

    A team wins a match when its own score is higher; any other completed
    result counts as a loss. Rows are ranked by wins, then point
    differential, then points for (all descending). Remaining ties keep the
    order of `teams`, so the result is deterministic for a given roster.

    Stats are recomputed on every call and never cached.
    """
    completed = [match for match in matches if match.completed]
    rows = []

    for team in teams:
        row = StandingsRow(team)
        for match in completed:
            if not match.involves(team.id):
                continue
            own, opponent = match.score_for(team.id)
            row.points_for += own
            row.points_against += opponent
            if own > opponent:
                row.wins += 1
            else:
                row.losses += 1
        rows.append(row)

    # sorted() is stable: equal keys keep roster order
    ranked = sorted(rows, key=lambda r: (-r.wins, -r.point_differential, -r.points_for))
    for seed, row in enumerate(ranked, start=1):
        row.seed = seed
    return ranked


def seed_lookup(standings: List[StandingsRow]) -> dict:
    """Map team id to 1-based seed."""
    return {row.team.id: row.seed for row in standings}
