"""
Pool play schedule generation.

Builds the pairings needed for every team to reach a minimum number of
games against distinct opponents, then orders them so teams rest between
games wherever the remaining pairings allow it.
"""
import logging
import random
from typing import Dict, List, Optional, Set, Tuple

from .models import POOL_PLAY, Match, Pairing, Team

logger = logging.getLogger(__name__)

MAX_COMPLETION_PASSES = 50

BACK_TO_BACK_PENALTY = 100
RESTED_TWO_BONUS = 50
RESTED_THREE_BONUS = 100


def _count_games(teams: List[Team], matches: List[Match]) -> Dict:
    games = {team.id: 0 for team in teams}
    for match in matches:
        for team_id in (match.team1.id, match.team2.id):
            if team_id in games:
                games[team_id] += 1
    return games


def generate_pool_schedule(teams: List[Team], existing_matches: List[Match], min_games_per_team: int,
                           rng: Optional[random.Random] = None) -> List[Pairing]:
    """
    Generate new pool play pairings so every team plays at least
    `min_games_per_team` distinct opponents.

    Existing pool play matches count toward each team's total and are never
    repeated (in either side order). Teams may end above the minimum when an
    odd leftover has to be paired with a team that is already satisfied.

    This is a best-effort heuristic: a team that has already played everyone
    is logged and left short rather than raising. Callers should check the
    result with find_teams_below_minimum().

    Returns pairings in schedule order.
    """
    rng = rng or random.Random()
    if len(teams) < 2:
        return []
    target = min(min_games_per_team, len(teams) - 1)

    existing = [m for m in existing_matches if m.phase == POOL_PLAY]
    games = _count_games(teams, existing)
    played: Set[frozenset] = {m.pair_key() for m in existing}

    logger.info("Generating pool play schedule: %d games per team for %d teams", target, len(teams))
    logger.debug("Current games per team: %s", {t.name: games[t.id] for t in teams})

    pairings: List[Pairing] = []

    def add(team1, team2):
        pairings.append(Pairing(team1, team2))
        played.add(frozenset((team1.id, team2.id)))
        games[team1.id] += 1
        games[team2.id] += 1

    # Phase 1: pair teams that both still need games
    shuffled = list(teams)
    rng.shuffle(shuffled)
    while True:
        needing = [t for t in shuffled if games[t.id] < target]
        found = _first_unplayed_pair(needing, played)
        if found is None:
            break
        add(*found)
    logger.debug("Phase 1 created %d pairings", len(pairings))

    # Phase 2: top up anyone still short, against any unplayed opponent
    for attempt in range(1, MAX_COMPLETION_PASSES + 1):
        needing = [t for t in teams if games[t.id] < target]
        if not needing:
            break
        rng.shuffle(needing)
        progress = False
        for team in needing:
            still_needed = target - games[team.id]
            if still_needed <= 0:
                continue
            opponents = [
                o for o in teams
                if o.id != team.id and frozenset((team.id, o.id)) not in played
            ]
            if not opponents:
                logger.warning("No available opponents for %s (%d/%d games): already played everyone",
                               team.name, games[team.id], target)
                continue
            opponents.sort(key=lambda o: games[o.id])
            for opponent in opponents[:still_needed]:
                add(team, opponent)
                progress = True
        if not progress:
            break
    else:
        logger.warning("Completion pass limit reached; some teams may have fewer than %d games", target)

    ordered = order_pairings(pairings)
    logger.info("Generated %d pool play pairings", len(ordered))
    return ordered


def _first_unplayed_pair(candidates: List[Team], played: Set[frozenset]) -> Optional[Tuple[Team, Team]]:
    for i in range(len(candidates) - 1):
        for j in range(i + 1, len(candidates)):
            if frozenset((candidates[i].id, candidates[j].id)) not in played:
                return candidates[i], candidates[j]
    return None


def _pairing_score(pairing: Pairing, round_num: int, last_played: Dict) -> int:
    score = 0
    for team in (pairing.team1, pairing.team2):
        last = last_played.get(team.id, 0)
        rest = round_num - last
        score += rest
        if last == round_num - 1:
            score -= BACK_TO_BACK_PENALTY
        if rest >= 2:
            score += RESTED_TWO_BONUS
        if rest >= 3:
            score += RESTED_THREE_BONUS
    return score


def order_pairings(pairings: List[Pairing]) -> List[Pairing]:
    """
    Order pairings one per round so teams avoid back-to-back games.

    Every team starts as if it last played in round 0. For each round the
    remaining pairing with the best rest score is taken; ties go to the
    earliest pairing in the input.
    """
    remaining = list(pairings)
    last_played: Dict = {}
    ordered = []
    round_num = 1

    while remaining:
        best_index = 0
        best_score = None
        for index, pairing in enumerate(remaining):
            score = _pairing_score(pairing, round_num, last_played)
            if best_score is None or score > best_score:
                best_score = score
                best_index = index

        chosen = remaining.pop(best_index)
        for team in (chosen.team1, chosen.team2):
            if round_num > 1 and last_played.get(team.id) == round_num - 1:
                logger.debug("Game %d: %s playing back-to-back", round_num, team.name)
            last_played[team.id] = round_num
        ordered.append(chosen)
        round_num += 1

    return ordered


def find_teams_below_minimum(teams: List[Team], matches: List[Match], pairings: List[Pairing],
                             min_games_per_team: int) -> List[Tuple[Team, int]]:
    """
    Return (team, games) for every team whose existing pool play matches
    plus the new pairings fall short of the minimum.
    """
    target = min(min_games_per_team, max(len(teams) - 1, 0))
    games = _count_games(teams, [m for m in matches if m.phase == POOL_PLAY])
    for pairing in pairings:
        for team_id in (pairing.team1.id, pairing.team2.id):
            if team_id in games:
                games[team_id] += 1
    return [(team, games[team.id]) for team in teams if games[team.id] < target]
