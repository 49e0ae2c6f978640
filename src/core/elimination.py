"""
Single elimination bracket generation and management.
"""
import logging
import math
from typing import Dict, List, Optional, Tuple

from .models import KNOCKOUT, Match, Pairing, StandingsRow, Team
from .standings import seed_lookup

logger = logging.getLogger(__name__)

UNINITIALIZED = 'uninitialized'
ROUND_ACTIVE = 'round-active'
COMPLETE = 'complete'

DEFAULT_EARLY_ROUND_TARGET = 15
DEFAULT_LATE_ROUND_TARGET = 21


class BracketIntegrityError(ValueError):
    """A structural defect in the bracket; the operation must be aborted."""


class BracketSeeding:
    def __init__(self, bye_teams: List[Team], first_round_pairings: List[Pairing], bracket_size: int):
        self.bye_teams = bye_teams
        self.first_round_pairings = first_round_pairings
        self.bracket_size = bracket_size

    @property
    def total_rounds(self) -> int:
        return calculate_total_rounds(self.bracket_size)


class BracketAdvance:
    def __init__(self, new_pairings: Optional[List[Pairing]] = None, champion: Optional[Team] = None,
                 round: Optional[int] = None):
        self.new_pairings = new_pairings or []
        self.champion = champion
        self.round = round


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    bracket_size = calculate_bracket_size(num_teams)
    return bracket_size - num_teams


def calculate_total_rounds(bracket_size: int) -> int:
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def get_round_name(round_num: int, total_rounds: int) -> str:
    """Get the name of a round based on its distance from the final."""
    rounds_from_end = total_rounds - round_num + 1
    if rounds_from_end == 1:
        return "Championship"
    elif rounds_from_end == 2:
        return "Semifinals"
    elif rounds_from_end == 3:
        return "Quarterfinals"
    else:
        return f"Round {round_num}"


def get_target_score(round_num: int, total_rounds: int, early_target: int = DEFAULT_EARLY_ROUND_TARGET,
                     late_target: int = DEFAULT_LATE_ROUND_TARGET) -> int:
    """Semifinals and the championship play to the late target, earlier rounds to the early one."""
    rounds_from_end = total_rounds - round_num + 1
    return late_target if rounds_from_end <= 2 else early_target


def quick_score(target: int, winner_is_team1: bool, close: bool = False) -> Tuple[int, int]:
    """
    Scores for the quick-entry buttons: a shutout, or a close game lost by
    two points.
    """
    losing = max(target - 2, 0) if close else 0
    return (target, losing) if winner_is_team1 else (losing, target)


def _pair_highest_with_lowest(teams: List[Team]) -> List[Pairing]:
    return [Pairing(teams[i], teams[len(teams) - 1 - i]) for i in range(len(teams) // 2)]


def _validate_pairings(pairings: List[Pairing], bye_teams: List[Team], expected_teams: int, context: str):
    seen: Dict = {}
    for team in bye_teams:
        if team.id in seen:
            raise BracketIntegrityError(f"{context}: {team.name} has more than one bye")
        seen[team.id] = 'bye'

    for pairing in pairings:
        if pairing.team1.id == pairing.team2.id:
            raise BracketIntegrityError(f"{context}: {pairing.team1.name} is scheduled to play itself")
        for team in (pairing.team1, pairing.team2):
            previous = seen.get(team.id)
            if previous == 'bye':
                raise BracketIntegrityError(f"{context}: bye team {team.name} is also scheduled to play")
            if previous:
                raise BracketIntegrityError(f"{context}: {team.name} appears in more than one match")
            seen[team.id] = 'playing'

    placed = len(bye_teams) + 2 * len(pairings)
    if placed != expected_teams:
        raise BracketIntegrityError(
            f"{context}: team count mismatch, {placed}/{expected_teams} teams placed "
            f"({len(bye_teams)} byes, {len(pairings)} matches)"
        )


def build_initial_bracket(standings: List[StandingsRow]) -> BracketSeeding:
    """
    Seed the knockout bracket from ranked standings.

    The top seeds receive byes until the field fits the next power of two.
    The remaining teams are re-indexed among themselves and the highest
    plays the lowest, working inward.

    Raises BracketIntegrityError if the standings snapshot would produce a
    duplicated, missing or self-paired team.
    """
    if len(standings) < 2:
        raise ValueError("A knockout bracket needs at least two teams")

    teams = [row.team for row in standings]
    team_ids = [team.id for team in teams]
    if len(set(team_ids)) != len(team_ids):
        names = sorted({t.name for t in teams if team_ids.count(t.id) > 1})
        raise BracketIntegrityError(f"Duplicate teams in standings: {', '.join(names)}")

    bracket_size = calculate_bracket_size(len(teams))
    num_byes = bracket_size - len(teams)
    bye_teams = teams[:num_byes]
    playing = teams[num_byes:]
    pairings = _pair_highest_with_lowest(playing)

    _validate_pairings(pairings, bye_teams, len(teams), "Round 1")

    logger.info("Seeded %d-team bracket: %d byes, %d first round matches",
                bracket_size, num_byes, len(pairings))
    for pairing in pairings:
        logger.debug("Round 1: %s vs %s", pairing.team1.name, pairing.team2.name)
    return BracketSeeding(bye_teams, pairings, bracket_size)


def group_by_round(knockout_matches: List[Match]) -> Dict[int, List[Match]]:
    """Group knockout matches by round, each round ordered by match id."""
    rounds: Dict[int, List[Match]] = {}
    for match in knockout_matches:
        if match.phase != KNOCKOUT:
            continue
        rounds.setdefault(match.round or 1, []).append(match)
    for matches in rounds.values():
        matches.sort(key=lambda m: m.id)
    return dict(sorted(rounds.items()))


def get_bracket_size(knockout_matches: List[Match], bye_teams: List[Team]) -> int:
    """Bracket size implied by round 1 entrants plus byes."""
    first_round = group_by_round(knockout_matches).get(1, [])
    return calculate_bracket_size(2 * len(first_round) + len(bye_teams))


def _round_winners(matches: List[Match], round_num: int) -> List[Team]:
    winners = []
    for match in matches:
        winner = match.winner()
        if winner is None:
            raise BracketIntegrityError(
                f"Round {round_num}: match #{match.id} {match.team1.name} vs {match.team2.name} "
                f"ended tied {match.team1_score}-{match.team2_score}"
            )
        winners.append(winner)
    return winners


def get_champion(knockout_matches: List[Match], bye_teams: List[Team]) -> Optional[Team]:
    rounds = group_by_round(knockout_matches)
    if not rounds:
        return None
    total_rounds = calculate_total_rounds(get_bracket_size(knockout_matches, bye_teams))
    final_round = max(rounds)
    final_matches = rounds[final_round]
    if final_round != total_rounds or len(final_matches) != 1:
        return None
    return final_matches[0].winner()


def get_bracket_state(knockout_matches: List[Match], bye_teams: List[Team]) -> Tuple[str, Optional[int]]:
    """Return (state, current round) for the knockout phase."""
    rounds = group_by_round(knockout_matches)
    if not rounds:
        return UNINITIALIZED, None
    current = max(rounds)
    if get_champion(knockout_matches, bye_teams) is not None:
        return COMPLETE, current
    return ROUND_ACTIVE, current


def _round_to_advance(rounds: Dict[int, List[Match]], bracket_size: int) -> int:
    """
    The latest round that is fully created.

    A later round with fewer matches than the bracket needs was only partly
    written, so advancement runs again from the round before it and fills in
    the missing pairings.
    """
    current = max(rounds)
    if current > 1 and len(rounds[current]) < bracket_size // 2 ** current:
        logger.warning("Round %d has %d of %d matches, completing it from round %d",
                       current, len(rounds[current]), bracket_size // 2 ** current, current - 1)
        return current - 1
    return current


def advance_bracket(knockout_matches: List[Match], bye_teams: List[Team],
                    standings: List[StandingsRow]) -> BracketAdvance:
    """
    Build the next round once every match in the current round is complete.

    Winners (plus the bye teams after round 1) are re-sorted by their
    original seed and the highest remaining seed plays the lowest. When the
    single final match is complete its winner is returned as champion and
    nothing new is created.

    Safe to call repeatedly: pairings that already exist in the next round
    are dropped, so a second trigger for the same completion creates nothing.
    A next round that was only partly written gets its missing pairings.

    Raises BracketIntegrityError on a tied result, a self pairing, a team
    appearing twice, a team both byed and playing, or a next round match
    that the results do not produce.
    """
    rounds = group_by_round(knockout_matches)
    if not rounds:
        return BracketAdvance()

    bracket_size = get_bracket_size(knockout_matches, bye_teams)
    total_rounds = calculate_total_rounds(bracket_size)
    current = _round_to_advance(rounds, bracket_size)
    current_matches = rounds[current]
    if not all(match.completed for match in current_matches):
        return BracketAdvance(round=current)

    winners = _round_winners(current_matches, current)

    if current == 1:
        played_ids = {t.id for m in current_matches for t in (m.team1, m.team2)}
        for team in bye_teams:
            if team.id in played_ids:
                raise BracketIntegrityError(f"Round 1: bye team {team.name} also played a round 1 match")
        advancing = list(bye_teams) + winners
    else:
        advancing = winners

    if current >= total_rounds and len(current_matches) == 1:
        champion = winners[0]
        logger.info("Champion decided in round %d: %s", current, champion.name)
        return BracketAdvance(champion=champion, round=current)

    if len(advancing) == 1:
        if current < total_rounds:
            raise BracketIntegrityError(
                f"Round {current}: only {advancing[0].name} advanced but the bracket has {total_rounds} rounds"
            )
        logger.info("Only %s remains after round %d", advancing[0].name, current)
        return BracketAdvance(champion=advancing[0], round=current)

    if len(advancing) & (len(advancing) - 1):
        names = ', '.join(t.name for t in advancing)
        raise BracketIntegrityError(
            f"Round {current + 1}: {len(advancing)} advancing teams cannot form a bracket ({names})"
        )

    seeds = seed_lookup(standings)
    missing = [t.name for t in advancing if t.id not in seeds]
    if missing:
        raise BracketIntegrityError(f"Round {current + 1}: no seed for {', '.join(missing)}")
    advancing.sort(key=lambda t: seeds[t.id])

    next_round = current + 1
    pairings = _pair_highest_with_lowest(advancing)
    _validate_pairings(pairings, [], len(advancing), f"Round {next_round}")

    expected = {p.pair_key() for p in pairings}
    for match in rounds.get(next_round, []):
        if match.pair_key() not in expected:
            raise BracketIntegrityError(
                f"Round {next_round}: match #{match.id} {match.team1.name} vs {match.team2.name} "
                f"does not follow from round {current} results"
            )
    existing = {m.pair_key() for m in rounds.get(next_round, [])}
    new_pairings = [p for p in pairings if p.pair_key() not in existing]
    if len(new_pairings) < len(pairings):
        logger.info("Round %d: %d pairings already exist, skipping them",
                    next_round, len(pairings) - len(new_pairings))
    for pairing in new_pairings:
        logger.debug("Round %d: #%d %s vs #%d %s", next_round, seeds[pairing.team1.id], pairing.team1.name,
                     seeds[pairing.team2.id], pairing.team2.name)
    return BracketAdvance(new_pairings=new_pairings, round=next_round)
