import argparse
import logging
import random
import sys
import yaml
from core.models import Team
from core.pool_play import generate_pool_schedule, find_teams_below_minimum


def load_teams(file_path):
    """
    Load a roster from YAML.

    Accepts either a list of team names or a list of mappings with
    'name' and optional 'players'. Ids follow file order.
    """
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or []
    teams = []
    for index, entry in enumerate(data, start=1):
        if isinstance(entry, dict):
            teams.append(Team(id=index, name=entry['name'], players=entry.get('players', [])))
        else:
            teams.append(Team(id=index, name=str(entry)))
    return teams


def main(argv=None):
    parser = argparse.ArgumentParser(description='Print a pool play schedule for a roster of teams.')
    parser.add_argument('teams_file', help='YAML file listing the teams')
    parser.add_argument('--games-per-team', type=int, default=3, help='minimum games per team (default: 3)')
    parser.add_argument('--seed', type=int, default=None, help='random seed for a reproducible schedule')
    parser.add_argument('--verbose', action='store_true', help='log scheduler details')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s: %(message)s')

    teams = load_teams(args.teams_file)
    if len(teams) < 4:
        print(f"Error: pool play needs at least 4 teams ({len(teams)} found)", file=sys.stderr)
        return 1
    if args.games_per_team < 1:
        print("Error: --games-per-team must be at least 1", file=sys.stderr)
        return 1

    target = min(args.games_per_team, len(teams) - 1)
    pairings = generate_pool_schedule(teams, [], target, rng=random.Random(args.seed))

    print(f"# Pool play: {len(pairings)} games, at least {target} per team")
    for number, pairing in enumerate(pairings, start=1):
        print(f"Game {number}: {pairing.team1.name} vs {pairing.team2.name}")

    for team, games in find_teams_below_minimum(teams, [], pairings, target):
        print(f"WARNING: {team.name} only has {games}/{target} games", file=sys.stderr)
    return 0


if __name__ == '__main__':
    sys.exit(main())
