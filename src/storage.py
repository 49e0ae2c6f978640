"""
YAML-file persistence for a single tournament.

Each tournament lives in one data directory holding teams.yaml,
matches.yaml and settings.yaml. Read-modify-write cycles are serialised
with a FileLock so two admins saving at once cannot interleave writes.
"""
import os
from typing import List, Optional

import yaml
from filelock import FileLock

from core.models import KNOCKOUT, Match, Team

LOCK_TIMEOUT_SECONDS = 10


def get_default_settings():
    """Default tournament settings."""
    return {
        'phase': 'registration',
        'games_per_team': 3,
        'early_round_target': 15,
        'late_round_target': 21,
        'bye_team_ids': [],
    }


class TournamentStore:
    def __init__(self, data_dir):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self.lock = FileLock(os.path.join(data_dir, '.lock'), timeout=LOCK_TIMEOUT_SECONDS)

    def _file_path(self, filename):
        return os.path.join(self.data_dir, filename)

    def _load_yaml(self, filename, default):
        path = self._file_path(filename)
        if not os.path.exists(path):
            return default
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return data if data else default

    def _save_yaml(self, filename, data):
        with open(self._file_path(filename), 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    # Teams

    def load_teams(self) -> List[Team]:
        """Load teams in registration order."""
        return [Team.from_dict(t) for t in self._load_yaml('teams.yaml', [])]

    def save_teams(self, teams: List[Team]):
        self._save_yaml('teams.yaml', [t.to_dict() for t in teams])

    def add_team(self, name: str, players: List[str], paid: bool = False) -> Team:
        with self.lock:
            teams = self.load_teams()
            next_id = max((t.id for t in teams), default=0) + 1
            team = Team(id=next_id, name=name, players=players, paid=paid)
            teams.append(team)
            self.save_teams(teams)
        return team

    def set_paid(self, team_id, paid: bool) -> Optional[Team]:
        with self.lock:
            teams = self.load_teams()
            team = next((t for t in teams if t.id == team_id), None)
            if team is None:
                return None
            team.paid = paid
            self.save_teams(teams)
        return team

    def update_team(self, team_id, name: Optional[str] = None, players: Optional[List[str]] = None,
                    paid: Optional[bool] = None) -> Optional[Team]:
        """Change a team's name, players or paid flag; fields left as None are kept."""
        with self.lock:
            teams = self.load_teams()
            team = next((t for t in teams if t.id == team_id), None)
            if team is None:
                return None
            if name is not None:
                team.name = name
            if players is not None:
                team.players = list(players)
            if paid is not None:
                team.paid = paid
            self.save_teams(teams)
        return team

    def delete_team(self, team_id) -> bool:
        """Remove a team and any match it appears in."""
        with self.lock:
            teams = self.load_teams()
            remaining = [t for t in teams if t.id != team_id]
            if len(remaining) == len(teams):
                return False
            matches = self.load_matches()
            kept = [m for m in matches if not m.involves(team_id)]
            if len(kept) < len(matches):
                self.save_matches(kept)
            self.save_teams(remaining)
        return True

    # Matches

    def load_matches(self, phase: Optional[str] = None, round: Optional[int] = None) -> List[Match]:
        """Load matches in creation order, optionally filtered by phase and round."""
        teams_by_id = {t.id: t for t in self.load_teams()}
        matches = [Match.from_dict(m, teams_by_id) for m in self._load_yaml('matches.yaml', [])]
        if phase is not None:
            matches = [m for m in matches if m.phase == phase]
        if round is not None:
            matches = [m for m in matches if m.round == round]
        return sorted(matches, key=lambda m: m.id)

    def save_matches(self, matches: List[Match]):
        self._save_yaml('matches.yaml', [m.to_dict() for m in matches])

    def create_matches(self, pairings, phase: str, round: Optional[int] = None) -> List[Match]:
        """
        Persist pairings as new 0-0 matches with increasing ids.

        A pairing whose two teams already meet in the same phase and round
        is skipped, so re-running an advancement writes nothing new. Call
        while holding self.lock when the pairings were computed from a
        snapshot that must not change underneath.
        """
        with self.lock:
            matches = self.load_matches()
            existing = {m.pair_key() for m in matches if m.phase == phase and m.round == round}
            next_id = max((m.id for m in matches), default=0) + 1
            created = []
            for pairing in pairings:
                if pairing.pair_key() in existing:
                    continue
                match = Match(id=next_id, team1=pairing.team1, team2=pairing.team2, phase=phase, round=round)
                existing.add(match.pair_key())
                created.append(match)
                next_id += 1
            if created:
                self.save_matches(matches + created)
        return created

    def update_match(self, match_id, team1_score: int, team2_score: int, completed: bool) -> Optional[Match]:
        with self.lock:
            matches = self.load_matches()
            match = next((m for m in matches if m.id == match_id), None)
            if match is None:
                return None
            match.team1_score = team1_score
            match.team2_score = team2_score
            match.completed = completed
            self.save_matches(matches)
        return match

    def reset_scores(self, phase: Optional[str] = None):
        """
        Put matches back to 0-0 and incomplete, keeping teams and settings.

        Resetting knockout scores also removes every round after the first,
        since those pairings came from results that no longer exist.
        Returns (matches reset, matches removed).
        """
        with self.lock:
            matches = self.load_matches()
            if phase in (None, KNOCKOUT):
                kept = [m for m in matches if not (m.phase == KNOCKOUT and (m.round or 1) > 1)]
            else:
                kept = matches
            reset = 0
            for match in kept:
                if phase is not None and match.phase != phase:
                    continue
                match.team1_score = 0
                match.team2_score = 0
                match.completed = False
                reset += 1
            self.save_matches(kept)
        return reset, len(matches) - len(kept)

    # Settings

    def load_settings(self) -> dict:
        """Load settings, merging with defaults to ensure all keys exist."""
        data = self._load_yaml('settings.yaml', {})
        return {**get_default_settings(), **data}

    def save_settings(self, settings: dict):
        with self.lock:
            self._save_yaml('settings.yaml', settings)

    def update_settings(self, **changes) -> dict:
        with self.lock:
            settings = self.load_settings()
            settings.update(changes)
            self.save_settings(settings)
        return settings

    def load_bye_teams(self) -> List[Team]:
        teams_by_id = {t.id: t for t in self.load_teams()}
        return [teams_by_id[i] for i in self.load_settings()['bye_team_ids'] if i in teams_by_id]

    def reset(self):
        """Delete teams, matches and settings; cascades to everything."""
        with self.lock:
            for filename in ('teams.yaml', 'matches.yaml', 'settings.yaml'):
                path = self._file_path(filename)
                if os.path.exists(path):
                    os.remove(path)
