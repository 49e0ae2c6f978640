POOL_PLAY = 'pool-play'
KNOCKOUT = 'knockout'
PHASES = (POOL_PLAY, KNOCKOUT)


class Team:
    def __init__(self, id, name, players=None, paid=False):
        self.id = id
        self.name = name
        self.players = list(players) if players else []
        self.paid = paid

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'players': list(self.players), 'paid': self.paid}

    @classmethod
    def from_dict(cls, data):
        return cls(id=data['id'], name=data['name'], players=data.get('players', []), paid=data.get('paid', False))

    def __eq__(self, other):
        return isinstance(other, Team) and self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name})"


class Pairing:
    """Two teams the engine wants to play each other; not yet persisted."""

    def __init__(self, team1, team2):
        self.team1 = team1
        self.team2 = team2

    def pair_key(self):
        return frozenset((self.team1.id, self.team2.id))

    def __eq__(self, other):
        return isinstance(other, Pairing) and self.team1 == other.team1 and self.team2 == other.team2

    def __repr__(self):
        return f"Pairing({self.team1.name} vs {self.team2.name})"


class Match:
    def __init__(self, id, team1, team2, team1_score=0, team2_score=0, completed=False,
                 phase=POOL_PLAY, round=None):
        if phase not in PHASES:
            raise ValueError(f"Unknown match phase: {phase}")
        self.id = id
        self.team1 = team1
        self.team2 = team2
        self.team1_score = team1_score
        self.team2_score = team2_score
        self.completed = completed
        self.phase = phase
        self.round = round

    def involves(self, team_id):
        return team_id in (self.team1.id, self.team2.id)

    def score_for(self, team_id):
        """Return (own_score, opponent_score) from the given team's side."""
        if team_id == self.team1.id:
            return self.team1_score, self.team2_score
        return self.team2_score, self.team1_score

    def winner(self):
        """Higher score wins; None while incomplete or tied."""
        if not self.completed or self.team1_score == self.team2_score:
            return None
        return self.team1 if self.team1_score > self.team2_score else self.team2

    def loser(self):
        winner = self.winner()
        if winner is None:
            return None
        return self.team2 if winner == self.team1 else self.team1

    def pair_key(self):
        return frozenset((self.team1.id, self.team2.id))

    def to_dict(self):
        data = {
            'id': self.id,
            'team1': self.team1.id,
            'team2': self.team2.id,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
            'completed': self.completed,
            'phase': self.phase,
        }
        if self.round is not None:
            data['round'] = self.round
        return data

    @classmethod
    def from_dict(cls, data, teams_by_id):
        return cls(
            id=data['id'],
            team1=teams_by_id[data['team1']],
            team2=teams_by_id[data['team2']],
            team1_score=data.get('team1_score', 0),
            team2_score=data.get('team2_score', 0),
            completed=data.get('completed', False),
            phase=data.get('phase', POOL_PLAY),
            round=data.get('round'),
        )

    def __repr__(self):
        return (f"Match(id={self.id}, {self.team1.name} {self.team1_score}-{self.team2_score} "
                f"{self.team2.name}, phase={self.phase}, round={self.round}, completed={self.completed})")


class StandingsRow:
    def __init__(self, team, seed=0, wins=0, losses=0, points_for=0, points_against=0):
        self.team = team
        self.seed = seed
        self.wins = wins
        self.losses = losses
        self.points_for = points_for
        self.points_against = points_against

    @property
    def games_played(self):
        return self.wins + self.losses

    @property
    def point_differential(self):
        return self.points_for - self.points_against

    @property
    def win_percentage(self):
        if self.games_played == 0:
            return 0.0
        return self.wins / self.games_played

    def to_dict(self):
        return {
            'seed': self.seed,
            'team': self.team.to_dict(),
            'wins': self.wins,
            'losses': self.losses,
            'points_for': self.points_for,
            'points_against': self.points_against,
            'point_differential': self.point_differential,
            'win_percentage': round(self.win_percentage, 3),
            'games_played': self.games_played,
        }

    def __repr__(self):
        return (f"StandingsRow(#{self.seed} {self.team.name}, {self.wins}W-{self.losses}L, "
                f"{self.point_differential:+d})")
