"""
Tests for the Flask JSON API.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from app import determine_tournament_phase
from storage import TournamentStore, get_default_settings


def register_teams(client, count):
    for i in range(1, count + 1):
        response = client.post('/api/teams', json={'name': f'Team {i}', 'players': [f'P{i}a', f'P{i}b']})
        assert response.status_code == 201


def score(client, match_id, team1_score, team2_score, completed=True):
    return client.post(f'/api/results/{match_id}', json={
        'team1_score': team1_score, 'team2_score': team2_score, 'completed': completed,
    })


def play_pool_in_seed_order(client):
    """Complete every pool match so that lower team ids always win."""
    for match in client.get('/api/matches?phase=pool-play').get_json()['matches']:
        if match['team1'] < match['team2']:
            score(client, match['id'], 21, 10)
        else:
            score(client, match['id'], 10, 21)


def finish_current_round(client, higher_seed_wins=True):
    bracket = client.get('/api/bracket').get_json()
    current = bracket['rounds'][-1]
    last = None
    for match in current['matches']:
        team1_seed, team2_seed = match['seeds']
        team1_wins = (team1_seed < team2_seed) == higher_seed_wins
        last = score(client, match['id'], 21 if team1_wins else 15, 15 if team1_wins else 21)
    return last.get_json()


class TestTeams:

    def test_register_and_list(self, client):
        register_teams(client, 2)
        teams = client.get('/api/teams').get_json()['teams']
        assert [t['name'] for t in teams] == ['Team 1', 'Team 2']
        assert teams[0]['players'] == ['P1a', 'P1b']

    def test_register_requires_two_players(self, client):
        response = client.post('/api/teams', json={'name': 'Solo', 'players': ['Only']})
        assert response.status_code == 400

    def test_register_requires_name(self, client):
        response = client.post('/api/teams', json={'name': '  ', 'players': ['A', 'B']})
        assert response.status_code == 400

    def test_duplicate_name_rejected(self, client):
        register_teams(client, 1)
        response = client.post('/api/teams', json={'name': 'team 1', 'players': ['A', 'B']})
        assert response.status_code == 400

    def test_toggle_paid_and_unpaid_list(self, client):
        register_teams(client, 2)
        response = client.post('/api/toggle-paid', json={'team_id': 1})
        assert response.get_json()['team']['paid'] is True
        unpaid = client.get('/api/unpaid-teams').get_json()
        assert unpaid['count'] == 1
        assert unpaid['teams'][0]['name'] == 'Team 2'

    def test_toggle_paid_unknown_team(self, client):
        assert client.post('/api/toggle-paid', json={'team_id': 5}).status_code == 404


class TestTeamEdits:

    def test_rename_keeps_players(self, client):
        register_teams(client, 2)
        response = client.put('/api/teams/1', json={'name': 'Aces'})
        assert response.status_code == 200
        team = response.get_json()['team']
        assert (team['name'], team['players']) == ('Aces', ['P1a', 'P1b'])

    def test_change_case_of_own_name(self, client):
        register_teams(client, 1)
        assert client.put('/api/teams/1', json={'name': 'TEAM 1'}).status_code == 200

    def test_rename_to_taken_name_rejected(self, client):
        register_teams(client, 2)
        assert client.put('/api/teams/1', json={'name': 'team 2'}).status_code == 400

    def test_edit_requires_two_players(self, client):
        register_teams(client, 1)
        assert client.put('/api/teams/1', json={'players': ['Solo']}).status_code == 400

    def test_delete_team(self, client):
        register_teams(client, 3)
        assert client.delete('/api/teams/2').status_code == 200
        names = [t['name'] for t in client.get('/api/teams').get_json()['teams']]
        assert names == ['Team 1', 'Team 3']

    def test_unknown_team(self, client):
        assert client.put('/api/teams/4', json={'name': 'X'}).status_code == 404
        assert client.delete('/api/teams/4').status_code == 404

    def test_locked_once_matches_exist(self, client):
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 1})
        assert client.put('/api/teams/1', json={'name': 'Aces'}).status_code == 400
        assert client.delete('/api/teams/1').status_code == 400
        assert len(client.get('/api/teams').get_json()['teams']) == 4


class TestPoolPlay:

    def test_needs_four_teams(self, client):
        register_teams(client, 3)
        response = client.post('/api/pool-play/generate', json={'games_per_team': 2})
        assert response.status_code == 400

    def test_generate_schedule(self, client):
        register_teams(client, 6)
        response = client.post('/api/pool-play/generate', json={'games_per_team': 3})
        data = response.get_json()
        assert response.status_code == 200
        assert data['warnings'] == []
        assert len(data['created']) >= 9
        assert all(m['phase'] == 'pool-play' and not m['completed'] for m in data['created'])
        assert all('round' not in m for m in data['created'])

        pairs = [frozenset((m['team1'], m['team2'])) for m in data['created']]
        assert len(pairs) == len(set(pairs))

    def test_target_capped_and_full_round_robin(self, client):
        register_teams(client, 5)
        data = client.post('/api/pool-play/generate', json={'games_per_team': 9}).get_json()
        assert data['games_per_team'] == 4
        assert len(data['created']) == 10

    def test_regenerate_adds_nothing_when_satisfied(self, client):
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 2})
        data = client.post('/api/pool-play/generate', json={'games_per_team': 2}).get_json()
        assert data['created'] == []

    def test_invalid_games_per_team(self, client):
        register_teams(client, 4)
        assert client.post('/api/pool-play/generate', json={'games_per_team': 0}).status_code == 400
        assert client.post('/api/pool-play/generate', json={'games_per_team': 'x'}).status_code == 400

    def test_default_games_per_team_from_settings(self, client):
        register_teams(client, 6)
        data = client.post('/api/pool-play/generate', json={}).get_json()
        assert data['games_per_team'] == get_default_settings()['games_per_team']

    def test_registration_closed_after_schedule(self, client):
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 1})
        response = client.post('/api/teams', json={'name': 'Late', 'players': ['A', 'B']})
        assert response.status_code == 400


class TestScoreEntry:

    def setup_teams(self, client):
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 3})

    def test_score_updates_standings(self, client):
        self.setup_teams(client)
        match = client.get('/api/matches?phase=pool-play').get_json()['matches'][0]
        response = score(client, match['id'], 21, 12)
        assert response.status_code == 200
        standings = client.get('/api/standings').get_json()['standings']
        leader = standings[0]
        assert leader['team']['id'] == match['team1']
        assert leader['wins'] == 1
        assert leader['point_differential'] == 9

    def test_negative_score_rejected(self, client):
        self.setup_teams(client)
        assert score(client, 1, -1, 21).status_code == 400

    def test_non_integer_score_rejected(self, client):
        self.setup_teams(client)
        assert score(client, 1, 'abc', 21).status_code == 400
        assert score(client, 1, 10.5, 21).status_code == 400

    def test_completed_tie_rejected(self, client):
        self.setup_teams(client)
        assert score(client, 1, 15, 15).status_code == 400

    def test_in_progress_tie_allowed(self, client):
        self.setup_teams(client)
        assert score(client, 1, 7, 7, completed=False).status_code == 200

    def test_reset_pool_scores(self, client):
        self.setup_teams(client)
        play_pool_in_seed_order(client)
        data = client.post('/api/results/reset', json={'phase': 'pool-play'}).get_json()
        assert data['reset'] == 6
        standings = client.get('/api/standings').get_json()['standings']
        assert all(row['wins'] == 0 and row['losses'] == 0 for row in standings)
        assert len(client.get('/api/teams').get_json()['teams']) == 4

    def test_reset_unknown_phase(self, client):
        self.setup_teams(client)
        assert client.post('/api/results/reset', json={'phase': 'finals'}).status_code == 400

    def test_unknown_match(self, client):
        self.setup_teams(client)
        assert score(client, 999, 21, 3).status_code == 404

    def test_query_matches(self, client):
        self.setup_teams(client)
        assert client.get('/api/matches?phase=bogus').status_code == 400
        assert client.get('/api/matches?phase=knockout').get_json()['matches'] == []


class TestKnockout:

    def start_bracket(self, client, num_teams=6):
        register_teams(client, num_teams)
        client.post('/api/pool-play/generate', json={'games_per_team': num_teams - 1})
        play_pool_in_seed_order(client)
        return client.post('/api/knockout/generate')

    def test_requires_completed_pool_play(self, client):
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 2})
        assert client.post('/api/knockout/generate').status_code == 400

    def test_generate_six_team_bracket(self, client):
        response = self.start_bracket(client)
        data = response.get_json()
        assert response.status_code == 200
        assert data['bracket_size'] == 8
        assert [t['name'] for t in data['bye_teams']] == ['Team 1', 'Team 2']
        assert [(m['team1'], m['team2']) for m in data['created']] == [(3, 6), (4, 5)]
        assert all(m['round'] == 1 for m in data['created'])

    def test_generate_twice_conflicts(self, client):
        self.start_bracket(client)
        assert client.post('/api/knockout/generate').status_code == 409

    def test_pool_play_locked_once_knockout_starts(self, client):
        self.start_bracket(client)
        assert client.post('/api/pool-play/generate', json={'games_per_team': 5}).status_code == 400

    def test_completing_round_advances_bracket(self, client):
        self.start_bracket(client)
        result = finish_current_round(client)
        assert result['advance']['round'] == 2
        created = [(m['team1'], m['team2']) for m in result['advance']['created']]
        assert created == [(1, 4), (2, 3)]

        bracket = client.get('/api/bracket').get_json()
        assert bracket['state'] == 'round-active'
        assert bracket['current_round'] == 2
        assert [r['name'] for r in bracket['rounds']] == ['Quarterfinals', 'Semifinals']
        assert [r['target_score'] for r in bracket['rounds']] == [15, 21]

    def test_manual_advance_is_idempotent(self, client):
        self.start_bracket(client)
        finish_current_round(client)
        again = client.post('/api/knockout/advance').get_json()
        assert again['created'] == []
        assert len(client.get('/api/matches?phase=knockout&round=2').get_json()['matches']) == 2

    def test_play_through_to_champion(self, client):
        self.start_bracket(client)
        result = None
        for _ in range(3):
            result = finish_current_round(client)
        assert result['advance']['champion']['name'] == 'Team 1'

        bracket = client.get('/api/bracket').get_json()
        assert bracket['state'] == 'complete'
        assert bracket['phase'] == 'complete'
        assert bracket['champion']['name'] == 'Team 1'
        assert bracket['rounds'][-1]['name'] == 'Championship'

        again = client.post('/api/knockout/advance').get_json()
        assert again['created'] == []
        assert again['champion']['name'] == 'Team 1'

    def test_quick_score_uses_round_target(self, client):
        self.start_bracket(client)
        match = client.get('/api/matches?phase=knockout&round=1').get_json()['matches'][0]
        response = client.post(f"/api/results/{match['id']}/quick", json={'winner': 2, 'close': True})
        data = response.get_json()
        assert (data['match']['team1_score'], data['match']['team2_score']) == (13, 15)
        assert data['match']['completed'] is True

    def test_quick_score_requires_winner(self, client):
        self.start_bracket(client)
        assert client.post('/api/results/1/quick', json={'winner': 3}).status_code == 400

    def test_closed_round_cannot_be_rescored(self, client):
        """Once round 2 is drawn, a round 1 result can no longer change."""
        self.start_bracket(client)
        finish_current_round(client)
        match = client.get('/api/matches?phase=knockout&round=1').get_json()['matches'][0]
        response = score(client, match['id'], 0, 21)
        assert response.status_code == 409
        assert 'Round 1' in response.get_json()['error']
        unchanged = client.get('/api/matches?phase=knockout&round=1').get_json()['matches'][0]
        assert (unchanged['team1_score'], unchanged['team2_score']) == (match['team1_score'], match['team2_score'])

    def test_current_round_can_be_corrected(self, client):
        self.start_bracket(client)
        match = client.get('/api/matches?phase=knockout&round=1').get_json()['matches'][0]
        score(client, match['id'], 21, 15)
        assert score(client, match['id'], 15, 21).status_code == 200

    def test_reset_knockout_scores_back_to_round_one(self, client):
        self.start_bracket(client)
        finish_current_round(client)
        data = client.post('/api/results/reset', json={'phase': 'knockout'}).get_json()
        assert (data['reset'], data['removed']) == (2, 2)
        bracket = client.get('/api/bracket').get_json()
        assert bracket['current_round'] == 1
        assert not any(m['completed'] for m in bracket['rounds'][0]['matches'])

    def test_pool_scores_locked_during_knockout(self, client):
        self.start_bracket(client)
        assert client.post('/api/results/reset', json={}).status_code == 400
        assert client.post('/api/results/reset', json={'phase': 'pool-play'}).status_code == 400

    def test_integrity_violation_reported(self, client):
        """A bye team that also played round 1 is reported, not repaired."""
        self.start_bracket(client)
        store = TournamentStore(client.application.config['DATA_DIR'])
        store.update_settings(bye_team_ids=[1, 3])
        finish_current_round(client)
        response = client.post('/api/knockout/advance')
        assert response.status_code == 409
        assert 'Team 3' in response.get_json()['error']
        assert store.load_matches(phase='knockout', round=2) == []


class TestPhaseAndReset:

    def test_determine_phase(self):
        assert determine_tournament_phase(get_default_settings(), [], []) == 'registration'
        assert determine_tournament_phase({'phase': 'pool-play'}, [], []) == 'pool-play'

    def test_phase_follows_actions(self, client):
        assert client.get('/api/bracket').get_json()['phase'] == 'registration'
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 3})
        assert client.get('/api/bracket').get_json()['phase'] == 'pool-play'
        play_pool_in_seed_order(client)
        client.post('/api/knockout/generate')
        bracket = client.get('/api/bracket').get_json()
        assert bracket['phase'] == 'knockout'
        assert bracket['state'] == 'round-active'

    def test_reset(self, client):
        register_teams(client, 4)
        client.post('/api/pool-play/generate', json={'games_per_team': 2})
        assert client.post('/api/reset').get_json()['success'] is True
        assert client.get('/api/teams').get_json()['teams'] == []
        assert client.get('/api/matches').get_json()['matches'] == []
        assert client.get('/api/bracket').get_json()['state'] == 'uninitialized'
