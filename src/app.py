"""
Flask web application for the tournament engine.

Thin JSON layer over the YAML store: it validates input at the boundary,
runs the pure scheduling and bracket functions in core/ and persists what
they produce.
"""
import os
import logging
from filelock import Timeout
from flask import Flask, request, jsonify, abort
from core.models import POOL_PLAY, KNOCKOUT
from core.standings import compute_standings
from core.pool_play import generate_pool_schedule, find_teams_below_minimum
from core.elimination import (
    BracketIntegrityError,
    build_initial_bracket,
    advance_bracket,
    group_by_round,
    get_bracket_size,
    calculate_total_rounds,
    get_round_name,
    get_target_score,
    get_champion,
    get_bracket_state,
    quick_score,
)
from storage import TournamentStore

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))
app.config['DATA_DIR'] = DATA_DIR

MIN_POOL_PLAY_TEAMS = 4
PLAYERS_PER_TEAM = 2


def get_store() -> TournamentStore:
    return TournamentStore(app.config['DATA_DIR'])


@app.errorhandler(BracketIntegrityError)
def handle_bracket_integrity_error(e):
    app.logger.error(f'Bracket integrity violation: {e}')
    return jsonify({'error': str(e), 'kind': 'integrity'}), 409


@app.errorhandler(Timeout)
def handle_lock_timeout(e):
    app.logger.warning(f'Data lock timeout: {e}')
    return jsonify({'error': 'Tournament data is busy, try again'}), 503


def _parse_score(value):
    """Return a non-negative int score or None if invalid."""
    if isinstance(value, bool):
        return None
    try:
        score = int(value)
    except (TypeError, ValueError):
        return None
    if score < 0 or str(score) != str(value).strip():
        return None
    return score


def _pool_standings(store):
    return compute_standings(store.load_teams(), store.load_matches(phase=POOL_PLAY))


def determine_tournament_phase(settings, knockout_matches, bye_teams):
    """Return one of: 'registration', 'pool-play', 'knockout', 'complete'."""
    if knockout_matches and get_champion(knockout_matches, bye_teams) is not None:
        return 'complete'
    return settings.get('phase', 'registration')


def _advance(store):
    """Run bracket advancement and persist the next round, holding the data lock."""
    with store.lock:
        knockout = store.load_matches(phase=KNOCKOUT)
        bye_teams = store.load_bye_teams()
        standings = _pool_standings(store)
        result = advance_bracket(knockout, bye_teams, standings)
        created = []
        if result.new_pairings:
            created = store.create_matches(result.new_pairings, phase=KNOCKOUT, round=result.round)
            app.logger.info(f'Created {len(created)} round {result.round} matches')
    return {
        'round': result.round,
        'created': [m.to_dict() for m in created],
        'champion': result.champion.to_dict() if result.champion else None,
    }


def _clean_players(players):
    return [str(p).strip() for p in players if str(p).strip()]


def _team_error(store, name, players, team_id=None):
    """Return why a team's name or players are invalid, or None."""
    if not name:
        return 'Team name is required'
    if len(players) != PLAYERS_PER_TEAM:
        return f'A team needs exactly {PLAYERS_PER_TEAM} players'
    if any(t.name.lower() == name.lower() and t.id != team_id for t in store.load_teams()):
        return f'Team "{name}" already exists'
    return None


@app.route('/api/teams', methods=['GET', 'POST'])
def api_teams():
    """List teams, or register a new one."""
    store = get_store()
    if request.method == 'GET':
        return jsonify({'teams': [t.to_dict() for t in store.load_teams()]})

    data = request.get_json(silent=True) or {}
    name = str(data.get('name', '')).strip()
    players = _clean_players(data.get('players', []))

    error = _team_error(store, name, players)
    if error:
        return jsonify({'error': error}), 400
    if store.load_matches():
        return jsonify({'error': 'Registration is closed once matches exist'}), 400

    team = store.add_team(name, players, paid=bool(data.get('paid', False)))
    app.logger.info(f'Registered team {team.name} ({", ".join(team.players)})')
    return jsonify({'success': True, 'team': team.to_dict()}), 201


@app.route('/api/teams/<int:team_id>', methods=['PUT', 'DELETE'])
def api_edit_team(team_id):
    """Edit or delete a team while no matches exist."""
    store = get_store()
    team = next((t for t in store.load_teams() if t.id == team_id), None)
    if team is None:
        return jsonify({'error': 'Team not found'}), 404
    if store.load_matches():
        return jsonify({'error': 'Teams cannot be changed once matches exist'}), 400

    if request.method == 'DELETE':
        store.delete_team(team_id)
        app.logger.info(f'Deleted team {team.name}')
        return jsonify({'success': True})

    data = request.get_json(silent=True) or {}
    name = team.name if data.get('name') is None else str(data['name']).strip()
    players = _clean_players(team.players if data.get('players') is None else data['players'])
    error = _team_error(store, name, players, team_id=team_id)
    if error:
        return jsonify({'error': error}), 400

    paid = data.get('paid')
    team = store.update_team(team_id, name=name, players=players,
                             paid=bool(paid) if paid is not None else None)
    app.logger.info(f'Updated team {team.name} ({", ".join(team.players)})')
    return jsonify({'success': True, 'team': team.to_dict()})


@app.route('/api/toggle-paid', methods=['POST'])
def api_toggle_paid():
    """Flip a team's paid flag."""
    data = request.get_json(silent=True) or {}
    store = get_store()
    team = next((t for t in store.load_teams() if t.id == data.get('team_id')), None)
    if team is None:
        return jsonify({'error': 'Team not found'}), 404
    team = store.set_paid(team.id, not team.paid)
    return jsonify({'success': True, 'team': team.to_dict()})


@app.route('/api/unpaid-teams', methods=['GET'])
def api_unpaid_teams():
    """Return teams that have not paid yet."""
    teams = [t.to_dict() for t in get_store().load_teams() if not t.paid]
    return jsonify({'teams': teams, 'count': len(teams)})


@app.route('/api/matches', methods=['GET'])
def api_matches():
    """Query matches by phase and round."""
    phase = request.args.get('phase')
    round_num = request.args.get('round', type=int)
    if phase is not None and phase not in (POOL_PLAY, KNOCKOUT):
        return jsonify({'error': f'Unknown phase: {phase}'}), 400
    matches = get_store().load_matches(phase=phase, round=round_num)
    return jsonify({'matches': [m.to_dict() for m in matches]})


@app.route('/api/standings', methods=['GET'])
def api_standings():
    """Pool play standings, recomputed from completed matches."""
    standings = _pool_standings(get_store())
    return jsonify({'standings': [row.to_dict() for row in standings]})


@app.route('/api/pool-play/generate', methods=['POST'])
def api_generate_pool_play():
    """Generate and persist pool play matches until every team has its minimum."""
    store = get_store()
    data = request.get_json(silent=True) or {}
    settings = store.load_settings()

    teams = store.load_teams()
    if len(teams) < MIN_POOL_PLAY_TEAMS:
        return jsonify({'error': f'At least {MIN_POOL_PLAY_TEAMS} teams are needed for pool play'}), 400
    if store.load_matches(phase=KNOCKOUT):
        return jsonify({'error': 'Knockout phase has already started'}), 400

    games_per_team = data.get('games_per_team', settings['games_per_team'])
    if isinstance(games_per_team, bool) or not isinstance(games_per_team, int) or games_per_team < 1:
        return jsonify({'error': 'games_per_team must be a positive integer'}), 400
    games_per_team = min(games_per_team, len(teams) - 1)

    with store.lock:
        existing = store.load_matches(phase=POOL_PLAY)
        pairings = generate_pool_schedule(teams, existing, games_per_team)
        created = store.create_matches(pairings, phase=POOL_PLAY)
        store.update_settings(phase='pool-play', games_per_team=games_per_team)

    short = find_teams_below_minimum(teams, existing, pairings, games_per_team)
    warnings = [{'team': team.name, 'games': games} for team, games in short]
    for team, games in short:
        app.logger.warning(f'{team.name} has only {games}/{games_per_team} pool play games')

    return jsonify({
        'success': True,
        'games_per_team': games_per_team,
        'created': [m.to_dict() for m in created],
        'warnings': warnings,
    })


def _apply_score(store, match_id, team1_score, team2_score, completed):
    match = next((m for m in store.load_matches() if m.id == match_id), None)
    if match is None:
        abort(404)
    if completed and team1_score == team2_score:
        return jsonify({'error': 'Games cannot end in a tie'}), 400
    if match.phase == KNOCKOUT:
        latest_round = max(m.round or 1 for m in store.load_matches(phase=KNOCKOUT))
        if (match.round or 1) < latest_round:
            return jsonify({
                'error': f'Round {match.round or 1} is closed: round {latest_round} has already been drawn',
                'kind': 'integrity',
            }), 409

    match = store.update_match(match_id, team1_score, team2_score, completed)
    app.logger.info(f'Match #{match.id}: {match.team1.name} {team1_score}-{team2_score} {match.team2.name}'
                    f'{" (final)" if completed else ""}')

    response = {'success': True, 'match': match.to_dict()}
    if match.phase == KNOCKOUT and completed:
        response['advance'] = _advance(store)
    return jsonify(response)


@app.route('/api/results/<int:match_id>', methods=['POST'])
def api_save_result(match_id):
    """Save a score; completing a knockout match advances the bracket."""
    data = request.get_json(silent=True) or {}
    team1_score = _parse_score(data.get('team1_score'))
    team2_score = _parse_score(data.get('team2_score'))
    if team1_score is None or team2_score is None:
        return jsonify({'error': 'Scores must be non-negative whole numbers'}), 400
    return _apply_score(get_store(), match_id, team1_score, team2_score, bool(data.get('completed', True)))


@app.route('/api/results/<int:match_id>/quick', methods=['POST'])
def api_quick_result(match_id):
    """Complete a knockout match with a preset score for its round's target."""
    data = request.get_json(silent=True) or {}
    winner = data.get('winner')
    if winner not in (1, 2):
        return jsonify({'error': 'winner must be 1 or 2'}), 400

    store = get_store()
    match = next((m for m in store.load_matches(phase=KNOCKOUT) if m.id == match_id), None)
    if match is None:
        abort(404)
    settings = store.load_settings()
    total_rounds = calculate_total_rounds(get_bracket_size(store.load_matches(phase=KNOCKOUT),
                                                           store.load_bye_teams()))
    target = get_target_score(match.round or 1, total_rounds,
                              settings['early_round_target'], settings['late_round_target'])
    team1_score, team2_score = quick_score(target, winner == 1, close=bool(data.get('close', False)))
    return _apply_score(store, match_id, team1_score, team2_score, True)


@app.route('/api/results/reset', methods=['POST'])
def api_reset_scores():
    """Clear scores back to 0-0; knockout resets keep only round 1."""
    data = request.get_json(silent=True) or {}
    phase = data.get('phase')
    if phase is not None and phase not in (POOL_PLAY, KNOCKOUT):
        return jsonify({'error': f'Unknown phase: {phase}'}), 400
    store = get_store()
    if phase != KNOCKOUT and store.load_matches(phase=KNOCKOUT):
        return jsonify({'error': 'Pool play scores are locked once the knockout phase has started'}), 400

    reset, removed = store.reset_scores(phase=phase)
    app.logger.info(f'Reset {reset} match scores, removed {removed} later round matches')
    return jsonify({'success': True, 'reset': reset, 'removed': removed})


@app.route('/api/knockout/generate', methods=['POST'])
def api_generate_knockout():
    """Seed the bracket from pool play standings and create round 1."""
    store = get_store()
    with store.lock:
        if store.load_matches(phase=KNOCKOUT):
            return jsonify({'error': 'Knockout bracket already exists'}), 409
        pool_matches = store.load_matches(phase=POOL_PLAY)
        if not any(m.completed for m in pool_matches):
            return jsonify({'error': 'Complete some pool play matches first'}), 400
        standings = compute_standings(store.load_teams(), pool_matches)
        if len(standings) < 2:
            return jsonify({'error': 'At least 2 teams are needed for a bracket'}), 400

        seeding = build_initial_bracket(standings)
        created = store.create_matches(seeding.first_round_pairings, phase=KNOCKOUT, round=1)
        store.update_settings(phase='knockout', bye_team_ids=[t.id for t in seeding.bye_teams])

    app.logger.info(f'Knockout bracket generated: {seeding.bracket_size} slots, '
                    f'{len(seeding.bye_teams)} byes, {len(created)} first round matches')
    return jsonify({
        'success': True,
        'bracket_size': seeding.bracket_size,
        'bye_teams': [t.to_dict() for t in seeding.bye_teams],
        'created': [m.to_dict() for m in created],
    })


@app.route('/api/knockout/advance', methods=['POST'])
def api_advance_knockout():
    """Re-check the current round and create the next one if it is complete."""
    return jsonify({'success': True, **_advance(get_store())})


@app.route('/api/bracket', methods=['GET'])
def api_bracket():
    """Bracket rounds with names and target scores, byes, champion and state."""
    store = get_store()
    settings = store.load_settings()
    knockout = store.load_matches(phase=KNOCKOUT)
    bye_teams = store.load_bye_teams()
    total_rounds = calculate_total_rounds(get_bracket_size(knockout, bye_teams))
    seeds = {row.team.id: row.seed for row in _pool_standings(store)}

    rounds = []
    for round_num, matches in group_by_round(knockout).items():
        rounds.append({
            'round': round_num,
            'name': get_round_name(round_num, total_rounds),
            'target_score': get_target_score(round_num, total_rounds,
                                             settings['early_round_target'], settings['late_round_target']),
            'matches': [
                {**m.to_dict(), 'seeds': [seeds.get(m.team1.id), seeds.get(m.team2.id)]}
                for m in matches
            ],
        })

    state, current_round = get_bracket_state(knockout, bye_teams)
    champion = get_champion(knockout, bye_teams)
    return jsonify({
        'state': state,
        'current_round': current_round,
        'total_rounds': total_rounds,
        'phase': determine_tournament_phase(settings, knockout, bye_teams),
        'bye_teams': [{**t.to_dict(), 'seed': seeds.get(t.id)} for t in bye_teams],
        'rounds': rounds,
        'champion': champion.to_dict() if champion else None,
    })


@app.route('/api/reset', methods=['POST'])
def api_reset_all():
    """Reset the whole tournament: teams, matches and settings."""
    get_store().reset()
    app.logger.info('Tournament reset')
    return jsonify({'success': True})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.run(debug=True, port=5000)
