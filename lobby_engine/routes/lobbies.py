from flask import Blueprint, request, jsonify, current_app

from lobby_engine.app import json_body, int_field, parse_datetime
from lobby_engine.errors import NotFound
from shared.pubsub import PubSubClient

bp = Blueprint('lobbies', __name__, url_prefix='/api/v1/lobbies')


def get_service():
    return current_app.lobbies


# --- Formation ---

@bp.route('/generate', methods=['POST'])
def generate_lobbies():
    """Form the next round of lobbies for a tournament."""
    data = json_body()
    tournament_id = int_field(data, 'tournament_id')
    round_num = int_field(data, 'round', required=False)

    lobbies = get_service().generate_lobbies(tournament_id, round_num)

    return jsonify({
        'message': f'Created {len(lobbies)} lobbies',
        'round': lobbies[0].round,
        'lobbies': [lobby.to_dict() for lobby in lobbies]
    }), 201


# --- Draft ---

@bp.route('/<int:lobby_id>/start-draft', methods=['POST'])
def start_draft(lobby_id):
    lobby = get_service().start_draft(lobby_id)
    return jsonify(lobby.to_dict())


@bp.route('/draft-pick', methods=['POST'])
def draft_pick():
    data = json_body()
    lobby = get_service().draft_pick(
        int_field(data, 'lobby_id'),
        int_field(data, 'player_id'),
        int_field(data, 'team')
    )
    return jsonify(lobby.to_dict())


@bp.route('/<int:lobby_id>/start-playing', methods=['POST'])
def start_playing(lobby_id):
    lobby = get_service().start_playing(lobby_id)
    return jsonify(lobby.to_dict())


@bp.route('/<int:lobby_id>/first-picker', methods=['POST'])
def set_first_picker(lobby_id):
    data = json_body()
    lobby = get_service().set_first_picker(lobby_id, int_field(data, 'player_id'))
    return jsonify(lobby.to_dict())


@bp.route('/<int:lobby_id>/current-picker')
def current_picker(lobby_id):
    return jsonify({
        'lobby_id': lobby_id,
        'player_id': get_service().get_current_picker(lobby_id)
    })


# --- Settlement ---

@bp.route('/finish', methods=['POST'])
def finish_lobby():
    data = json_body()
    lobby = get_service().finish_lobby(
        int_field(data, 'lobby_id'),
        int_field(data, 'winning_team')
    )
    return jsonify(lobby.to_dict())


# --- Reads ---

@bp.route('/<int:lobby_id>')
def get_lobby(lobby_id):
    lobby = get_service().get_lobby_by_id(lobby_id)
    if not lobby:
        raise NotFound(f"Lobby {lobby_id} not found")
    return jsonify(lobby.to_dict())


@bp.route('/tournament/<int:tournament_id>')
def list_lobbies(tournament_id):
    lobbies = get_service().list_lobbies_by_tournament(tournament_id)
    return jsonify({
        'lobbies': [lobby.to_dict() for lobby in lobbies],
        'count': len(lobbies)
    })


@bp.route('/tournament/<int:tournament_id>/events')
def recent_events(tournament_id):
    """Latest published lobby events of the tournament, newest first."""
    count = request.args.get('count', 50, type=int)
    count = min(max(count, 1), PubSubClient.EVENT_LOG_SIZE)

    events = get_service().get_recent_events(tournament_id, count)
    return jsonify({
        'events': [event.to_dict() for event in events],
        'count': len(events)
    })


@bp.route('/tournament/<int:tournament_id>/long-poll')
def long_poll(tournament_id):
    """
    Hold the request until a lobby of the tournament changes after `since`.
    Responds 204 when nothing changed before the timeout.
    """
    since = parse_datetime(request.args.get('since'), 'since')

    timeout = request.args.get('timeout', type=float)
    if timeout is None:
        timeout = current_app.config['LONG_POLL_DEFAULT_TIMEOUT']
    timeout = min(max(timeout, 1), current_app.config['LONG_POLL_MAX_TIMEOUT'])

    service = get_service()
    latest = service.wait_for_lobby_update(tournament_id, since=since, timeout=timeout)
    if latest is None:
        return '', 204

    lobbies = service.list_lobbies_by_tournament(tournament_id)
    return jsonify({
        'updated_at': latest.isoformat(),
        'lobbies': [lobby.to_dict() for lobby in lobbies]
    })
