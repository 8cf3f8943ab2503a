from flask import Blueprint, jsonify, request, current_app

from buzzer import get_engine
from buzzer.exceptions import NotFoundError, ValidationError


sessions = Blueprint('sessions', __name__)


@sessions.errorhandler(ValidationError)
def _bad_request(exc):
    return jsonify({'error': exc.message}), 400


@sessions.errorhandler(NotFoundError)
def _not_found(exc):
    return jsonify({'error': exc.message}), 404


@sessions.route('', methods=['POST'])
def create_session():
    data = request.get_json(silent=True) or {}
    name = data.get('name')
    host_name = data.get('hostName')
    if not all([name, host_name]):
        return jsonify({'error': 'Session name and host name are required'}), 400

    snapshot, host_player_id = get_engine().create_session(name, host_name)
    current_app.logger.info(f"[http-create] session={snapshot['id']} code={snapshot['code']}")
    return jsonify({'session': snapshot, 'hostPlayerId': host_player_id}), 201


@sessions.route('/join', methods=['POST'])
def join_session():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    player_name = data.get('playerName')
    if not all([code, player_name]):
        return jsonify({'error': 'Session code and player name are required'}), 400

    snapshot, player_id = get_engine().join_session(code, player_name)
    return jsonify({'session': snapshot, 'playerId': player_id}), 201


@sessions.route('/<string:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify({'session': get_engine().get_session(session_id)})


@sessions.route('/code/<string:code>', methods=['GET'])
def get_session_by_code(code):
    # Join-by-link: the client resolves the shared code before asking for a name
    return jsonify({'session': get_engine().get_session_by_code(code)})


@sessions.route('/<string:session_id>/buzzers', methods=['GET'])
def get_buzzer_ranking(session_id):
    return jsonify({'ranking': get_engine().buzzer_ranking(session_id)})
