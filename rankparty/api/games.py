from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from rankparty.errors import ValidationError
from rankparty.services import games as svc


games = Blueprint('games', __name__)


def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _settings_from(data):
    return {k: data.get(k) for k in svc.coordinator.SETTING_KEYS if k in data}


def _game_payload(game):
    return game.to_dict(viewer_id=current_user.id)


@games.route('/create', methods=['POST'])
@login_required
def create_game():
    """Creates a game; the caller becomes its first player and VIP."""
    game = svc.create_game(current_user.id, current_user.username, **_settings_from(_json()))
    return jsonify(_game_payload(game)), 201


@games.route('/join', methods=['POST'])
@login_required
def join_game():
    data = _json()
    code = data.get('code') or data.get('game_code')
    if not code:
        raise ValidationError('Game code is required', 'game')
    game, player = svc.join_game(code, current_user.id, current_user.username)
    return jsonify({'player': player.to_dict(), 'game': _game_payload(game)})


@games.route('/<string:code>/state', methods=['GET'])
@login_required
def get_game_state(code):
    game = svc.get_game_by_code(code)
    svc.coordinator.require_player(game, current_user.id)
    return jsonify(_game_payload(game))


@games.route('/<string:code>/settings', methods=['PATCH'])
@login_required
def update_settings(code):
    game = svc.get_game_by_code(code)
    game = svc.update_settings(game.id, current_user.id, **_settings_from(_json()))
    return jsonify(_game_payload(game))


@games.route('/<string:code>/start', methods=['POST'])
@login_required
def start_game(code):
    game = svc.get_game_by_code(code)
    game = svc.start_game(game.id, current_user.id)
    return jsonify(_game_payload(game))


@games.route('/<string:code>/rounds', methods=['POST'])
@login_required
def select_topic(code):
    """VIP chooses the topic for the next round."""
    topic_id = _json().get('topic_id')
    if topic_id is None:
        raise ValidationError('topic_id is required', 'topic')
    game = svc.get_game_by_code(code)
    rnd = svc.select_topic(game.id, current_user.id, topic_id)
    return jsonify(rnd.to_dict(viewer_id=current_user.id)), 201


@games.route('/<string:code>/rotate-vip', methods=['POST'])
@login_required
def rotate_vip(code):
    game = svc.get_game_by_code(code)
    game = svc.rotate_vip(game.id, current_user.id)
    return jsonify(_game_payload(game))


@games.route('/<string:code>/end', methods=['POST'])
@login_required
def end_game(code):
    game = svc.get_game_by_code(code)
    game = svc.end_game(game.id, current_user.id)
    return jsonify(_game_payload(game))


@games.route('/rounds/<int:round_id>', methods=['GET'])
@login_required
def get_round(round_id):
    rnd = svc.get_round(round_id)
    svc.coordinator.require_player(rnd.game, current_user.id)
    return jsonify(rnd.to_dict(viewer_id=current_user.id))


@games.route('/rounds/<int:round_id>/ranking', methods=['POST'])
@login_required
def submit_ranking(round_id):
    rnd = svc.submit_ranking(round_id, current_user.id, _json().get('ranking'))
    return jsonify(rnd.to_dict(viewer_id=current_user.id)), 201


@games.route('/rounds/<int:round_id>/guess', methods=['POST'])
@login_required
def submit_guess(round_id):
    rnd = svc.submit_guess(round_id, current_user.id, _json().get('guesses'))
    return jsonify(rnd.to_dict(viewer_id=current_user.id)), 201


@games.route('/rounds/<int:round_id>/reveal', methods=['POST'])
@login_required
def start_reveal(round_id):
    rnd = svc.start_reveal(round_id, current_user.id)
    return jsonify(rnd.to_dict(viewer_id=current_user.id))


@games.route('/rounds/<int:round_id>/reveal/next', methods=['POST'])
@login_required
def advance_reveal(round_id):
    rnd = svc.advance_reveal(round_id, current_user.id)
    return jsonify(rnd.to_dict(viewer_id=current_user.id))


@games.route('/rounds/<int:round_id>/apply-result', methods=['POST'])
@login_required
def apply_round_result(round_id):
    rnd = svc.get_round(round_id)
    svc.coordinator.require_player(rnd.game, current_user.id)
    scores = svc.apply_round_result(round_id)
    return jsonify({'round_id': round_id, 'scores': [s.to_dict() for s in scores]})


@games.route('/rounds/<int:round_id>/results', methods=['GET'])
@login_required
def get_round_results(round_id):
    """Per-player points earned in the round, as stored when it was scored."""
    scores = svc.get_round_results(round_id)
    return jsonify({'round_id': round_id, 'scores': [s.to_dict() for s in scores]})
