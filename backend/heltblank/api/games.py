from flask import Blueprint, jsonify

from heltblank import get_registry

games = Blueprint('games', __name__)


@games.route('/create', methods=['POST'])
def create_game():
    """
    Hands out an unused join code. The session itself starts on the first join.
    """
    code = get_registry().new_code()
    return jsonify({
        'message': 'New game code created!',
        'game_code': code
    }), 201


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    session = get_registry().find(game_code)
    if session is None:
        return jsonify({'error': 'Game not found'}), 404
    return jsonify(session.snapshot())
