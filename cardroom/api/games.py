from flask import Blueprint, current_app, jsonify, request
from cardroom.errors import GameError, InvalidCommand, NotFound, StateConflict
from cardroom.services.games import GameRules


games = Blueprint('games', __name__)
decks = Blueprint('decks', __name__)


def _directory():
    return current_app.extensions['session_directory']


@games.errorhandler(GameError)
@decks.errorhandler(GameError)
def _game_error(exc):
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, StateConflict):
        status = 409
    else:
        status = 400
    return jsonify({'error': str(exc), 'type': exc.__class__.__name__}), status


@games.route('', methods=['POST'])
def create_game():
    """
    Creates a new game lobby from a registered deck. Players join over the socket.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise InvalidCommand('Body must be an object')
    deck_id = data.get('deck')
    if not deck_id:
        raise InvalidCommand('deck is required')
    rules = GameRules.from_config(current_app.config, data.get('options'))
    game = _directory().create(deck_id, rules)
    return jsonify({
        'message': 'New game created!',
        'game_id': game.id,
    }), 201


@games.route('/<string:game_id>', methods=['GET'])
def get_game_state(game_id):
    game = _directory().get(game_id)
    return jsonify(game.public_dict())


@games.route('/<string:game_id>/rounds/last', methods=['GET'])
def get_last_round(game_id):
    game = _directory().get(game_id)
    return jsonify(game.get_last_finished_round())


@decks.route('', methods=['GET'])
def list_decks():
    registry = current_app.extensions['deck_registry']
    return jsonify([d.summary() for d in registry.decks()])


@decks.route('/<string:deck_id>', methods=['GET'])
def get_deck(deck_id):
    registry = current_app.extensions['deck_registry']
    return jsonify(registry.get(deck_id).to_dict())
