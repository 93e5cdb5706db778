from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the cardroom game server!'})


@main.route('/health')
def health():
    registry = current_app.extensions['deck_registry']
    return jsonify({'status': 'ok', 'decks': len(registry.decks())})
