import os
import sys
import pytest

# Ensure the project root (containing the `cardroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from cardroom import create_app, db, socketio, NAMESPACE
from cardroom.services.games import DeckRegistry, Game, GameRules


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_STORE = 'sql'
    DECKS_DIR = os.path.join(PROJECT_ROOT, 'cardroom', 'data', 'decks')
    HAND_SIZE = 5
    MIN_PLAYERS = 3
    MAX_PLAYERS = 6
    POINTS_TO_WIN = 3
    MAX_ROUNDS = 0
    ROUND_WINNER_DELAY_SEC = 0
    CORS_ORIGINS = ['http://localhost:5173']


SMALL_DECK = {
    'id': 'small',
    'name': 'Small deck',
    'prompts': [
        {'text': 'Prompt one ____.', 'pick': 1},
        {'text': 'Prompt two ____.', 'pick': 1},
        {'text': 'Prompt three ____ and ____.', 'pick': 2},
    ],
    'responses': [f'card-{i}' for i in range(40)],
}


@pytest.fixture()
def registry():
    reg = DeckRegistry()
    reg.register(SMALL_DECK)
    reg.register({
        'id': 'single',
        'name': 'One-pick only',
        'prompts': [{'text': 'Only prompt ____.', 'pick': 1}],
        'responses': [f'single-{i}' for i in range(40)],
    })
    return reg


@pytest.fixture()
def rules():
    return GameRules(hand_size=5, min_players=3, max_players=6, points_to_win=3, max_rounds=0)


@pytest.fixture()
def make_game(registry, rules):
    """Build a game on the one-pick deck with the given players (first joins first)."""
    def _make(*player_ids, deck='single', started=False):
        game = Game.create('TEST', registry, deck, rules)
        for pid in player_ids:
            game.add_player(pid, pid.title())
        if started:
            game.start()
        return game
    return _make


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import cardroom.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace=NAMESPACE,
        )
        test_client.get_received(NAMESPACE)
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            test_client.disconnect(namespace=NAMESPACE)
        except Exception:
            pass
