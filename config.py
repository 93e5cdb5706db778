import os

_PACKAGE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'cardroom')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///cardroom.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Where live sessions are kept: 'sql' (GameRecord table) or 'memory'
    SESSION_STORE = os.environ.get('SESSION_STORE', 'sql')
    # Built-in decks (*.json) loaded into the deck registry at startup
    DECKS_DIR = os.environ.get('DECKS_DIR') or os.path.join(_PACKAGE_DIR, 'data', 'decks')
    # House rules (can be overridden per game via new-game options)
    HAND_SIZE = int(os.environ.get('HAND_SIZE', '10'))
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '3'))
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '12'))
    # End conditions. 0 disables.
    POINTS_TO_WIN = int(os.environ.get('POINTS_TO_WIN', '5'))
    MAX_ROUNDS = int(os.environ.get('MAX_ROUNDS', '0'))
    # Delay between the round-finish state broadcast and the winner announcement (seconds)
    ROUND_WINNER_DELAY_SEC = float(os.environ.get('ROUND_WINNER_DELAY_SEC', '0.5'))
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000',
        ).split(',') if o.strip()
    ]
