from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

NAMESPACE = '/ws'


def room_for(game_id: str) -> str:
    return f"game:{game_id}"


def player_room(game_id: str, player_id: str) -> str:
    # Private channel for one seat; every connection using that player id joins it
    return f"player:{game_id}:{player_id}"


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from cardroom.services.games import (
        DeckRegistry, MemoryStore, RoundAnnouncer, SessionDirectory, SqlAlchemyStore,
    )

    # Process-scoped registries, reachable through app.extensions
    registry = DeckRegistry()
    loaded = registry.load_directory(flask_app.config.get('DECKS_DIR'))
    flask_app.logger.info(f"[decks] loaded={loaded} from {flask_app.config.get('DECKS_DIR')}")

    store_kind = flask_app.config.get('SESSION_STORE', 'sql')
    if store_kind == 'memory':
        store = MemoryStore()
    elif store_kind == 'sql':
        store = SqlAlchemyStore()
    else:
        raise ValueError(f"Unknown SESSION_STORE {store_kind!r}")
    directory = SessionDirectory(store, registry, logger=flask_app.logger)

    def _announce(game_id, payload):
        socketio.emit('game:round-winner', payload, to=room_for(game_id), namespace=NAMESPACE)

    announcer = RoundAnnouncer(flask_app, _announce, is_live=directory.exists)
    directory.add_eviction_listener(announcer.cancel)

    flask_app.extensions['deck_registry'] = registry
    flask_app.extensions['session_directory'] = directory
    flask_app.extensions['round_announcer'] = announcer

    # Import and register blueprints here
    from cardroom.main import main
    flask_app.register_blueprint(main)

    from cardroom.api.games import games, decks
    flask_app.register_blueprint(games, url_prefix='/api/games')
    flask_app.register_blueprint(decks, url_prefix='/api/decks')

    # Register Socket.IO event handlers
    from cardroom.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    # Ensure the table exists for models registered on db
    import cardroom.models  # noqa: F401

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the session tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            click.echo('Database has been reset!')

    @click.command('decks')
    def decks_command():
        """Lists the registered decks."""
        for deck in registry.decks():
            s = deck.summary()
            click.echo(f"{s['id']}: {s['name']} ({s['prompts']} prompts, {s['responses']} responses)")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(decks_command)

    return flask_app
