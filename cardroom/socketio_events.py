"""Socket.IO event dispatcher.

Each inbound ``game:*`` event becomes one ``SessionDirectory.with_session``
call; the resulting state is broadcast to the game's room as ``game:edit``.
That projection carries no hands: each player receives their own cards as a
private ``game:hand`` on their seat room.
Failures never reach the room: they are reported to the sender alone as an
``error`` event.
"""

from functools import wraps
from typing import Any, Dict

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from cardroom import NAMESPACE, player_room, room_for, socketio
from cardroom.errors import GameError, InvalidCommand
from cardroom.services.games import GameRules


def _directory():
    return current_app.extensions['session_directory']


def _registry():
    return current_app.extensions['deck_registry']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _payload(data, bare_key: str) -> Dict[str, Any]:
    # A bare string is accepted for the commands that only need an id
    if isinstance(data, dict):
        return data
    if isinstance(data, str):
        return {bare_key: data}
    if data is None:
        return {}
    raise InvalidCommand('Payload must be an object')


def _require(data: Dict[str, Any], key: str):
    value = data.get(key)
    if value is None or value == '':
        raise InvalidCommand(f'{key} is required')
    return value


def _player_id(data: Dict[str, Any]) -> str:
    return str(data.get('player_id') or _get_sid())


def _send_hands(game) -> None:
    for player in game.players:
        emit('game:hand', game.hand_dict(player.id), to=player_room(game.id, player.id))


def _broadcast_state(game) -> None:
    emit('game:edit', game.public_dict(), to=room_for(game.id))
    _send_hands(game)


def _join_rooms(game, player_id: str) -> None:
    join_room(room_for(game.id))
    join_room(player_room(game.id, player_id))


def command(event: str, bare_key: str = 'game_id'):
    """Report any failure of the wrapped handler privately to the sender."""
    def decorator(handler):
        @wraps(handler)
        def wrapper(data=None):
            try:
                return handler(_payload(data, bare_key))
            except GameError as exc:
                current_app.logger.info(f"[rejected] event={event} sid={_get_sid()} {exc.__class__.__name__}: {exc}")
                payload = exc.to_dict()
                payload['event'] = event
                emit('error', payload)
            except Exception as exc:
                current_app.logger.exception(f"[error] event={event} sid={_get_sid()}")
                emit('error', {'type': exc.__class__.__name__, 'message': f'error on "{event}": {exc}', 'event': event})
        return wrapper
    return decorator


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(*args):
    removed = _registry().unregister_host(_get_sid())
    if removed:
        current_app.logger.info(f"[deck-unshare] host={_get_sid()} decks={removed}")


@command('game:new')
def handle_new_game(data):
    deck_id = _require(data, 'deck')
    rules = GameRules.from_config(current_app.config, data.get('options'))
    game = _directory().create(deck_id, rules)
    name = data.get('name')
    if name:
        player_id = _player_id(data)
        game = _directory().with_session(game.id, lambda g: g.add_player(player_id, name))
        _join_rooms(game, player_id)
    emit('game:new', game.public_dict())
    _send_hands(game)


@command('game:join')
def handle_join_game(data):
    game_id = _require(data, 'game_id')
    name = _require(data, 'name')
    player_id = _player_id(data)
    game = _directory().with_session(game_id, lambda g: g.add_player(player_id, name))
    _join_rooms(game, player_id)
    current_app.logger.info(f"[join] game={game.id} player={player_id} players={len(game.players)}")
    _broadcast_state(game)


@command('game:leave')
def handle_leave_game(data):
    game_id = _require(data, 'game_id')
    player_id = _player_id(data)
    game = _directory().with_session(game_id, lambda g: g.remove_player(player_id))
    room = room_for(game.id)
    _broadcast_state(game)
    emit('game:kick', player_id, to=room)
    leave_room(room)
    leave_room(player_room(game.id, player_id))
    current_app.logger.info(f"[leave] game={game.id} player={player_id} players={len(game.players)}")


@command('game:start')
def handle_start_game(data):
    game_id = _require(data, 'game_id')
    game = _directory().with_session(game_id, lambda g: g.start())
    current_app.logger.info(f"[start] game={game.id} players={len(game.players)} host={game.round.host}")
    _broadcast_state(game)


@command('game:play-white-cards')
def handle_play_white_cards(data):
    game_id = _require(data, 'game_id')
    cards = _require(data, 'cards')
    if isinstance(cards, str):
        cards = [cards]
    if not isinstance(cards, list):
        raise InvalidCommand('cards must be a list')
    player_id = _player_id(data)
    game = _directory().with_session(game_id, lambda g: g.play_white_cards(player_id, cards))
    _broadcast_state(game)
    emit('game:cards-played', {
        'submitted': len(game.round.submissions),
        'expected': len(game.responder_ids()),
    }, to=room_for(game.id))


@command('game:discard-white-card')
def handle_discard_white_card(data):
    game_id = _require(data, 'game_id')
    card = data.get('card')
    if card is None and isinstance(data.get('cards'), list) and data['cards']:
        # Older clients send the selection list
        card = data['cards'][0]
    if not isinstance(card, str) or not card:
        raise InvalidCommand('card is required')
    player_id = _player_id(data)
    game = _directory().with_session(game_id, lambda g: g.discard_white_card(player_id, card))
    _broadcast_state(game)


@command('game:reveal-card')
def handle_reveal_card(data):
    game_id = _require(data, 'game_id')
    target = str(_require(data, 'player_id'))
    host_id = str(data.get('host_id') or _get_sid())
    game = _directory().with_session(game_id, lambda g: g.reveal_card(host_id, target))
    _broadcast_state(game)


@command('game:finish-round')
def handle_finish_round(data):
    game_id = _require(data, 'game_id')
    winner_id = str(_require(data, 'winner_player_id'))
    host_id = str(data.get('host_id') or _get_sid())

    def announce(game):
        _broadcast_state(game)
        snapshot = dict(game.get_last_finished_round())
        winner = next((p for p in game.players if p.id == snapshot['winner']), None)
        snapshot['winner_name'] = winner.name if winner else None
        current_app.logger.info(
            f"[round] game={game.id} round={snapshot['number']} winner={snapshot['winner']} finished={game.finished}"
        )
        current_app.extensions['round_announcer'].schedule(game.id, snapshot)

    # Scheduled inside the exclusive region so an eviction cannot slip in first
    _directory().with_session(game_id, lambda g: g.finish_round(winner_id, host_id=host_id), after=announce)


@command('deck:share')
def handle_deck_share(data):
    deck = _registry().register(data, host=_get_sid())
    current_app.logger.info(f"[deck-share] deck={deck.id} host={_get_sid()}")
    emit('deck:shared', deck.summary())


@command('deck:unshare', bare_key='id')
def handle_deck_unshare(data):
    deck_id = _require(data, 'id')
    registry = _registry()
    if registry.host_of(deck_id) != _get_sid():
        raise InvalidCommand('Only the connection that shared a deck can unshare it')
    registry.unregister(deck_id)


@command('deck:request', bare_key='id')
def handle_deck_request(data):
    deck_id = _require(data, 'id')
    emit('deck:response', _registry().get(deck_id).to_dict())


@command('deck:saved', bare_key='id')
def handle_deck_saved(data):
    deck_id = _require(data, 'id')
    host = _registry().host_of(deck_id)
    if host:
        emit('deck:saved', {'id': deck_id}, to=host)


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'game:new': handle_new_game,
        'game:join': handle_join_game,
        'game:leave': handle_leave_game,
        'game:start': handle_start_game,
        'game:play-white-cards': handle_play_white_cards,
        'game:discard-white-card': handle_discard_white_card,
        'game:reveal-card': handle_reveal_card,
        'game:finish-round': handle_finish_round,
        'deck:share': handle_deck_share,
        'deck:unshare': handle_deck_unshare,
        'deck:request': handle_deck_request,
        'deck:saved': handle_deck_saved,
        'ping': handle_ping,
    }
    for event, handler in handlers.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)
