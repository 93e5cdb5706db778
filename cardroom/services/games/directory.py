"""Session directory: the single way to read and mutate a live game.

``with_session`` is a per-game-id critical section. Commands for the same
id are totally ordered; commands for different ids run in parallel. Inside
the section the stored record is loaded, the command applied to a fresh
``Game`` and the result written back, so a command that raises is never
persisted.
"""

import json
import logging
import random
import string
import threading
import weakref
from typing import Any, Callable, Dict, List, Optional

from cardroom.errors import GameNotFound
from .decks import DeckRegistry
from .session import Game, GameRules


def generate_game_code(length=4):
    """Generate a short game code."""
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


class MemoryStore:
    """Sessions kept in this process only."""

    def __init__(self):
        self._records: Dict[str, str] = {}

    def load(self, game_id: str) -> Optional[Dict[str, Any]]:
        raw = self._records.get(game_id)
        return json.loads(raw) if raw is not None else None

    def save(self, game_id: str, state: Dict[str, Any]) -> None:
        self._records[game_id] = json.dumps(state)

    def delete(self, game_id: str) -> None:
        self._records.pop(game_id, None)

    def exists(self, game_id: str) -> bool:
        return game_id in self._records


class SqlAlchemyStore:
    """Sessions kept in the ``game_session`` table. Needs an app context."""

    def load(self, game_id: str) -> Optional[Dict[str, Any]]:
        from cardroom.models import GameRecord
        record = GameRecord.query.filter_by(id=game_id).first()
        return json.loads(record.state) if record else None

    def save(self, game_id: str, state: Dict[str, Any]) -> None:
        from cardroom import db
        from cardroom.models import GameRecord
        try:
            record = GameRecord.query.filter_by(id=game_id).first()
            if record is None:
                record = GameRecord(id=game_id, state=json.dumps(state))
            else:
                record.state = json.dumps(state)
            db.session.add(record)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def delete(self, game_id: str) -> None:
        from cardroom import db
        from cardroom.models import GameRecord
        try:
            GameRecord.query.filter_by(id=game_id).delete()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def exists(self, game_id: str) -> bool:
        from cardroom.models import GameRecord
        return GameRecord.query.filter_by(id=game_id).first() is not None


class SessionDirectory:
    def __init__(self, store, registry: DeckRegistry, logger: Optional[logging.Logger] = None):
        self.store = store
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self._locks: 'weakref.WeakValueDictionary[str, Any]' = weakref.WeakValueDictionary()
        self._guard = threading.Lock()
        self._eviction_listeners: List[Callable[[str], None]] = []

    @staticmethod
    def normalize_id(game_id) -> str:
        return str(game_id or '').strip().upper()

    def _lock_for(self, game_id: str):
        # The caller's reference keeps the lock alive while it is in use
        with self._guard:
            lock = self._locks.get(game_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[game_id] = lock
            return lock

    def add_eviction_listener(self, listener: Callable[[str], None]) -> None:
        self._eviction_listeners.append(listener)

    def create(self, deck_id: str, rules: GameRules) -> Game:
        while True:
            game_id = generate_game_code()
            with self._lock_for(game_id):
                if self.store.exists(game_id):
                    continue
                game = Game.create(game_id, self.registry, deck_id, rules)
                self.store.save(game_id, game.to_dict())
            self.logger.info(f"[game-new] game={game_id} deck={deck_id}")
            return game

    def get(self, game_id) -> Game:
        game_id = self.normalize_id(game_id)
        state = self.store.load(game_id)
        if state is None:
            raise GameNotFound(game_id)
        return Game.from_dict(state)

    def exists(self, game_id) -> bool:
        return self.store.exists(self.normalize_id(game_id))

    def with_session(self, game_id, fn: Callable[[Game], Any],
                     after: Optional[Callable[[Game], Any]] = None) -> Game:
        """Run ``fn`` against the game exclusively and persist the outcome.

        If the command emptied a game that had players, the game is evicted
        before the section is released. Otherwise ``after`` runs on the saved
        game while the section is still held, so nothing it schedules can be
        overtaken by a later eviction of the same id.
        """
        game_id = self.normalize_id(game_id)
        with self._lock_for(game_id):
            state = self.store.load(game_id)
            if state is None:
                raise GameNotFound(game_id)
            game = Game.from_dict(state)
            had_players = bool(game.players)
            fn(game)
            if had_players and not game.players:
                self.remove(game_id)
            else:
                self.store.save(game_id, game.to_dict())
                if after is not None:
                    after(game)
            return game

    def remove(self, game_id) -> None:
        game_id = self.normalize_id(game_id)
        with self._lock_for(game_id):
            self.store.delete(game_id)
            for listener in self._eviction_listeners:
                listener(game_id)
        self.logger.info(f"[evict] game={game_id}")
