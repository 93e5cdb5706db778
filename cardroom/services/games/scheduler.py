import itertools
import threading
from typing import Any, Callable, Dict, Optional, Set


class RoundAnnouncer:
    """Delayed, cancellable round-winner announcements.

    - No waiting in TESTING mode (the announcement runs inline) unless
      ENABLE_SCHEDULER_IN_TESTS is set
    - One token per scheduled announcement, tracked per game
    - ``cancel(game_id)`` voids every pending token of that game; a runner
      whose token was voided returns without emitting
    - A runner whose game is no longer live (``is_live`` returns False) also
      returns without emitting
    """

    def __init__(self, app, emit: Callable[[str, Dict[str, Any]], None],
                 spawn: Optional[Callable] = None, sleep: Optional[Callable[[float], Any]] = None,
                 is_live: Optional[Callable[[str], bool]] = None):
        self.app = app
        self.emit = emit
        self.is_live = is_live
        if spawn is None or sleep is None:
            from cardroom import socketio
            spawn = spawn or socketio.start_background_task
            sleep = sleep or socketio.sleep
        self._spawn = spawn
        self._sleep = sleep
        self._pending: Dict[str, Set[int]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def schedule(self, game_id: str, payload: Dict[str, Any], delay: Optional[float] = None) -> int:
        if delay is None:
            delay = float(self.app.config.get('ROUND_WINNER_DELAY_SEC', 0.5))
        with self._lock:
            token = next(self._tokens)
            self._pending.setdefault(game_id, set()).add(token)
        self.app.logger.info(f"[announce-set] game={game_id} token={token} delay={delay}s")

        if self.app.config.get('TESTING') and not self.app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
            self._run(game_id, token, payload, 0)
        else:
            self._spawn(self._run, game_id, token, payload, delay)
        return token

    def cancel(self, game_id: str) -> None:
        with self._lock:
            voided = self._pending.pop(game_id, None)
        if voided:
            self.app.logger.info(f"[announce-cancel] game={game_id} voided={len(voided)}")

    def pending(self, game_id: str) -> int:
        with self._lock:
            return len(self._pending.get(game_id, ()))

    def _run(self, game_id: str, token: int, payload: Dict[str, Any], delay: float) -> None:
        if delay:
            self._sleep(delay)
        with self._lock:
            tokens = self._pending.get(game_id)
            live = tokens is not None and token in tokens
            if live:
                tokens.discard(token)
                if not tokens:
                    del self._pending[game_id]
        if live and self.is_live is not None:
            with self.app.app_context():
                live = self.is_live(game_id)
        if not live:
            self.app.logger.info(f"[announce-skip] game={game_id} token={token}")
            return
        self.emit(game_id, payload)
