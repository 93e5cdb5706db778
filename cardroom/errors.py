"""Errors raised by game commands.

Every failure a client can cause is a ``GameError``. The families map onto
how the failure is reported: ``NotFound`` for unknown games, decks, players
or submissions; ``StateConflict`` for commands that are illegal in the
current game state; ``ResourceExhausted`` for a deck that cannot supply
cards; ``InvalidCommand`` for malformed payloads.
"""

from typing import Any, Dict


class GameError(Exception):
    """Base class for errors reported back to the command's sender."""

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.__class__.__name__, 'message': str(self)}


class NotFound(GameError):
    pass


class StateConflict(GameError):
    pass


class ResourceExhausted(GameError):
    pass


class InvalidCommand(GameError):
    pass


class GameNotFound(NotFound):
    def __init__(self, game_id):
        self.game_id = game_id
        super().__init__(f'Game {game_id} not found')


class UnknownDeck(NotFound):
    def __init__(self, deck_id):
        self.deck_id = deck_id
        super().__init__(f'Unknown deck {deck_id!r}')


class PlayerNotFound(NotFound):
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f'Player {player_id} is not in this game')


class NoSuchSubmission(NotFound):
    pass


class NotYourTurn(StateConflict):
    pass


class AlreadySubmitted(StateConflict):
    pass


class WrongCardCount(StateConflict):
    pass


class CardNotInHand(StateConflict):
    pass


class NotEnoughPlayers(StateConflict):
    pass


class InvalidWinner(StateConflict):
    pass


class GameFinished(StateConflict):
    pass


class GameAlreadyFull(StateConflict):
    pass


class GameNotStarted(StateConflict):
    pass


class RoundLocked(StateConflict):
    pass


class DeckExhausted(ResourceExhausted):
    pass


class InvalidDeck(InvalidCommand):
    pass
