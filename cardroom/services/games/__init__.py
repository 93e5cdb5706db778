"""Game domain services: decks, the session state machine, the session
directory and the round announcer.

This package contains the core game mechanics and is imported by HTTP
routes and socket handlers, keeping transport concerns separated from the
rules of the game.
"""

from .decks import Deck, DeckLoan, DeckRegistry, PromptCard
from .directory import MemoryStore, SessionDirectory, SqlAlchemyStore
from .scheduler import RoundAnnouncer
from .session import Game, GameRules, Player, Round, Submission

__all__ = [
    'Deck', 'DeckLoan', 'DeckRegistry', 'PromptCard',
    'MemoryStore', 'SessionDirectory', 'SqlAlchemyStore',
    'RoundAnnouncer',
    'Game', 'GameRules', 'Player', 'Round', 'Submission',
]
