"""Deck registry and per-game deck loans.

The registry holds the card sets a game can be created from: built-in decks
loaded from JSON at startup plus decks shared live by a connected client.
A game never draws from the registry directly. It takes a ``DeckLoan``, a
private shuffled copy of one card set, and all draws and discards for the
lifetime of that game go through the loan.
"""

import json
import os
import random
import threading
from typing import Any, Dict, Iterable, List, Optional

from cardroom.errors import DeckExhausted, InvalidDeck, UnknownDeck


class PromptCard:
    __slots__ = ('text', 'pick')

    def __init__(self, text: str, pick: int = 1):
        self.text = text
        self.pick = pick

    def __eq__(self, other):
        return isinstance(other, PromptCard) and (self.text, self.pick) == (other.text, other.pick)

    def __repr__(self):
        return f'PromptCard({self.text!r}, pick={self.pick})'

    def to_dict(self) -> Dict[str, Any]:
        return {'text': self.text, 'pick': self.pick}

    @classmethod
    def from_dict(cls, data) -> 'PromptCard':
        if isinstance(data, str):
            return cls(data, 1)
        if not isinstance(data, dict) or not isinstance(data.get('text'), str):
            raise InvalidDeck('Prompt cards need a text')
        try:
            pick = int(data.get('pick', 1))
        except (TypeError, ValueError):
            raise InvalidDeck(f"Invalid pick for prompt {data['text']!r}")
        if pick < 1:
            raise InvalidDeck(f"Invalid pick for prompt {data['text']!r}")
        return cls(data['text'], pick)


class Deck:
    """An immutable source card set."""

    def __init__(self, deck_id: str, name: str, prompts: Iterable[PromptCard], responses: Iterable[str]):
        self.id = deck_id
        self.name = name
        self.prompts = tuple(prompts)
        self.responses = tuple(responses)

    @classmethod
    def from_dict(cls, data) -> 'Deck':
        if not isinstance(data, dict):
            raise InvalidDeck('Deck must be an object')
        deck_id = data.get('id')
        if not deck_id or not isinstance(deck_id, str):
            raise InvalidDeck('Deck id is required')
        prompts = [PromptCard.from_dict(p) for p in data.get('prompts') or []]
        responses = data.get('responses') or []
        if not all(isinstance(r, str) for r in responses):
            raise InvalidDeck('Response cards must be strings')
        return cls(deck_id, data.get('name') or deck_id, prompts, responses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'prompts': [p.to_dict() for p in self.prompts],
            'responses': list(self.responses),
        }

    def summary(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'prompts': len(self.prompts),
            'responses': len(self.responses),
        }


class DeckLoan:
    """Card piles owned by a single game.

    Draw piles are lists whose end is the top of the pile. Prompt cards go
    onto ``used_prompts`` as soon as they are drawn; response cards come
    back through ``return_responses`` into ``discarded``. An empty draw pile
    is refilled by shuffling its used/discard pile back in.
    """

    def __init__(self, deck_id: str, prompts: List[PromptCard], responses: List[str],
                 used_prompts: Optional[List[PromptCard]] = None, discarded: Optional[List[str]] = None):
        self.deck_id = deck_id
        self.prompts = prompts
        self.responses = responses
        self.used_prompts = used_prompts or []
        self.discarded = discarded or []

    def draw_prompt(self) -> PromptCard:
        if not self.prompts:
            if not self.used_prompts:
                raise DeckExhausted(f'Deck {self.deck_id!r} has no prompt cards')
            self.prompts = self.used_prompts
            self.used_prompts = []
            random.shuffle(self.prompts)
        card = self.prompts.pop()
        self.used_prompts.append(card)
        return card

    def draw_responses(self, n: int, held: Iterable[str] = ()) -> List[str]:
        """Draw ``n`` response cards, distinct from each other and from ``held``.

        Cards skipped for distinctness go back under the draw pile. When no
        distinct card is left anywhere, skipped cards are handed out anyway;
        when no card is left at all the result is shorter than ``n``.
        """
        held = set(held)
        drawn: List[str] = []
        skipped: List[str] = []
        while len(drawn) < n:
            if not self.responses and self.discarded:
                self.responses = self.discarded
                self.discarded = []
                random.shuffle(self.responses)
            if self.responses:
                card = self.responses.pop()
                if card in held or card in drawn:
                    skipped.append(card)
                else:
                    drawn.append(card)
            elif skipped:
                drawn.append(skipped.pop())
            else:
                break
        self.responses[:0] = skipped
        return drawn

    def return_responses(self, cards: Iterable[str]) -> None:
        self.discarded.extend(cards)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'deck_id': self.deck_id,
            'prompts': [p.to_dict() for p in self.prompts],
            'used_prompts': [p.to_dict() for p in self.used_prompts],
            'responses': list(self.responses),
            'discarded': list(self.discarded),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeckLoan':
        return cls(
            data['deck_id'],
            [PromptCard.from_dict(p) for p in data.get('prompts', [])],
            list(data.get('responses', [])),
            used_prompts=[PromptCard.from_dict(p) for p in data.get('used_prompts', [])],
            discarded=list(data.get('discarded', [])),
        )


class DeckRegistry:
    """Process-wide set of decks, keyed by deck id.

    Shared decks remember the connection (``host``) that shared them so they
    can be withdrawn when that connection goes away.
    """

    def __init__(self):
        self._decks: Dict[str, Deck] = {}
        self._hosts: Dict[str, str] = {}
        self._lock = threading.Lock()

    def load_directory(self, path: str) -> int:
        """Register every ``*.json`` deck found in ``path``."""
        if not path or not os.path.isdir(path):
            return 0
        count = 0
        for filename in sorted(os.listdir(path)):
            if not filename.endswith('.json'):
                continue
            with open(os.path.join(path, filename), encoding='utf-8') as fh:
                data = json.load(fh)
            data.setdefault('id', os.path.splitext(filename)[0])
            self.register(data)
            count += 1
        return count

    def register(self, deck, host: Optional[str] = None) -> Deck:
        if not isinstance(deck, Deck):
            deck = Deck.from_dict(deck)
        with self._lock:
            self._decks[deck.id] = deck
            if host:
                self._hosts[deck.id] = host
            else:
                self._hosts.pop(deck.id, None)
        return deck

    def unregister(self, deck_id: str) -> None:
        with self._lock:
            self._decks.pop(deck_id, None)
            self._hosts.pop(deck_id, None)

    def unregister_host(self, host: str) -> List[str]:
        """Drop every deck shared by ``host``; returns the removed ids."""
        with self._lock:
            removed = [deck_id for deck_id, h in self._hosts.items() if h == host]
            for deck_id in removed:
                self._decks.pop(deck_id, None)
                self._hosts.pop(deck_id, None)
        return removed

    def get(self, deck_id: str) -> Deck:
        deck = self._decks.get(deck_id)
        if deck is None:
            raise UnknownDeck(deck_id)
        return deck

    def host_of(self, deck_id: str) -> Optional[str]:
        return self._hosts.get(deck_id)

    def decks(self) -> List[Deck]:
        with self._lock:
            return list(self._decks.values())

    def new_loan(self, deck_id: str) -> DeckLoan:
        deck = self.get(deck_id)
        prompts = list(deck.prompts)
        responses = list(deck.responses)
        random.shuffle(prompts)
        random.shuffle(responses)
        return DeckLoan(deck.id, prompts, responses)
