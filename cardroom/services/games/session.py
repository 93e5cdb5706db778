"""Game session state machine.

A ``Game`` owns its players, the current round, the finished-round history
and its deck loan. Every command validates first and mutates only once all
checks have passed, so a command that raises leaves the game untouched.
Commands are meant to run inside ``SessionDirectory.with_session``; nothing
here blocks or does I/O.

Lifecycle::

    lobby -> submitting <-> judging -> (next round: submitting) | game_over
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from cardroom.errors import (
    AlreadySubmitted, CardNotInHand, GameAlreadyFull, GameFinished, GameNotStarted, InvalidCommand,
    InvalidWinner, NoSuchSubmission, NotEnoughPlayers, NotYourTurn, PlayerNotFound,
    RoundLocked, WrongCardCount,
)
from .decks import DeckLoan, DeckRegistry, PromptCard

STATUS_LOBBY = 'lobby'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_FINISHED = 'finished'

STAGE_LOBBY = 'lobby'
STAGE_SUBMITTING = 'submitting'
STAGE_JUDGING = 'judging'
STAGE_GAME_OVER = 'game_over'


class GameRules:
    """House rules fixed when the game is created."""

    # option name -> (min, max) accepted from new-game options
    OVERRIDABLE = {
        'hand_size': (3, 15),
        'points_to_win': (0, 50),
        'max_rounds': (0, 100),
    }

    def __init__(self, hand_size=10, min_players=3, max_players=12, points_to_win=5, max_rounds=0):
        self.hand_size = hand_size
        self.min_players = min_players
        self.max_players = max_players
        self.points_to_win = points_to_win
        self.max_rounds = max_rounds

    @classmethod
    def from_config(cls, config, options: Optional[Dict[str, Any]] = None) -> 'GameRules':
        rules = cls(
            hand_size=int(config.get('HAND_SIZE', 10)),
            min_players=int(config.get('MIN_PLAYERS', 3)),
            max_players=int(config.get('MAX_PLAYERS', 12)),
            points_to_win=int(config.get('POINTS_TO_WIN', 5)),
            max_rounds=int(config.get('MAX_ROUNDS', 0)),
        )
        if options is None:
            options = {}
        if not isinstance(options, dict):
            raise InvalidCommand('options must be an object')
        for name, (low, high) in cls.OVERRIDABLE.items():
            value = options.get(name)
            try:
                value = int(value) if value is not None else None
            except (TypeError, ValueError):
                value = None
            if value is not None and low <= value <= high:
                setattr(rules, name, value)
        return rules

    def to_dict(self) -> Dict[str, int]:
        return {
            'hand_size': self.hand_size,
            'min_players': self.min_players,
            'max_players': self.max_players,
            'points_to_win': self.points_to_win,
            'max_rounds': self.max_rounds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, int]) -> 'GameRules':
        return cls(**data)


class Player:
    def __init__(self, player_id: str, name: str, points: int = 0, cards: Optional[List[str]] = None):
        self.id = player_id
        self.name = name
        self.points = points
        self.cards = cards or []

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'points': self.points, 'cards': list(self.cards)}

    def public_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'points': self.points, 'hand_size': len(self.cards)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Player':
        return cls(data['id'], data['name'], data.get('points', 0), list(data.get('cards', [])))


class Submission:
    """The card bundle one player put into the current round."""

    def __init__(self, player: str, cards: List[str], hidden: bool = True):
        self.player = player
        self.cards = cards
        self.hidden = hidden

    def to_dict(self, mask_hidden: bool = False) -> Dict[str, Any]:
        return {
            'player': self.player,
            'cards': None if (mask_hidden and self.hidden) else list(self.cards),
            'hidden': self.hidden,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Submission':
        return cls(data['player'], list(data['cards']), data.get('hidden', True))


class Round:
    def __init__(self, prompt_card: PromptCard, host: Optional[str] = None,
                 submissions: Optional[List[Submission]] = None, winner: Optional[str] = None):
        self.prompt_card = prompt_card
        self.host = host
        self.submissions = submissions or []
        self.winner = winner

    def submission_of(self, player_id: str) -> Optional[Submission]:
        for submission in self.submissions:
            if submission.player == player_id:
                return submission
        return None

    def to_dict(self, mask_hidden: bool = False) -> Dict[str, Any]:
        return {
            'host': self.host,
            'prompt_card': self.prompt_card.to_dict(),
            'submissions': [s.to_dict(mask_hidden=mask_hidden) for s in self.submissions],
            'winner': self.winner,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Round':
        return cls(
            PromptCard.from_dict(data['prompt_card']),
            host=data.get('host'),
            submissions=[Submission.from_dict(s) for s in data.get('submissions', [])],
            winner=data.get('winner'),
        )


class Game:
    def __init__(self, game_id: str, deck_id: str, rules: GameRules, loan: DeckLoan, round_: Round,
                 players: Optional[List[Player]] = None, status: str = STATUS_LOBBY,
                 finished_rounds: Optional[List[Dict[str, Any]]] = None):
        self.id = game_id
        self.deck_id = deck_id
        self.rules = rules
        self.loan = loan
        self.round = round_
        self.players = players or []
        self.status = status
        self.finished_rounds = finished_rounds or []

    @classmethod
    def create(cls, game_id: str, registry: DeckRegistry, deck_id: str, rules: GameRules) -> 'Game':
        """Borrow a deck and seed the first round; the host comes with the first player."""
        loan = registry.new_loan(deck_id)
        return cls(game_id, deck_id, rules, loan, Round(loan.draw_prompt()))

    # ---- derived state ----

    @property
    def finished(self) -> bool:
        return self.status == STATUS_FINISHED

    @property
    def stage(self) -> str:
        if self.status == STATUS_LOBBY:
            return STAGE_LOBBY
        if self.status == STATUS_FINISHED:
            return STAGE_GAME_OVER
        responders = self.responder_ids()
        if responders and all(self.round.submission_of(pid) for pid in responders):
            return STAGE_JUDGING
        return STAGE_SUBMITTING

    def responder_ids(self) -> List[str]:
        return [p.id for p in self.players if p.id != self.round.host]

    def get_player(self, player_id: str) -> Player:
        for player in self.players:
            if player.id == player_id:
                return player
        raise PlayerNotFound(player_id)

    def has_player(self, player_id: str) -> bool:
        return any(p.id == player_id for p in self.players)

    def get_last_finished_round(self) -> Optional[Dict[str, Any]]:
        return self.finished_rounds[-1] if self.finished_rounds else None

    # ---- commands ----

    def add_player(self, player_id: str, name: str) -> 'Game':
        if self.finished:
            raise GameFinished('This game has already finished')
        if self.has_player(player_id):
            # Reconnect: keep points and hand
            player = self.get_player(player_id)
            if name:
                player.name = name
            return self
        if len(self.players) >= self.rules.max_players:
            raise GameAlreadyFull(f'This game already has {self.rules.max_players} players')
        cards = self.loan.draw_responses(self.rules.hand_size)
        self.players.append(Player(player_id, name, 0, cards))
        if self.round.host is None:
            self.round.host = player_id
        return self

    def remove_player(self, player_id: str) -> 'Game':
        player = self.get_player(player_id)
        index = self.players.index(player)
        self._retract(player_id)
        self.loan.return_responses(player.cards)
        player.cards = []
        self.players.remove(player)

        if not self.players:
            self.round.host = None
        elif self.round.host == player_id:
            self.round.host = self._successor_host(index)
            self._retract(self.round.host)

        if self.status == STATUS_IN_PROGRESS and len(self.players) < 2:
            self.round.submissions = []
            self.status = STATUS_FINISHED
        return self

    def start(self) -> 'Game':
        if self.finished:
            raise GameFinished('This game has already finished')
        if self.status == STATUS_IN_PROGRESS:
            return self
        if len(self.players) < self.rules.min_players:
            raise NotEnoughPlayers(f'At least {self.rules.min_players} players are required to start')
        if self.round.host is None:
            self.round.host = self.players[0].id
        self.status = STATUS_IN_PROGRESS
        return self

    def play_white_cards(self, player_id: str, cards: List[str]) -> 'Game':
        self._require_in_progress()
        player = self.get_player(player_id)
        if player_id == self.round.host:
            raise NotYourTurn('The judge does not play cards this round')
        if self.round.submission_of(player_id):
            raise AlreadySubmitted('You already played this round')
        pick = self.round.prompt_card.pick
        if len(cards) != pick:
            raise WrongCardCount(f'This prompt needs {pick} card(s), got {len(cards)}')
        missing = Counter(cards) - Counter(player.cards)
        if missing:
            raise CardNotInHand(f'Not in your hand: {", ".join(sorted(missing))}')

        for card in cards:
            player.cards.remove(card)
        self.round.submissions.append(Submission(player_id, list(cards)))
        self._refill(player)
        return self

    def discard_white_card(self, player_id: str, card: str) -> 'Game':
        """Withdraw a pending submission so the player can submit again."""
        self._require_in_progress()
        submission = self.round.submission_of(player_id)
        if submission is None or card not in submission.cards:
            raise NoSuchSubmission(f'{card!r} is not in your pending submission')
        if not submission.hidden or self.stage == STAGE_JUDGING:
            raise RoundLocked('Submissions are locked once judging has begun')
        self._retract(player_id)
        return self

    def reveal_card(self, host_id: str, target_player_id: str) -> 'Game':
        self._require_in_progress()
        if host_id != self.round.host:
            raise NotYourTurn('Only the judge can reveal cards')
        submission = self.round.submission_of(target_player_id)
        if submission is None:
            raise NoSuchSubmission(f'Player {target_player_id} has no cards in this round')
        submission.hidden = False
        return self

    def finish_round(self, winner_id: str, host_id: Optional[str] = None) -> 'Game':
        self._require_in_progress()
        if host_id is not None and host_id != self.round.host:
            raise NotYourTurn('Only the judge can pick the winner')
        if winner_id == self.round.host or self.round.submission_of(winner_id) is None:
            raise InvalidWinner(f'Player {winner_id} did not play this round')
        winner = self.get_player(winner_id)

        winner.points += 1
        self.round.winner = winner_id
        snapshot = self.round.to_dict()
        for submission in snapshot['submissions']:
            submission['hidden'] = False
        snapshot['number'] = len(self.finished_rounds) + 1
        self.finished_rounds.append(snapshot)
        for submission in self.round.submissions:
            self.loan.return_responses(submission.cards)

        if self._game_over():
            self.round.submissions = []
            self.status = STATUS_FINISHED
            return self

        host_index = next(
            (i for i, p in enumerate(self.players) if p.id == self.round.host), -1
        )
        next_host = self.players[(host_index + 1) % len(self.players)].id
        self.round = Round(self.loan.draw_prompt(), host=next_host)
        return self

    # ---- helpers ----

    def _require_in_progress(self) -> None:
        if self.status == STATUS_LOBBY:
            raise GameNotStarted('The game has not started yet')
        if self.status == STATUS_FINISHED:
            raise GameFinished('This game has already finished')

    def _refill(self, player: Player) -> None:
        missing = self.rules.hand_size - len(player.cards)
        if missing > 0:
            player.cards.extend(self.loan.draw_responses(missing, held=player.cards))

    def _retract(self, player_id: Optional[str]) -> None:
        submission = self.round.submission_of(player_id) if player_id else None
        if submission is not None:
            self.round.submissions.remove(submission)
            self.loan.return_responses(submission.cards)

    def _successor_host(self, removed_index: int) -> str:
        """Next player in join order from where the old host sat, preferring one who has not played."""
        count = len(self.players)
        order = [self.players[(removed_index + i) % count].id for i in range(count)]
        for pid in order:
            if self.round.submission_of(pid) is None:
                return pid
        return order[0]

    def _game_over(self) -> bool:
        if len(self.players) < 2:
            return True
        if self.rules.points_to_win and any(p.points >= self.rules.points_to_win for p in self.players):
            return True
        if self.rules.max_rounds and len(self.finished_rounds) >= self.rules.max_rounds:
            return True
        return False

    # ---- serialization ----

    def to_dict(self) -> Dict[str, Any]:
        """Full record, as persisted."""
        return {
            'id': self.id,
            'deck_id': self.deck_id,
            'status': self.status,
            'rules': self.rules.to_dict(),
            'players': [p.to_dict() for p in self.players],
            'round': self.round.to_dict(),
            'finished_rounds': [dict(r) for r in self.finished_rounds],
            'loan': self.loan.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Game':
        return cls(
            data['id'],
            data['deck_id'],
            GameRules.from_dict(data['rules']),
            DeckLoan.from_dict(data['loan']),
            Round.from_dict(data['round']),
            players=[Player.from_dict(p) for p in data.get('players', [])],
            status=data.get('status', STATUS_LOBBY),
            finished_rounds=list(data.get('finished_rounds', [])),
        )

    def public_dict(self) -> Dict[str, Any]:
        """Projection broadcast to the room; hidden submissions carry no card text.

        Hands are reduced to their size; each player gets their own cards
        through ``hand_dict``.
        """
        round_data = self.round.to_dict(mask_hidden=True)
        round_data['submitted_count'] = len(self.round.submissions)
        round_data['expected_count'] = len(self.responder_ids())
        return {
            'id': self.id,
            'deck_id': self.deck_id,
            'status': self.status,
            'stage': self.stage,
            'finished': self.finished,
            'rules': self.rules.to_dict(),
            'players': [p.public_dict() for p in self.players],
            'round': round_data,
            'round_number': len(self.finished_rounds) + 1,
            'finished_rounds': [dict(r) for r in self.finished_rounds],
        }

    def hand_dict(self, player_id: str) -> Dict[str, Any]:
        """Private view for one player: their hand and their own pending submission."""
        player = self.get_player(player_id)
        submission = self.round.submission_of(player_id)
        return {
            'game_id': self.id,
            'player': player.id,
            'cards': list(player.cards),
            'submitted': list(submission.cards) if submission else None,
        }
