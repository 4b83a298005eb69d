"""
Game State - Mutable round state and immutable per-seat views.

RoundState is owned by the engine and mutated in place during a round.
Strategies never see it directly; they receive a PlayerView, a frozen
snapshot of everything one seat is allowed to know at a decision point.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Tuple

from game.cards import hand_value


@dataclass
class RoundState:
    """Full game state for the seat-local engine."""
    player_count: int
    scores: List[int]
    hands: List[List[int]] = field(default_factory=list)
    deck: List[int] = field(default_factory=list)
    last_cards_played: List[int] = field(default_factory=list)
    cards_played: List[int] = field(default_factory=list)
    discard_pile: List[int] = field(default_factory=list)
    eliminated: List[int] = field(default_factory=list)
    is_golden_score: bool = False
    round_number: int = 1
    current_turn: int = 0

    @classmethod
    def new_game(cls, player_count: int) -> 'RoundState':
        return cls(
            player_count=player_count,
            scores=[0] * player_count,
            hands=[[] for _ in range(player_count)],
        )

    @property
    def active_players(self) -> List[int]:
        return [i for i in range(self.player_count) if i not in self.eliminated]

    def next_active(self, seat: int) -> int:
        """Next non-eliminated seat after `seat` (wraps around)."""
        nxt = (seat + 1) % self.player_count
        for _ in range(self.player_count):
            if nxt not in self.eliminated:
                return nxt
            nxt = (nxt + 1) % self.player_count
        return nxt

    def view_for(self, seat: int) -> 'PlayerView':
        return PlayerView(
            seat=seat,
            hand=tuple(self.hands[seat]),
            scores=tuple(self.scores),
            hand_sizes=tuple(len(h) for h in self.hands),
            round_number=self.round_number,
            deck_remaining=len(self.deck),
            last_cards_played=tuple(self.last_cards_played),
            is_golden_score=self.is_golden_score,
            eliminated=frozenset(self.eliminated),
        )


@dataclass(frozen=True)
class PlayerView:
    """What a single seat observes at a decision point."""
    seat: int
    hand: Tuple[int, ...]
    scores: Tuple[int, ...]
    hand_sizes: Tuple[int, ...]
    round_number: int
    deck_remaining: int
    last_cards_played: Tuple[int, ...]
    is_golden_score: bool
    eliminated: FrozenSet[int] = frozenset()

    @property
    def player_count(self) -> int:
        return len(self.scores)

    @property
    def hand_value(self) -> int:
        return hand_value(self.hand)

    @property
    def active_count(self) -> int:
        return self.player_count - len(self.eliminated)

    def opponent_hand_sizes(self) -> List[int]:
        """Hand sizes of every other seat, in seat order."""
        return [n for i, n in enumerate(self.hand_sizes) if i != self.seat]

    def with_hand(self, hand) -> 'PlayerView':
        """Copy of this view after the seat's hand changed (e.g. mid-turn)."""
        sizes = list(self.hand_sizes)
        sizes[self.seat] = len(hand)
        return PlayerView(
            seat=self.seat,
            hand=tuple(hand),
            scores=self.scores,
            hand_sizes=tuple(sizes),
            round_number=self.round_number,
            deck_remaining=self.deck_remaining,
            last_cards_played=self.last_cards_played,
            is_golden_score=self.is_golden_score,
            eliminated=self.eliminated,
        )

    def extract_kwargs(self) -> Dict:
        """Keyword arguments for FeatureExtractor.extract()."""
        return {
            'hand': list(self.hand),
            'own_index': self.seat,
            'all_scores': list(self.scores),
            'opponent_hand_sizes': self.opponent_hand_sizes(),
            'round_number': self.round_number,
            'cards_remaining_in_deck': self.deck_remaining,
            'recently_played': list(self.last_cards_played),
            'is_golden_score': self.is_golden_score,
            'eliminated_indices': sorted(self.eliminated),
        }

    def to_dict(self) -> Dict:
        return {
            'seat': self.seat,
            'hand': list(self.hand),
            'scores': list(self.scores),
            'hand_sizes': list(self.hand_sizes),
            'round_number': self.round_number,
            'deck_remaining': self.deck_remaining,
            'last_cards_played': list(self.last_cards_played),
            'is_golden_score': self.is_golden_score,
            'eliminated': sorted(self.eliminated),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'PlayerView':
        scores = data['scores']
        seat = data.get('seat', 0)
        if 'hand_sizes' in data:
            hand_sizes = data['hand_sizes']
        else:
            # Accept the opponent-only form used by the CLI
            opp = list(data.get('opponent_hand_sizes', []))
            hand_sizes = opp[:seat] + [len(data['hand'])] + opp[seat:]
        return cls(
            seat=seat,
            hand=tuple(data['hand']),
            scores=tuple(scores),
            hand_sizes=tuple(hand_sizes),
            round_number=data.get('round_number', 1),
            deck_remaining=data.get('deck_remaining', 0),
            last_cards_played=tuple(data.get('last_cards_played', [])),
            is_golden_score=bool(data.get('is_golden_score', False)),
            eliminated=frozenset(data.get('eliminated', [])),
        )
