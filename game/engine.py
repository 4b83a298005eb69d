"""
Game Engine - Headless ZapZap game loop for massed self-play simulation.

Handles:
- Round setup (hand-size choice, shuffle, deal, flipped card)
- Turn loop (ZapZap call, play, draw from deck or previous play)
- ZapZap resolution with counteract penalty
- Round end (elimination over 100 points, golden score, seat rotation)
- Winner determination

The engine adjudicates legality; strategies only propose actions.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from game.cards import (
    DrawSource, can_call_zapzap, find_random_play, hand_score, hand_value,
    is_valid_play, new_deck,
)
from game.game_state import RoundState

logger = logging.getLogger(__name__)

MIN_HAND_SIZE = 4
MAX_HAND_SIZE = 7
MAX_GOLDEN_HAND_SIZE = 10
ELIMINATION_SCORE = 100
COUNTERACT_PENALTY = 5


def clamp_hand_size(hand_size: int, is_golden_score: bool) -> int:
    upper = MAX_GOLDEN_HAND_SIZE if is_golden_score else MAX_HAND_SIZE
    return max(MIN_HAND_SIZE, min(upper, int(hand_size)))


@dataclass
class RoundSummary:
    round_number: int
    turns_played: int
    caller: Optional[int] = None
    counteracted: bool = False
    points_added: Dict[int, int] = field(default_factory=dict)
    timed_out: bool = False


@dataclass
class GameResult:
    """Terminal result of one simulated game."""
    winner: int
    total_rounds: int
    final_scores: List[int]
    was_golden_score: bool
    eliminated: List[int]
    rounds: List[RoundSummary] = field(default_factory=list)

    # Aliases used by the runner-facing collaborator contract
    @property
    def winner_index(self) -> int:
        return self.winner

    @property
    def scores(self) -> List[int]:
        return self.final_scores

    @property
    def round_count(self) -> int:
        return self.total_rounds

    def to_dict(self) -> Dict:
        return {
            'winner': self.winner,
            'total_rounds': self.total_rounds,
            'final_scores': list(self.final_scores),
            'was_golden_score': self.was_golden_score,
            'eliminated': list(self.eliminated),
        }


class HeadlessGameEngine:
    """
    Runs complete games between a list of strategies, one per seat.

    Strategies must implement select_hand_size, should_zapzap,
    select_play and select_draw_source (see game.ai_opponents.BotStrategy).
    """

    def __init__(self, strategies: Sequence, seed: Optional[int] = None,
                 starting_player: int = 0, max_turns_per_round: int = 1000,
                 max_rounds: int = 200):
        if not 2 <= len(strategies) <= 4:
            raise ValueError(f"ZapZap needs 2-4 players, got {len(strategies)}")
        self.strategies = list(strategies)
        self.player_count = len(strategies)
        self.rng = random.Random(seed)
        self.starting_player = starting_player % self.player_count
        self.max_turns_per_round = max_turns_per_round
        self.max_rounds = max_rounds

    def run_game(self) -> GameResult:
        state = RoundState.new_game(self.player_count)
        state.current_turn = self.starting_player
        rounds: List[RoundSummary] = []

        while len(rounds) < self.max_rounds:
            golden_round = state.is_golden_score
            summary = self._run_round(state)
            rounds.append(summary)
            self._process_round_end(state)
            if self._is_game_finished(state, golden_round, summary):
                break
        else:
            logger.warning(f"Game stopped after {self.max_rounds} rounds")

        return GameResult(
            winner=self._determine_winner(state),
            total_rounds=len(rounds),
            final_scores=list(state.scores),
            was_golden_score=state.is_golden_score,
            eliminated=sorted(state.eliminated),
            rounds=rounds,
        )

    # ── Round flow ───────────────────────────────────────────────────

    def _run_round(self, state: RoundState) -> RoundSummary:
        starter = state.current_turn
        if starter in state.eliminated:
            starter = state.next_active(starter)
            state.current_turn = starter

        chosen = self.strategies[starter].select_hand_size(state.view_for(starter))
        self._deal(state, clamp_hand_size(chosen, state.is_golden_score))

        summary = RoundSummary(round_number=state.round_number, turns_played=0)
        while summary.turns_played < self.max_turns_per_round:
            seat = state.current_turn
            strategy = self.strategies[seat]
            hand = state.hands[seat]

            if can_call_zapzap(hand) and strategy.should_zapzap(state.view_for(seat)):
                self._execute_zapzap(state, seat, summary)
                return summary

            cards = strategy.select_play(state.view_for(seat))
            if not self._is_legal(hand, cards):
                cards = find_random_play(hand, self.rng)
            pickup = list(state.last_cards_played)
            if cards:
                self._execute_play(state, seat, cards)

            source = strategy.select_draw_source(state.view_for(seat))
            self._execute_draw(state, seat, source, pickup)
            summary.turns_played += 1

        summary.timed_out = True
        logger.debug(f"Round {state.round_number} hit the "
                     f"{self.max_turns_per_round}-turn limit")
        return summary

    def _deal(self, state: RoundState, hand_size: int):
        deck = new_deck()
        self.rng.shuffle(deck)
        active = state.active_players
        state.hands = [[] for _ in range(self.player_count)]
        for seat in active:
            state.hands[seat] = deck[:hand_size]
            deck = deck[hand_size:]
        state.last_cards_played = [deck.pop()]
        state.cards_played = []
        state.discard_pile = []
        state.deck = deck

    @staticmethod
    def _is_legal(hand: List[int], cards) -> bool:
        if not cards:
            return False
        if len(set(cards)) != len(cards) or not set(cards) <= set(hand):
            return False
        return is_valid_play(cards)

    def _execute_play(self, state: RoundState, seat: int, cards: List[int]):
        played = set(cards)
        state.hands[seat] = [c for c in state.hands[seat] if c not in played]
        state.cards_played = list(cards)

    def _execute_draw(self, state: RoundState, seat: int, source,
                      pickup: List[int]):
        """Draw one card, then the current play becomes the pickup pile."""
        drawn = None
        if DrawSource(source) == DrawSource.PLAYED and pickup:
            drawn = pickup.pop()
        else:
            if not state.deck and state.discard_pile:
                state.deck = state.discard_pile
                state.discard_pile = []
                self.rng.shuffle(state.deck)
            if state.deck:
                drawn = state.deck.pop()
            elif pickup:
                drawn = pickup.pop()

        if drawn is not None:
            state.hands[seat].append(drawn)

        state.discard_pile.extend(pickup)
        if state.cards_played:
            state.last_cards_played = state.cards_played
        else:
            state.last_cards_played = []
        state.cards_played = []
        state.current_turn = state.next_active(seat)

    def _execute_zapzap(self, state: RoundState, caller: int,
                        summary: RoundSummary):
        active = state.active_players
        base = {seat: hand_value(state.hands[seat]) for seat in active}
        caller_value = base[caller]
        counteracted = any(base[s] <= caller_value for s in active if s != caller)
        lowest = min(base.values())
        scores = {seat: hand_score(state.hands[seat], is_lowest=False)
                  for seat in active}

        added = {}
        if counteracted:
            added[caller] = scores[caller] + (len(active) - 1) * COUNTERACT_PENALTY
            for seat in active:
                if seat != caller and base[seat] != lowest:
                    added[seat] = scores[seat]
        else:
            for seat in active:
                if seat != caller:
                    added[seat] = scores[seat]

        for seat, points in added.items():
            state.scores[seat] += points

        summary.caller = caller
        summary.counteracted = counteracted
        summary.points_added = added

    def _process_round_end(self, state: RoundState):
        for seat in range(self.player_count):
            if state.scores[seat] > ELIMINATION_SCORE and seat not in state.eliminated:
                state.eliminated.append(seat)

        if not state.is_golden_score and len(state.active_players) == 2:
            state.is_golden_score = True

        if state.active_players:
            state.current_turn = state.next_active(state.current_turn)
        state.round_number += 1

    def _is_game_finished(self, state: RoundState, golden_round: bool,
                          summary: RoundSummary) -> bool:
        active = state.active_players
        if len(active) <= 1:
            return True
        if golden_round and len(active) == 2 and not summary.timed_out:
            return state.scores[active[0]] != state.scores[active[1]]
        return False

    def _determine_winner(self, state: RoundState) -> int:
        candidates = state.active_players or list(range(self.player_count))
        return min(candidates, key=lambda seat: (state.scores[seat], seat))
