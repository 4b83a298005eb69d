"""
Scripted AI Opponents - Heuristic ZapZap bots used as sparring partners.

Provides several difficulty levels:
- EasyBot: Random valid plays, calls ZapZap whenever eligible
- MediumBot: Sheds high cards, draws from the pile when it completes a combo
- HardBot: Minimizes remaining hand value, round-aware ZapZap threshold
"""

import random
from typing import List, Optional

from game.cards import (
    DrawSource, evaluate_card_value, find_all_valid_plays,
    find_high_value_play, find_random_play, hand_value, remaining_after,
)
from game.engine import MAX_GOLDEN_HAND_SIZE, MAX_HAND_SIZE, MIN_HAND_SIZE
from game.game_state import PlayerView


class BotStrategy:
    """Base class for ZapZap strategies. One instance plays one seat."""

    name = "base"

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def select_hand_size(self, view: PlayerView) -> int:
        return MIN_HAND_SIZE

    def should_zapzap(self, view: PlayerView) -> bool:
        return False

    def select_play(self, view: PlayerView) -> Optional[List[int]]:
        return find_random_play(view.hand, self.rng)

    def select_draw_source(self, view: PlayerView) -> DrawSource:
        return DrawSource.DECK

    def on_game_end(self, result, seat_index: int):
        """Learning hook; heuristic bots ignore it."""

    @property
    def learns(self) -> bool:
        return False

    def __repr__(self):
        return f"{type(self).__name__}()"


def best_shedding_play(hand) -> Optional[List[int]]:
    """Play maximizing -remaining_value + 0.5 * play_size."""
    plays = find_all_valid_plays(hand)
    if not plays:
        return None
    return max(plays, key=lambda p: -hand_value(remaining_after(hand, p)) + 0.5 * len(p))


class EasyBot(BotStrategy):
    name = "easy"

    def select_hand_size(self, view: PlayerView) -> int:
        upper = MAX_GOLDEN_HAND_SIZE if view.is_golden_score else MAX_HAND_SIZE
        return self.rng.randint(MIN_HAND_SIZE, upper)

    def should_zapzap(self, view: PlayerView) -> bool:
        return True

    def select_play(self, view: PlayerView) -> Optional[List[int]]:
        multi = [p for p in find_all_valid_plays(view.hand) if len(p) > 1]
        if multi:
            return list(self.rng.choice(multi))
        return find_random_play(view.hand, self.rng)


class MediumBot(BotStrategy):
    name = "medium"

    def select_hand_size(self, view: PlayerView) -> int:
        return 5

    def should_zapzap(self, view: PlayerView) -> bool:
        return view.hand_value <= 3

    def select_play(self, view: PlayerView) -> Optional[List[int]]:
        return find_high_value_play(view.hand) or find_random_play(view.hand, self.rng)

    def select_draw_source(self, view: PlayerView) -> DrawSource:
        if not view.last_cards_played:
            return DrawSource.DECK
        # Only the top card can be taken
        top = view.last_cards_played[-1]
        combos = [p for p in find_all_valid_plays(list(view.hand) + [top])
                  if len(p) > 1 and top in p]
        return DrawSource.PLAYED if combos else DrawSource.DECK


class HardBot(BotStrategy):
    name = "hard"

    def select_hand_size(self, view: PlayerView) -> int:
        return 6 if view.is_golden_score else 4

    def should_zapzap(self, view: PlayerView) -> bool:
        value = view.hand_value
        if value > 5:
            return False
        if value <= 2:
            return True
        if view.round_number <= 2:
            return False
        if view.round_number <= 4:
            return value <= 3
        return value <= 4

    def select_play(self, view: PlayerView) -> Optional[List[int]]:
        return best_shedding_play(view.hand)

    def select_draw_source(self, view: PlayerView) -> DrawSource:
        if not view.last_cards_played:
            return DrawSource.DECK
        top = view.last_cards_played[-1]
        if evaluate_card_value(top, view.hand) > 5:
            return DrawSource.PLAYED
        return DrawSource.DECK


HEURISTIC_BOTS = {
    'easy': EasyBot,
    'medium': MediumBot,
    'hard': HardBot,
}
