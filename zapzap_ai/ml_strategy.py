"""
Policy-driven strategies - ZapZap seats whose decisions come from a learned
estimator rather than fixed heuristics.

- MLBotStrategy: bandit-driven, records its decisions and learns from the
  shaped end-of-game reward
- DQNBotStrategy: value-network-driven, inference only
- StrategyFactory: builds any strategy from its tag
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from game.ai_opponents import HEURISTIC_BOTS, BotStrategy, best_shedding_play
from game.cards import DrawSource, JOKER_START, find_all_valid_plays, \
    get_card_points, hand_value, is_joker, remaining_after
from game.engine import GameResult, clamp_hand_size
from game.game_state import PlayerView
from zapzap_ai.bandit_policy import BanditPolicy
from zapzap_ai.categories import DecisionCategory, PlayType
from zapzap_ai.encoder import FEATURE_INDEX, GOLDEN_SCORE_INDEX, FeatureExtractor
from zapzap_ai.errors import ValidationError
from zapzap_ai.policy import LightweightDQN

logger = logging.getLogger(__name__)

RANK_REWARDS = (15.0, 5.0, -3.0, -8.0)
RANK_REWARD_FLOOR = -10.0

CATEGORY_REWARD_SCALE = {
    DecisionCategory.PLAY_TYPE: 1.0,
    DecisionCategory.DRAW_SOURCE: 0.9,
    DecisionCategory.HAND_SIZE: 0.7,
}

_CLOSE_TO_WIN = FEATURE_INDEX['opponent_close_to_win']
_KEEP_JOKERS = FEATURE_INDEX['should_keep_jokers']


# ── Play construction ────────────────────────────────────────────────────

def _highest_single(hand: Sequence[int], skip_jokers: bool = False) -> Optional[List[int]]:
    candidates = [c for c in hand if not (skip_jokers and is_joker(c))]
    if not candidates:
        return None
    return [max(candidates, key=get_card_points)]


def _least_remaining(hand: Sequence[int], plays: List[List[int]]) -> List[int]:
    return min(plays, key=lambda p: hand_value(remaining_after(hand, p)))


def play_for_type(play_type: PlayType, hand: Sequence[int]) -> Optional[List[int]]:
    """Turn an abstract play type into concrete cards from `hand`."""
    hand = list(hand)
    if not hand:
        return None
    plays = find_all_valid_plays(hand)
    if not plays:
        return _highest_single(hand)

    if play_type == PlayType.SINGLE_HIGH:
        return _highest_single(hand)

    if play_type == PlayType.MULTI_HIGH:
        multi = [p for p in plays if len(p) > 1]
        return _least_remaining(hand, multi) if multi else _highest_single(hand)

    if play_type == PlayType.AVOID_JOKER:
        clean = [p for p in plays if not any(is_joker(c) for c in p)]
        if clean:
            return best_shedding_play_from(hand, clean)
        return _highest_single(hand, skip_jokers=True) or best_shedding_play(hand)

    if play_type == PlayType.USE_JOKER_COMBO:
        combos = [p for p in plays if len(p) > 1 and any(is_joker(c) for c in p)]
        if combos:
            return _least_remaining(hand, combos)
        return play_for_type(PlayType.MULTI_HIGH, hand)

    return best_shedding_play(hand)


def best_shedding_play_from(hand: Sequence[int], plays: List[List[int]]) -> List[int]:
    return max(plays, key=lambda p: -hand_value(remaining_after(hand, p)) + 0.5 * len(p))


def keep_jokers(play: List[int], hand: Sequence[int]) -> List[int]:
    """Golden score: swap a joker-bearing play for a joker-free one if any."""
    if not any(is_joker(c) for c in play):
        return play
    clean = [p for p in find_all_valid_plays(hand) if not any(is_joker(c) for c in p)]
    if clean:
        return _least_remaining(hand, clean)
    return _highest_single(hand, skip_jokers=True) or play


def release_jokers(play: List[int], hand: Sequence[int]) -> List[int]:
    """Opponent about to go out: dump jokers inside a combo."""
    if not any(is_joker(c) for c in hand):
        return play
    combos = [p for p in find_all_valid_plays(hand)
              if len(p) >= 2 and any(is_joker(c) for c in p)]
    return _least_remaining(hand, combos) if combos else play


# ── Rewards ──────────────────────────────────────────────────────────────

def shaped_rewards(result: GameResult, seat_index: int) -> Dict[DecisionCategory, float]:
    """Rank-based game reward, scaled per decision category."""
    scores = list(result.final_scores)
    order = sorted(range(len(scores)), key=lambda seat: scores[seat])
    rank = order.index(seat_index)
    mine = scores[seat_index]
    won = result.winner == seat_index

    reward = RANK_REWARDS[rank] if rank < len(RANK_REWARDS) else RANK_REWARD_FLOOR
    if won:
        reward += 3
    if seat_index in result.eliminated:
        reward -= 3
    if mine < 40:
        reward += 2
    elif mine > 100:
        reward -= 2
    reward += (sum(scores) / len(scores) - mine) / 20.0

    rewards = {category: reward * scale
               for category, scale in CATEGORY_REWARD_SCALE.items()}
    rewards[DecisionCategory.ZAPZAP] = reward * (1.5 if won else 0.8)
    return rewards


# ── Strategies ───────────────────────────────────────────────────────────

class PolicyBotStrategy(BotStrategy):
    """
    Shared decision plumbing for estimator-backed seats.

    Subclasses implement choose(vector, category) -> action index.
    """

    name = "policy"

    def __init__(self, use_hard_rules: bool = True, seed: Optional[int] = None):
        super().__init__(seed)
        self.use_hard_rules = use_hard_rules
        self.extractor = FeatureExtractor()

    def choose(self, vector, category: DecisionCategory) -> int:
        raise NotImplementedError

    def forced(self, vector, category: DecisionCategory, action_index: int):
        """Hook for decisions taken by a hard rule instead of the estimator."""

    def select_hand_size(self, view: PlayerView) -> int:
        vector = self.extractor.extract_hand_size_features(
            view.active_count, view.is_golden_score, view.scores[view.seat])
        size = DecisionCategory.HAND_SIZE.action_value(
            self.choose(vector, DecisionCategory.HAND_SIZE))
        return clamp_hand_size(size, view.is_golden_score)

    def should_zapzap(self, view: PlayerView) -> bool:
        value = view.hand_value
        if value > 5:
            return False
        if value == 0:
            return True
        vector = self.extractor.extract_view(view)
        return DecisionCategory.ZAPZAP.action_value(
            self.choose(vector, DecisionCategory.ZAPZAP))

    def select_play(self, view: PlayerView) -> Optional[List[int]]:
        if not view.hand:
            return None
        vector = self.extractor.extract_view(view)
        play_type = DecisionCategory.PLAY_TYPE.action_value(
            self.choose(vector, DecisionCategory.PLAY_TYPE))
        play = play_for_type(play_type, view.hand)
        if self.use_hard_rules and play:
            if view.is_golden_score:
                play = keep_jokers(play, view.hand)
            elif vector[_CLOSE_TO_WIN] >= 0.5:
                play = release_jokers(play, view.hand)
        return play

    def select_draw_source(self, view: PlayerView) -> DrawSource:
        if not view.last_cards_played:
            return DrawSource.DECK
        vector = self.extractor.extract_view(view)
        category = DecisionCategory.DRAW_SOURCE

        # Only the top card can be picked up
        top = view.last_cards_played[-1]
        if self.use_hard_rules and top >= JOKER_START and (
                vector[GOLDEN_SCORE_INDEX] >= 0.5 or vector[_KEEP_JOKERS] >= 0.5):
            self.forced(vector, category, category.action_index(DrawSource.PLAYED))
            return DrawSource.PLAYED

        return category.action_value(self.choose(vector, category))


class MLBotStrategy(PolicyBotStrategy):
    """Contextual-bandit seat. Learns only through on_game_end."""

    name = "ml"

    def __init__(self, policy: Optional[BanditPolicy] = None,
                 use_hard_rules: bool = True, seed: Optional[int] = None):
        super().__init__(use_hard_rules=use_hard_rules, seed=seed)
        self.policy = policy if policy is not None else BanditPolicy(seed=seed)
        self.decisions: List[Tuple[str, DecisionCategory, int]] = []

    @property
    def learns(self) -> bool:
        return True

    def choose(self, vector, category: DecisionCategory) -> int:
        action = self.policy.select_action(vector, category)
        self.decisions.append((self.policy.context_key(vector, category), category, action))
        return action

    def forced(self, vector, category: DecisionCategory, action_index: int):
        self.decisions.append((self.policy.context_key(vector, category), category, action_index))

    def on_game_end(self, result: GameResult, seat_index: int):
        rewards = shaped_rewards(result, seat_index)
        for context, category, action in self.decisions:
            self.policy.update(context, category, action, rewards[category])
        logger.debug(f"Seat {seat_index} learned from {len(self.decisions)} decisions")
        self.decisions = []

    def get_stats(self) -> Dict:
        return {
            'policy': self.policy.get_stats(),
            'pending_decisions': len(self.decisions),
        }

    def __repr__(self):
        return f"MLBotStrategy(epsilon={self.policy.epsilon:.4f})"


class DQNBotStrategy(PolicyBotStrategy):
    """Value-network seat; epsilon-greedy over LightweightDQN Q-values."""

    name = "dqn"

    def __init__(self, dqn: Optional[LightweightDQN] = None, epsilon: float = 0.0,
                 use_hard_rules: bool = True, seed: Optional[int] = None):
        super().__init__(use_hard_rules=use_hard_rules, seed=seed)
        self.dqn = dqn if dqn is not None else LightweightDQN()
        self.epsilon = epsilon

    def choose(self, vector, category: DecisionCategory) -> int:
        return self.dqn.select_action(vector, category, self.epsilon, rng=self.rng)

    def __repr__(self):
        return f"DQNBotStrategy(epsilon={self.epsilon})"


class StrategyFactory:
    """Creates seat strategies from their tag."""

    LEARNED = ('ml', 'dqn')

    @staticmethod
    def available_strategies() -> List[str]:
        return list(HEURISTIC_BOTS) + list(StrategyFactory.LEARNED)

    @staticmethod
    def create(tag: str, options: Optional[Dict] = None) -> BotStrategy:
        """
        Build a strategy.

        Options:
            seed: RNG seed for the strategy's own choices
            policy: shared BanditPolicy for 'ml'
            dqn / epsilon: network and exploration rate for 'dqn'
            use_hard_rules: toggle the joker safety rules (default on)
        """
        options = options or {}
        key = tag.lower() if isinstance(tag, str) else tag
        seed = options.get('seed')

        if key in HEURISTIC_BOTS:
            return HEURISTIC_BOTS[key](seed=seed)
        if key == 'ml':
            return MLBotStrategy(policy=options.get('policy'),
                                 use_hard_rules=options.get('use_hard_rules', True),
                                 seed=seed)
        if key == 'dqn':
            return DQNBotStrategy(dqn=options.get('dqn'),
                                  epsilon=options.get('epsilon', 0.0),
                                  use_hard_rules=options.get('use_hard_rules', True),
                                  seed=seed)
        raise ValidationError(
            f"Unknown strategy {tag!r}; expected one of "
            f"{', '.join(StrategyFactory.available_strategies())}")
