"""
Game State Encoder - Bridges ZapZap game observations to the learning policies.

Converts a seat's raw view of the game (card ids, integer scores, counts) into:
1. A fixed-length, normalized 45-slot feature vector for the value network
2. A discretized context key for the context-keyed bandit estimator

Layout (index ranges):
    0-9    hand composition
    10-19  game context (slot 14 is the golden-score flag, exactly 0 or 1)
    20-27  scoring
    28-37  opponent modeling
    38-42  seat position
    43-44  hand quality

Values are normalized to [0, 1] except score_gap in [-1, 1] and
elimination_risk in {0, 1, 2}. Absent opponents contribute nothing to the
opponent aggregates; eliminated seats are reflected in active_players.
"""

import math
from typing import Dict, List, Optional, Sequence

import numpy as np

from game.cards import DECK_SIZE, JOKER_START, NUM_RANKS, find_all_valid_plays, \
    find_same_rank_plays, find_sequence_plays, is_valid_card
from game.engine import ELIMINATION_SCORE, MAX_GOLDEN_HAND_SIZE
from zapzap_ai.categories import DecisionCategory
from zapzap_ai.errors import ValidationError

FEATURE_DIM = 45
GOLDEN_SCORE_INDEX = 14
MAX_HAND_CARDS = MAX_GOLDEN_HAND_SIZE
MIN_PLAYERS = 2
MAX_PLAYERS = 4

FEATURE_NAMES = [
    # Hand (10)
    'hand_value', 'hand_size', 'joker_count', 'has_pairs', 'has_sequences',
    'can_zapzap', 'multi_card_plays', 'high_cards', 'low_cards', 'best_play_size',
    # Game context (10)
    'round_number', 'deck_remaining', 'discard_size', 'active_players',
    'is_golden_score', 'early_game', 'mid_game', 'late_game',
    'discard_has_joker', 'discard_has_low_card',
    # Scoring (8)
    'my_score', 'min_opponent_score', 'max_opponent_score', 'avg_opponent_score',
    'score_gap', 'score_risk', 'elimination_risk', 'elimination_proximity',
    # Opponents (10)
    'min_opponent_hand', 'avg_opponent_hand', 'opponent_close_to_zapzap',
    'opponent_close_to_win', 'should_keep_jokers', 'zapzap_threats',
    'elimination_threats', 'dangerous_opponent_next', 'is_score_leader',
    'is_score_trailer',
    # Position (5)
    'position', 'relative_position', 'is_first_position', 'is_last_position',
    'position_bucket',
    # Hand quality (2)
    'suit_concentration', 'rank_spread',
]
FEATURE_INDEX = {name: i for i, name in enumerate(FEATURE_NAMES)}

assert len(FEATURE_NAMES) == FEATURE_DIM
assert FEATURE_INDEX['is_golden_score'] == GOLDEN_SCORE_INDEX


def get_feature_dimension() -> int:
    return FEATURE_DIM


def _check_int(name: str, value, low: int, high: Optional[int] = None):
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < low or (high is not None and value > high):
        bound = f"[{low}, {high}]" if high is not None else f">= {low}"
        raise ValidationError(f"{name}={value} out of range {bound}")


def _check_cards(name: str, cards):
    for card in cards:
        if not is_valid_card(int(card) if isinstance(card, np.integer) else card):
            raise ValidationError(f"{name} contains invalid card id {card!r}")


def validate_inputs(hand, own_index, all_scores, opponent_hand_sizes,
                    round_number, cards_remaining_in_deck, recently_played,
                    is_golden_score, eliminated_indices):
    """Fail fast on malformed extractor input."""
    player_count = len(all_scores)
    if not MIN_PLAYERS <= player_count <= MAX_PLAYERS:
        raise ValidationError(
            f"Expected {MIN_PLAYERS}-{MAX_PLAYERS} scores, got {player_count}")
    _check_int('own_index', own_index, 0, player_count - 1)
    for i, score in enumerate(all_scores):
        _check_int(f'all_scores[{i}]', score, 0)

    if len(hand) > MAX_HAND_CARDS:
        raise ValidationError(
            f"Hand of {len(hand)} cards exceeds the maximum of {MAX_HAND_CARDS}")
    _check_cards('hand', hand)
    if len(set(hand)) != len(hand):
        raise ValidationError(f"Hand contains duplicate cards: {list(hand)}")

    if len(opponent_hand_sizes) != player_count - 1:
        raise ValidationError(
            f"Expected {player_count - 1} opponent hand sizes, "
            f"got {len(opponent_hand_sizes)}")
    for i, size in enumerate(opponent_hand_sizes):
        _check_int(f'opponent_hand_sizes[{i}]', size, 0, DECK_SIZE)

    _check_int('round_number', round_number, 0)
    _check_int('cards_remaining_in_deck', cards_remaining_in_deck, 0, DECK_SIZE)
    _check_cards('recently_played', recently_played)

    if not isinstance(is_golden_score, (bool, np.bool_)):
        raise ValidationError(f"is_golden_score must be a bool, got {is_golden_score!r}")

    for seat in eliminated_indices:
        _check_int('eliminated index', seat, 0, player_count - 1)
    if own_index in eliminated_indices:
        raise ValidationError(f"Seat {own_index} is eliminated and cannot decide")


def _opponent_seats(own_index: int, player_count: int) -> List[int]:
    return [s for s in range(player_count) if s != own_index]


class FeatureExtractor:
    """
    Vectorized feature extractor. Pure: no randomness, no clock, no state.
    """

    feature_dim = FEATURE_DIM

    def extract(self, hand: Sequence[int], own_index: int,
                all_scores: Sequence[int], opponent_hand_sizes: Sequence[int],
                round_number: int, cards_remaining_in_deck: int,
                recently_played: Sequence[int], is_golden_score: bool,
                eliminated_indices: Sequence[int] = ()) -> np.ndarray:
        """
        Extract the 45-slot feature vector for one seat's decision.

        opponent_hand_sizes lists every other seat in seat order (own seat
        omitted). Returns a read-only float64 array.
        """
        hand = list(hand)
        validate_inputs(hand, own_index, all_scores, opponent_hand_sizes,
                        round_number, cards_remaining_in_deck, recently_played,
                        is_golden_score, eliminated_indices)

        player_count = len(all_scores)
        eliminated = set(int(s) for s in eliminated_indices)
        golden = bool(is_golden_score)
        f = np.zeros(FEATURE_DIM, dtype=np.float64)

        # ── Hand composition ─────────────────────────────────────────
        cards = np.asarray(hand, dtype=np.int64)
        normal = cards[cards < JOKER_START]
        ranks = normal % NUM_RANKS
        hand_val = float((ranks + 1).sum())
        jokers = cards.size - normal.size

        plays = find_all_valid_plays(hand)
        play_sizes = np.array([len(p) for p in plays] or [1])
        multi_plays = int(np.count_nonzero(play_sizes > 1))

        f[0] = min(hand_val / 100.0, 1.0)
        f[1] = min(cards.size / 10.0, 1.0)
        f[2] = min(jokers / 2.0, 1.0)
        f[3] = 1.0 if find_same_rank_plays(hand) else 0.0
        f[4] = 1.0 if find_sequence_plays(hand) else 0.0
        f[5] = 1.0 if hand_val <= 5 else 0.0
        f[6] = min(multi_plays / 10.0, 1.0)
        f[7] = min(np.count_nonzero(ranks >= 9) / 5.0, 1.0)
        f[8] = min(np.count_nonzero(ranks < 4) / 5.0, 1.0)
        f[9] = min(play_sizes.max() / 5.0, 1.0)

        # ── Game context ─────────────────────────────────────────────
        played = np.asarray(list(recently_played), dtype=np.int64)
        played_normal = played[played < JOKER_START]
        active_count = player_count - len(eliminated)

        f[10] = min(round_number / 10.0, 1.0)
        f[11] = min(cards_remaining_in_deck / 54.0, 1.0)
        f[12] = min(played.size / 5.0, 1.0)
        f[13] = min(active_count / 4.0, 1.0)
        f[GOLDEN_SCORE_INDEX] = 1.0 if golden else 0.0
        f[15] = 1.0 if round_number <= 2 else 0.0
        f[16] = 1.0 if 2 < round_number <= 5 else 0.0
        f[17] = 1.0 if round_number > 5 else 0.0
        f[18] = 1.0 if played.size > played_normal.size else 0.0
        f[19] = 1.0 if np.any(played_normal % NUM_RANKS < 4) else 0.0

        # ── Scoring ──────────────────────────────────────────────────
        opp_seats = _opponent_seats(own_index, player_count)
        active_mask = np.array([s not in eliminated for s in opp_seats], dtype=bool)
        opp_scores = np.asarray([all_scores[s] for s in opp_seats],
                                dtype=np.float64)[active_mask]
        opp_sizes = np.asarray(list(opponent_hand_sizes), dtype=np.float64)[active_mask]
        my_score = float(all_scores[own_index])

        min_opp = float(opp_scores.min()) if opp_scores.size else 0.0
        max_opp = float(opp_scores.max()) if opp_scores.size else 0.0
        avg_opp = float(opp_scores.mean()) if opp_scores.size else 0.0

        f[20] = min(my_score / 100.0, 1.0)
        f[21] = min(min_opp / 100.0, 1.0)
        f[22] = min(max_opp / 100.0, 1.0)
        f[23] = min(avg_opp / 100.0, 1.0)
        f[24] = float(np.clip((min_opp - my_score) / 50.0, -1.0, 1.0))
        f[25] = 1.0 if my_score > 80 else (0.5 if my_score > 60 else 0.0)
        f[26] = 2.0 if my_score > 90 else (1.0 if my_score > 75 else 0.0)
        f[27] = max((ELIMINATION_SCORE - my_score) / 100.0, 0.0)

        # ── Opponent modeling ────────────────────────────────────────
        min_size = float(opp_sizes.min()) if opp_sizes.size else 0.0
        avg_size = float(opp_sizes.mean()) if opp_sizes.size else 0.0

        f[28] = min(min_size / 10.0, 1.0)
        f[29] = min(avg_size / 10.0, 1.0)
        f[30] = 1.0 if min_size <= 3 else 0.0
        f[31] = 1.0 if min_size <= 2 else 0.0
        f[32] = 1.0 if min_size > 3 and not golden else 0.0
        f[33] = min(int(np.count_nonzero(opp_sizes <= 3)), 3) / 3.0
        f[34] = min(int(np.count_nonzero(opp_scores > 85)), 3) / 3.0
        f[35] = 1.0 if self._dangerous_next(own_index, player_count, eliminated,
                                            opp_seats, opponent_hand_sizes) else 0.0
        f[36] = 1.0 if np.all(opp_scores >= my_score) else 0.0
        f[37] = 1.0 if np.all(opp_scores <= my_score) else 0.0

        # ── Position ─────────────────────────────────────────────────
        last_seat = player_count - 1
        f[38] = min(own_index / 3.0, 1.0)
        f[39] = min(own_index / (active_count - 1), 1.0) if active_count > 1 else 0.0
        f[40] = 1.0 if own_index == 0 else 0.0
        f[41] = 1.0 if own_index == last_seat else 0.0
        bucket = 0.0 if own_index == 0 else (2.0 if own_index == last_seat else 1.0)
        f[42] = bucket / 2.0

        # ── Hand quality ─────────────────────────────────────────────
        if cards.size:
            suit_counts = np.bincount(normal // NUM_RANKS, minlength=4)
            f[43] = suit_counts.max() / cards.size
        if ranks.size > 1:
            f[44] = (ranks.max() - ranks.min()) / 12.0

        f.flags.writeable = False
        return f

    @staticmethod
    def _dangerous_next(own_index, player_count, eliminated, opp_seats,
                        opponent_hand_sizes) -> bool:
        sizes = dict(zip(opp_seats, opponent_hand_sizes))
        for offset in range(1, player_count):
            seat = (own_index + offset) % player_count
            if seat not in eliminated:
                return sizes[seat] <= 3
        return False

    def extract_view(self, view) -> np.ndarray:
        """Extract from a game.game_state.PlayerView."""
        return self.extract(**view.extract_kwargs())

    def extract_hand_size_features(self, active_player_count: int,
                                   is_golden_score: bool,
                                   my_score: int) -> np.ndarray:
        """Features for the hand-size choice, made before cards are dealt."""
        _check_int('active_player_count', active_player_count, 1, MAX_PLAYERS)
        _check_int('my_score', my_score, 0)
        score = float(my_score)
        default_hand = 10.0 if is_golden_score else 7.0

        f = np.zeros(FEATURE_DIM, dtype=np.float64)
        f[9] = 0.2                      # best play size of one card
        f[10] = 0.1                     # first round
        f[11] = 1.0                     # full deck
        f[13] = min(active_player_count / 4.0, 1.0)
        f[GOLDEN_SCORE_INDEX] = 1.0 if is_golden_score else 0.0
        f[15] = 1.0                     # early game
        f[20:24] = min(score / 100.0, 1.0)
        f[25] = 1.0 if score > 80 else (0.5 if score > 60 else 0.0)
        f[26] = 2.0 if score > 90 else (1.0 if score > 75 else 0.0)
        f[27] = max((ELIMINATION_SCORE - score) / 100.0, 0.0)
        f[28] = min(default_hand / 10.0, 1.0)
        f[29] = min(default_hand / 10.0, 1.0)
        f.flags.writeable = False
        return f

    @staticmethod
    def describe(vector) -> Dict[str, float]:
        return {name: float(vector[i]) for i, name in enumerate(FEATURE_NAMES)}

    # ── Context discretization ───────────────────────────────────────

    @staticmethod
    def context_key(vector, category) -> str:
        """
        Bucket a feature vector into the bandit's context key for a category.

        Every 45-slot finite vector maps to exactly one key; slots are
        de-normalized and rounded, so keys are stable across runs.
        """
        category = DecisionCategory.parse(category)
        v = check_vector(vector)

        def count(index, scale):
            return int(round(v[index] * scale))

        def flag(index):
            return 1 if v[index] >= 0.5 else 0

        hand_value = count(0, 100)
        if category == DecisionCategory.HAND_SIZE:
            parts = [('ap', count(13, 4)), ('g', flag(14)),
                     ('sr', int(math.floor(v[25] * 2)))]
        elif category == DecisionCategory.ZAPZAP:
            gap = v[24]
            parts = [('hv', min(hand_value, 5)),
                     ('rd', min(count(10, 10) // 2, 5)),
                     ('oh', min(count(28, 10) // 2, 3)),
                     ('g', flag(14)),
                     ('gap', int(np.sign(gap))),
                     ('first', flag(40))]
        elif category == DecisionCategory.PLAY_TYPE:
            phase = 0 if flag(15) else (1 if flag(16) else 2)
            parts = [('hv', min(hand_value // 5, 10)),
                     ('hs', min(count(1, 10), 10)),
                     ('pr', flag(3)), ('sq', flag(4)),
                     ('jk', min(count(2, 2), 2)),
                     ('oh', min(count(28, 10) // 2, 3)),
                     ('cw', flag(31)), ('g', flag(14)),
                     ('ph', phase), ('er', count(26, 1)),
                     ('th', count(33, 3)), ('ld', flag(36)),
                     ('first', flag(40))]
        else:
            parts = [('hv', min(hand_value // 5, 10)),
                     ('dj', flag(18)), ('dl', flag(19)),
                     ('ds', min(count(12, 5), 4)),
                     ('g', flag(14)), ('cw', flag(31)),
                     ('kj', flag(32)), ('dn', flag(35)),
                     ('first', flag(40))]
        return "|".join(f"{name}={value}" for name, value in parts)


def check_vector(vector) -> np.ndarray:
    """Validate a feature vector's shape and finiteness."""
    v = np.asarray(vector, dtype=np.float64)
    if v.shape != (FEATURE_DIM,):
        raise ValidationError(
            f"Feature vector must have shape ({FEATURE_DIM},), got {v.shape}")
    if not np.all(np.isfinite(v)):
        raise ValidationError("Feature vector contains non-finite values")
    return v


_DEFAULT_EXTRACTOR = FeatureExtractor()


def extract_features(hand, own_index, all_scores, opponent_hand_sizes,
                     round_number, cards_remaining_in_deck, recently_played,
                     is_golden_score, eliminated_indices=()) -> np.ndarray:
    return _DEFAULT_EXTRACTOR.extract(
        hand, own_index, all_scores, opponent_hand_sizes, round_number,
        cards_remaining_in_deck, recently_played, is_golden_score,
        eliminated_indices)
