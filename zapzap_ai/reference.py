"""
Reference implementations - plain-Python counterparts of the encoder and DQN.

These favour obviousness over speed: explicit loops, lists of floats, no
NumPy. The conformance harness runs them side by side with the vectorized
versions and asserts numeric agreement.
"""

from typing import Dict, List, Sequence

from game.cards import JOKER_START, find_all_valid_plays, find_same_rank_plays, \
    find_sequence_plays, get_card_points, get_rank, get_suit, is_joker
from zapzap_ai.categories import DecisionCategory
from zapzap_ai.encoder import FEATURE_DIM, validate_inputs
from zapzap_ai.errors import ValidationError


def reference_extract(hand: Sequence[int], own_index: int,
                      all_scores: Sequence[int],
                      opponent_hand_sizes: Sequence[int], round_number: int,
                      cards_remaining_in_deck: int,
                      recently_played: Sequence[int], is_golden_score: bool,
                      eliminated_indices: Sequence[int] = ()) -> List[float]:
    hand = list(hand)
    validate_inputs(hand, own_index, all_scores, opponent_hand_sizes,
                    round_number, cards_remaining_in_deck, recently_played,
                    is_golden_score, eliminated_indices)
    eliminated = set(eliminated_indices)
    player_count = len(all_scores)

    hand_val = 0
    jokers = 0
    high = 0
    low = 0
    for card in hand:
        if is_joker(card):
            jokers += 1
            continue
        hand_val += get_card_points(card)
        if get_rank(card) >= 9:
            high += 1
        if get_rank(card) < 4:
            low += 1

    plays = find_all_valid_plays(hand)
    multi = 0
    best = 1
    for play in plays:
        if len(play) > 1:
            multi += 1
        best = max(best, len(play))

    opp_scores = []
    opp_sizes = []
    size_by_seat = {}
    j = 0
    for seat in range(player_count):
        if seat == own_index:
            continue
        size_by_seat[seat] = opponent_hand_sizes[j]
        if seat not in eliminated:
            opp_scores.append(all_scores[seat])
            opp_sizes.append(opponent_hand_sizes[j])
        j += 1

    my = all_scores[own_index]
    min_opp = min(opp_scores) if opp_scores else 0
    max_opp = max(opp_scores) if opp_scores else 0
    avg_opp = sum(opp_scores) / len(opp_scores) if opp_scores else 0.0
    min_size = min(opp_sizes) if opp_sizes else 0
    avg_size = sum(opp_sizes) / len(opp_sizes) if opp_sizes else 0.0
    active = player_count - len(eliminated)

    dangerous = False
    for offset in range(1, player_count):
        seat = (own_index + offset) % player_count
        if seat not in eliminated:
            dangerous = size_by_seat[seat] <= 3
            break

    if my > 80:
        score_risk = 1.0
    elif my > 60:
        score_risk = 0.5
    else:
        score_risk = 0.0
    if my > 90:
        elim_risk = 2.0
    elif my > 75:
        elim_risk = 1.0
    else:
        elim_risk = 0.0

    gap = (min_opp - my) / 50.0
    gap = max(-1.0, min(1.0, gap))

    if own_index == 0:
        bucket = 0.0
    elif own_index == player_count - 1:
        bucket = 2.0
    else:
        bucket = 1.0

    suit_counts = [0, 0, 0, 0]
    ranks = []
    for card in hand:
        if not is_joker(card):
            suit_counts[get_suit(card)] += 1
            ranks.append(get_rank(card))
    suit_conc = max(suit_counts) / len(hand) if hand else 0.0
    spread = (max(ranks) - min(ranks)) / 12.0 if len(ranks) > 1 else 0.0

    def b(cond):
        return 1.0 if cond else 0.0

    vector = [
        min(hand_val / 100.0, 1.0),
        min(len(hand) / 10.0, 1.0),
        min(jokers / 2.0, 1.0),
        b(find_same_rank_plays(hand)),
        b(find_sequence_plays(hand)),
        b(hand_val <= 5),
        min(multi / 10.0, 1.0),
        min(high / 5.0, 1.0),
        min(low / 5.0, 1.0),
        min(best / 5.0, 1.0),

        min(round_number / 10.0, 1.0),
        min(cards_remaining_in_deck / 54.0, 1.0),
        min(len(recently_played) / 5.0, 1.0),
        min(active / 4.0, 1.0),
        b(is_golden_score),
        b(round_number <= 2),
        b(2 < round_number <= 5),
        b(round_number > 5),
        b(any(c >= JOKER_START for c in recently_played)),
        b(any(c < JOKER_START and c % 13 < 4 for c in recently_played)),

        min(my / 100.0, 1.0),
        min(min_opp / 100.0, 1.0),
        min(max_opp / 100.0, 1.0),
        min(avg_opp / 100.0, 1.0),
        gap,
        score_risk,
        elim_risk,
        max((100 - my) / 100.0, 0.0),

        min(min_size / 10.0, 1.0),
        min(avg_size / 10.0, 1.0),
        b(min_size <= 3),
        b(min_size <= 2),
        b(min_size > 3 and not is_golden_score),
        min(sum(1 for s in opp_sizes if s <= 3), 3) / 3.0,
        min(sum(1 for s in opp_scores if s > 85), 3) / 3.0,
        b(dangerous),
        b(all(s >= my for s in opp_scores)),
        b(all(s <= my for s in opp_scores)),

        min(own_index / 3.0, 1.0),
        min(own_index / (active - 1), 1.0) if active > 1 else 0.0,
        b(own_index == 0),
        b(own_index == player_count - 1),
        bucket / 2.0,

        suit_conc,
        spread,
    ]
    assert len(vector) == FEATURE_DIM
    return [float(x) for x in vector]


class ReferenceDQN:
    """Loop-based forward pass over the same compact weights."""

    def __init__(self, weights: Dict[str, List[Dict[str, list]]]):
        self.layers: Dict[DecisionCategory, list] = {}
        for key, layer_list in weights.items():
            category = DecisionCategory.parse(key)
            self.layers[category] = [
                ([list(map(float, row)) for row in layer['weights']],
                 [float(x) for x in layer['bias']])
                for layer in layer_list
            ]

    @classmethod
    def from_model(cls, model) -> 'ReferenceDQN':
        return cls(model.get_weights())

    def predict(self, vector: Sequence[float], category) -> List[float]:
        category = DecisionCategory.parse(category)
        if len(vector) != FEATURE_DIM:
            raise ValidationError(f"Expected {FEATURE_DIM} features, got {len(vector)}")
        x = [float(v) for v in vector]
        layers = self.layers[category]
        for i, (weights, bias) in enumerate(layers):
            out = list(bias)
            for row, xi in zip(weights, x):
                if xi == 0.0:
                    continue
                for k, w in enumerate(row):
                    out[k] += xi * w
            if i < len(layers) - 1:
                out = [v if v > 0.0 else 0.0 for v in out]
            x = out
        return x

    def greedy_action(self, vector: Sequence[float], category) -> int:
        q = self.predict(vector, category)
        best = 0
        for i in range(1, len(q)):
            if q[i] > q[best]:
                best = i
        return best
