"""
Card Model - Card identifiers, point values, and play analysis for ZapZap.

A deck has 54 cards identified by integers:
- 0..51: standard cards, rank = id % 13 (Ace..King), suit = id // 13
- 52, 53: jokers (0 points, wildcards in combinations)

Valid plays:
- Any single card
- Same-rank sets of 2+ cards (jokers substitute for any rank, max 4 cards)
- Same-suit sequences of 3+ cards (jokers fill rank gaps)
"""

import random
from enum import Enum
from typing import List, Optional, Sequence

DECK_SIZE = 54
JOKER_START = 52
NUM_RANKS = 13
NUM_SUITS = 4

JOKER_PENALTY = 25          # Joker value when scoring a losing hand
ZAPZAP_THRESHOLD = 5        # Max hand value to call ZapZap
MAX_SAME_RANK = 4

RANK_NAMES = ['A', '2', '3', '4', '5', '6', '7', '8', '9', '10', 'J', 'Q', 'K']
SUIT_NAMES = ['S', 'H', 'C', 'D']


class DrawSource(str, Enum):
    DECK = "deck"
    PLAYED = "played"


def is_joker(card_id: int) -> bool:
    return card_id >= JOKER_START


def get_rank(card_id: int) -> Optional[int]:
    if is_joker(card_id):
        return None
    return card_id % NUM_RANKS


def get_suit(card_id: int) -> Optional[int]:
    if is_joker(card_id):
        return None
    return card_id // NUM_RANKS


def get_card_points(card_id: int) -> int:
    """Ace=1 ... King=13, jokers are worth nothing for eligibility."""
    if is_joker(card_id):
        return 0
    return card_id % NUM_RANKS + 1


def card_name(card_id: int) -> str:
    if is_joker(card_id):
        return "JK"
    return f"{RANK_NAMES[card_id % NUM_RANKS]}{SUIT_NAMES[card_id // NUM_RANKS]}"


def is_valid_card(card_id) -> bool:
    return isinstance(card_id, int) and not isinstance(card_id, bool) \
        and 0 <= card_id < DECK_SIZE


# ── Hand valuation ───────────────────────────────────────────────────

def hand_value(hand: Sequence[int]) -> int:
    """Base point value of a hand (jokers count 0)."""
    return sum(get_card_points(c) for c in hand)


def hand_score(hand: Sequence[int], is_lowest: bool = False) -> int:
    """Points added to a player's total at round end.

    Jokers cost JOKER_PENALTY unless the holder has the lowest hand.
    """
    total = 0
    for card in hand:
        if is_joker(card):
            total += 0 if is_lowest else JOKER_PENALTY
        else:
            total += get_card_points(card)
    return total


def can_call_zapzap(hand: Sequence[int]) -> bool:
    return hand_value(hand) <= ZAPZAP_THRESHOLD


# ── Play validation ──────────────────────────────────────────────────

def is_valid_same_rank(cards: Sequence[int]) -> bool:
    if len(cards) < 2:
        return False
    ranks = {get_rank(c) for c in cards if not is_joker(c)}
    return len(ranks) <= 1


def _gaps_needed(ranks: List[int]) -> int:
    gaps = 0
    for prev, cur in zip(ranks, ranks[1:]):
        diff = cur - prev - 1
        if diff > 0:
            gaps += diff
    return gaps


def is_valid_sequence(cards: Sequence[int]) -> bool:
    if len(cards) < 3:
        return False
    jokers = [c for c in cards if is_joker(c)]
    normal = [c for c in cards if not is_joker(c)]
    if not normal:
        return True
    if len({get_suit(c) for c in normal}) > 1:
        return False
    ranks = sorted(get_rank(c) for c in normal)
    if len(set(ranks)) != len(ranks):
        return False
    return _gaps_needed(ranks) <= len(jokers)


def is_valid_play(cards: Sequence[int]) -> bool:
    if not cards:
        return False
    if len(cards) == 1:
        return True
    return is_valid_same_rank(cards) or is_valid_sequence(cards)


# ── Play enumeration ─────────────────────────────────────────────────

def find_same_rank_plays(hand: Sequence[int]) -> List[List[int]]:
    if len(hand) < 2:
        return []

    jokers = [c for c in hand if is_joker(c)]
    by_rank: List[List[int]] = [[] for _ in range(NUM_RANKS)]
    for card in hand:
        if not is_joker(card):
            by_rank[get_rank(card)].append(card)

    plays = []
    for cards in by_rank:
        if len(cards) >= 2:
            plays.append(list(cards))
            for j in range(1, min(len(jokers), MAX_SAME_RANK - len(cards)) + 1):
                plays.append(list(cards) + jokers[:j])
        elif len(cards) == 1 and jokers:
            for j in range(1, len(jokers) + 1):
                plays.append([cards[0]] + jokers[:j])
    return plays


def find_sequence_plays(hand: Sequence[int]) -> List[List[int]]:
    if len(hand) < 3:
        return []

    jokers = [c for c in hand if is_joker(c)]
    by_suit: List[List[int]] = [[] for _ in range(NUM_SUITS)]
    for card in hand:
        if not is_joker(card):
            by_suit[get_suit(card)].append(card)

    plays = []
    for cards in by_suit:
        if len(cards) + len(jokers) < 3:
            continue
        cards = sorted(cards, key=get_rank)
        for start in range(len(cards)):
            for end in range(start + 3, len(cards) + 1):
                subset = cards[start:end]
                ranks = [get_rank(c) for c in subset]
                if len(set(ranks)) != len(ranks):
                    continue
                gaps = _gaps_needed(ranks)
                if gaps <= len(jokers):
                    plays.append(subset + jokers[:gaps])
    return plays


def find_all_valid_plays(hand: Sequence[int]) -> List[List[int]]:
    """Singles first, then same-rank sets, then sequences."""
    if not hand:
        return []
    plays = [[card] for card in hand]
    plays.extend(find_same_rank_plays(hand))
    plays.extend(find_sequence_plays(hand))
    return plays


def find_max_point_play(hand: Sequence[int]) -> Optional[List[int]]:
    plays = find_all_valid_plays(hand)
    if not plays:
        return None
    return max(plays, key=hand_value)


def find_high_value_play(hand: Sequence[int]) -> Optional[List[int]]:
    """Play shedding the most 10/J/Q/K cards, ties broken by points."""
    plays = find_all_valid_plays(hand)
    if not plays:
        return None

    def high_count(play):
        return sum(1 for c in play if not is_joker(c) and get_rank(c) >= 9)

    return max(plays, key=lambda p: (high_count(p), hand_value(p)))


def find_random_play(hand: Sequence[int],
                     rng: Optional[random.Random] = None) -> Optional[List[int]]:
    plays = find_all_valid_plays(hand)
    if not plays:
        return None
    rng = rng or random
    return list(rng.choice(plays))


def remaining_after(hand: Sequence[int], play: Sequence[int]) -> List[int]:
    played = set(play)
    return [c for c in hand if c not in played]


def evaluate_card_value(card_id: int, hand: Sequence[int]) -> int:
    """Heuristic gain from adding `card_id` to `hand`.

    Rewards new multi-card combinations, low point values, and rank matches.
    """
    test_hand = list(hand) + [card_id]
    original_multi = sum(1 for p in find_all_valid_plays(hand) if len(p) > 1)
    new_multi = sum(1 for p in find_all_valid_plays(test_hand)
                    if len(p) > 1 and card_id in p)
    combination_bonus = (new_multi - original_multi) * 10
    low_value_bonus = 10 - get_card_points(card_id)

    set_bonus = 0
    if not is_joker(card_id):
        rank = get_rank(card_id)
        same_rank = sum(1 for c in hand if not is_joker(c) and get_rank(c) == rank)
        set_bonus = same_rank * 5
    return combination_bonus + low_value_bonus + set_bonus


def new_deck() -> List[int]:
    return list(range(DECK_SIZE))
