"""
Conformance harness - runs the vectorized and reference implementations
side by side over a shared fixture corpus and reports numeric disagreement.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from game.cards import DECK_SIZE
from zapzap_ai.categories import DecisionCategory
from zapzap_ai.encoder import MAX_HAND_CARDS, FeatureExtractor
from zapzap_ai.policy import LightweightDQN
from zapzap_ai.reference import ReferenceDQN, reference_extract

logger = logging.getLogger(__name__)

# Four-player mid-game position with two same-rank pairs in hand
SCENARIO_FIXTURE = {
    'hand': [0, 13, 5, 18],
    'own_index': 0,
    'all_scores': [30, 40, 50, 60],
    'opponent_hand_sizes': [4, 5, 4],
    'round_number': 3,
    'cards_remaining_in_deck': 30,
    'recently_played': [1],
    'is_golden_score': False,
    'eliminated_indices': [],
}


@dataclass
class ParityReport:
    checked: int = 0
    max_abs_diff: float = 0.0
    feature_max_abs_diff: float = 0.0
    mismatches: List[str] = field(default_factory=list)
    tolerance: float = 1e-9

    @property
    def passed(self) -> bool:
        return (not self.mismatches
                and self.max_abs_diff <= self.tolerance
                and self.feature_max_abs_diff <= self.tolerance)

    def to_dict(self) -> Dict:
        return {
            'checked': self.checked,
            'max_abs_diff': self.max_abs_diff,
            'feature_max_abs_diff': self.feature_max_abs_diff,
            'mismatches': list(self.mismatches),
            'passed': self.passed,
        }


def random_fixture(rng: random.Random) -> Dict:
    """One random but valid extractor input."""
    player_count = rng.randint(2, 4)
    own_index = rng.randrange(player_count)
    others = [s for s in range(player_count) if s != own_index]
    eliminated = sorted(s for s in others if rng.random() < 0.2)
    golden = player_count - len(eliminated) == 2 and rng.random() < 0.7

    deck = list(range(DECK_SIZE))
    rng.shuffle(deck)
    hand = deck[:rng.randint(0, MAX_HAND_CARDS)]
    rest = deck[len(hand):]
    recent = rest[:rng.randint(0, 4)]

    return {
        'hand': hand,
        'own_index': own_index,
        'all_scores': [rng.randint(0, 120) for _ in range(player_count)],
        'opponent_hand_sizes': [0 if s in eliminated else rng.randint(1, MAX_HAND_CARDS)
                                for s in others],
        'round_number': rng.randint(1, 12),
        'cards_remaining_in_deck': rng.randint(0, len(rest) - len(recent)),
        'recently_played': recent,
        'is_golden_score': golden,
        'eliminated_indices': eliminated,
    }


def build_fixture_corpus(seed: int = 0, size: int = 200) -> List[Dict]:
    """Seeded corpus of extractor inputs; always starts with the scenario fixture."""
    rng = random.Random(seed)
    corpus = [dict(SCENARIO_FIXTURE)]
    while len(corpus) < size:
        corpus.append(random_fixture(rng))
    return corpus


def check_parity(optimized: LightweightDQN, reference: ReferenceDQN,
                 corpus: List[Dict], tolerance: float = 1e-9) -> ParityReport:
    """
    Compare extractor output and per-category Q-values / greedy actions.

    The reference network is fed the optimized extractor's vector, so a
    feature disagreement is reported once rather than echoed in every Q-value.
    """
    extractor = FeatureExtractor()
    report = ParityReport(tolerance=tolerance)

    for i, fixture in enumerate(corpus):
        fast = extractor.extract(**fixture)
        slow = np.asarray(reference_extract(**fixture))
        feature_diff = float(np.max(np.abs(fast - slow)))
        report.feature_max_abs_diff = max(report.feature_max_abs_diff, feature_diff)
        if feature_diff > tolerance:
            report.mismatches.append(f"fixture {i}: features differ by {feature_diff:.3g}")

        for category in DecisionCategory:
            q_fast = optimized.predict(fast, category)
            q_slow = np.asarray(reference.predict(list(fast), category))
            diff = float(np.max(np.abs(q_fast - q_slow)))
            report.max_abs_diff = max(report.max_abs_diff, diff)
            if diff > tolerance:
                report.mismatches.append(
                    f"fixture {i} {category.value}: Q-values differ by {diff:.3g}")
            a_fast = optimized.greedy_action(fast, category)
            a_slow = reference.greedy_action(list(fast), category)
            if a_fast != a_slow:
                report.mismatches.append(
                    f"fixture {i} {category.value}: greedy {a_fast} != {a_slow}")
        report.checked += 1

    if report.passed:
        logger.info(f"Parity passed on {report.checked} fixtures "
                    f"(max diff {report.max_abs_diff:.3g})")
    else:
        logger.warning(f"Parity failed: {len(report.mismatches)} mismatches")
    return report


def run_conformance(seed: int = 0, size: int = 200, dqn_seed: int = 42,
                    tolerance: float = 1e-9) -> ParityReport:
    optimized = LightweightDQN.init(dqn_seed)
    reference = ReferenceDQN.from_model(optimized)
    return check_parity(optimized, reference, build_fixture_corpus(seed, size), tolerance)
