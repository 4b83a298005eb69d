"""
Tests for the ZapZap learning pipeline.

Tests cover:
- Feature extraction and validation
- Decision categories
- Lightweight DQN inference
- Context-keyed bandit: update, snapshot, diff, merge
- Policy-driven strategies and reward shaping
- Simulation statistics
- Batch simulation runner
"""

import sys
import os
import random
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import pytest

from game.cards import DrawSource, is_valid_play
from game.engine import GameResult, HeadlessGameEngine
from game.game_state import PlayerView
from game.ai_opponents import HardBot, MediumBot, EasyBot
from zapzap_ai.categories import DecisionCategory, PlayType
from zapzap_ai.conformance import SCENARIO_FIXTURE
from zapzap_ai.encoder import (
    FEATURE_DIM, FEATURE_INDEX, GOLDEN_SCORE_INDEX, FeatureExtractor,
    check_vector, extract_features, get_feature_dimension,
)
from zapzap_ai.errors import RunnerFailure, ValidationError
from zapzap_ai.policy import LightweightDQN
from zapzap_ai.bandit_policy import (
    OPTIMISTIC_VALUE, BanditPolicy, DeltaTable, PolicySnapshot, merge,
    save_snapshot, load_snapshot,
)
from zapzap_ai.ml_strategy import (
    DQNBotStrategy, MLBotStrategy, StrategyFactory, play_for_type, shaped_rewards,
)
from zapzap_ai.stats import SimulationStats
from zapzap_ai.parallel_worker import BatchResult, BatchSimulationRunner, check_assignment


def scenario(**overrides):
    kwargs = dict(SCENARIO_FIXTURE)
    kwargs.update(overrides)
    return kwargs


def make_view(hand, last=(), golden=False, scores=(0, 0)):
    sizes = [5] * len(scores)
    sizes[0] = len(hand)
    return PlayerView(
        seat=0,
        hand=tuple(hand),
        scores=tuple(scores),
        hand_sizes=tuple(sizes),
        round_number=2,
        deck_remaining=20,
        last_cards_played=tuple(last),
        is_golden_score=golden,
    )


class TestFeatureExtractor:
    def test_scenario_vector(self):
        f = FeatureExtractor().extract(**scenario())
        assert f.shape == (FEATURE_DIM,) == (get_feature_dimension(),)
        assert f.dtype == np.float64
        assert f[FEATURE_INDEX['hand_value']] == pytest.approx(0.14)
        assert f[FEATURE_INDEX['hand_size']] == pytest.approx(0.4)
        assert f[FEATURE_INDEX['has_pairs']] == 1.0
        assert f[FEATURE_INDEX['can_zapzap']] == 0.0
        assert f[FEATURE_INDEX['mid_game']] == 1.0
        assert f[FEATURE_INDEX['score_gap']] == pytest.approx(0.2)
        assert f[FEATURE_INDEX['is_score_leader']] == 1.0
        assert f[FEATURE_INDEX['is_first_position']] == 1.0
        assert f[FEATURE_INDEX['should_keep_jokers']] == 1.0

    def test_golden_flag(self):
        extractor = FeatureExtractor()
        assert extractor.extract(**scenario())[GOLDEN_SCORE_INDEX] == 0.0
        golden = extractor.extract(**scenario(is_golden_score=True))
        assert golden[GOLDEN_SCORE_INDEX] == 1.0

    def test_vector_is_read_only(self):
        f = FeatureExtractor().extract(**scenario())
        with pytest.raises(ValueError):
            f[0] = 1.0

    def test_values_in_range(self):
        rng = random.Random(5)
        extractor = FeatureExtractor()
        for _ in range(30):
            hand = rng.sample(range(54), rng.randint(0, 10))
            f = extractor.extract(hand, 1, [10, 20, 30], [4, 6], rng.randint(1, 9),
                                  rng.randint(0, 40), [], False)
            assert np.all(f >= -1.0) and np.all(f <= 2.0)

    def test_pure(self):
        extractor = FeatureExtractor()
        assert np.array_equal(extractor.extract(**scenario()), extractor.extract(**scenario()))
        assert np.array_equal(extract_features(**scenario()), extractor.extract(**scenario()))

    @pytest.mark.parametrize("overrides", [
        {'hand': list(range(11))},
        {'hand': [0, 0, 5]},
        {'hand': [54]},
        {'own_index': 4},
        {'all_scores': [30]},
        {'opponent_hand_sizes': [4, 5]},
        {'is_golden_score': 1},
        {'eliminated_indices': [0]},
        {'eliminated_indices': [7]},
        {'round_number': -1},
    ])
    def test_invalid_input_rejected(self, overrides):
        with pytest.raises(ValidationError):
            FeatureExtractor().extract(**scenario(**overrides))

    def test_eliminated_opponents_ignored(self):
        f = FeatureExtractor().extract(**scenario(eliminated_indices=[1]))
        assert f[FEATURE_INDEX['active_players']] == pytest.approx(0.75)
        # Seat 1 (score 40) no longer counts as the closest opponent
        assert f[FEATURE_INDEX['min_opponent_score']] == pytest.approx(0.5)

    def test_hand_size_features(self):
        extractor = FeatureExtractor()
        f = extractor.extract_hand_size_features(4, False, 30)
        assert f.shape == (FEATURE_DIM,)
        assert f[GOLDEN_SCORE_INDEX] == 0.0
        assert extractor.extract_hand_size_features(2, True, 30)[GOLDEN_SCORE_INDEX] == 1.0
        assert FeatureExtractor.context_key(f, DecisionCategory.HAND_SIZE) == "ap=4|g=0|sr=0"

    def test_context_key_stable(self):
        f = FeatureExtractor().extract(**scenario())
        keys = {FeatureExtractor.context_key(f, c) for c in DecisionCategory}
        assert len(keys) == 4
        assert FeatureExtractor.context_key(f, 'playType') == \
            FeatureExtractor.context_key(np.array(f), DecisionCategory.PLAY_TYPE)

    def test_context_key_every_category(self):
        f = FeatureExtractor().extract(**scenario())
        for category in DecisionCategory:
            key = FeatureExtractor.context_key(f, category)
            assert isinstance(key, str)
            assert all('=' in part for part in key.split('|'))
            assert key == FeatureExtractor.context_key(f, category.value)

    def test_zapzap_key_score_gap_sign(self):
        extractor = FeatureExtractor()
        trailing = extractor.extract(**scenario())
        leading = extractor.extract(**scenario(all_scores=[60, 40, 50, 30]))
        assert leading[FEATURE_INDEX['score_gap']] < 0
        assert 'gap=1' in FeatureExtractor.context_key(trailing, 'zapzap').split('|')
        assert 'gap=-1' in FeatureExtractor.context_key(leading, 'zapzap').split('|')
        assert 'gap=0' in FeatureExtractor.context_key(np.zeros(FEATURE_DIM), 'zapzap').split('|')

    def test_check_vector(self):
        with pytest.raises(ValidationError):
            check_vector(np.zeros(44))
        bad = np.zeros(FEATURE_DIM)
        bad[3] = np.nan
        with pytest.raises(ValidationError):
            check_vector(bad)


class TestDecisionCategory:
    def test_action_counts(self):
        assert DecisionCategory.HAND_SIZE.action_count == 7
        assert DecisionCategory.ZAPZAP.action_count == 2
        assert DecisionCategory.PLAY_TYPE.action_count == 5
        assert DecisionCategory.DRAW_SOURCE.action_count == 2

    def test_parse(self):
        assert DecisionCategory.parse('playType') is DecisionCategory.PLAY_TYPE
        assert DecisionCategory.parse('DRAW_SOURCE') is DecisionCategory.DRAW_SOURCE
        with pytest.raises(ValidationError):
            DecisionCategory.parse('bluff')

    def test_action_mapping(self):
        assert DecisionCategory.HAND_SIZE.action_value(0) == 4
        assert DecisionCategory.DRAW_SOURCE.action_index(DrawSource.PLAYED) == 1
        assert DecisionCategory.PLAY_TYPE.action_value(0) == PlayType.OPTIMAL
        with pytest.raises(ValidationError):
            DecisionCategory.HAND_SIZE.action_value(7)


class TestLightweightDQN:
    def test_seeded_init_is_deterministic(self):
        f = FeatureExtractor().extract(**scenario())
        a, b = LightweightDQN.init(7), LightweightDQN.init(7)
        for category in DecisionCategory:
            assert np.array_equal(a.predict(f, category), b.predict(f, category))
        assert not np.array_equal(a.predict(f, 'playType'),
                                  LightweightDQN.init(8).predict(f, 'playType'))

    def test_predict_scenario(self):
        dqn = LightweightDQN.init(42)
        f = FeatureExtractor().extract(**scenario())
        q = dqn.predict(f, DecisionCategory.PLAY_TYPE)
        assert q.shape == (5,)
        assert 0 <= dqn.greedy_action(f, DecisionCategory.PLAY_TYPE) < 5

    def test_epsilon_zero_is_greedy(self):
        dqn = LightweightDQN.init(42)
        f = FeatureExtractor().extract(**scenario())
        for category in DecisionCategory:
            assert dqn.select_action(f, category, 0.0) == dqn.greedy_action(f, category)

    def test_epsilon_one_explores(self):
        dqn = LightweightDQN.init(42)
        f = FeatureExtractor().extract(**scenario())
        rng = random.Random(0)
        actions = {dqn.select_action(f, 'handSize', 1.0, rng=rng) for _ in range(50)}
        assert len(actions) >= 2
        assert actions <= set(range(7))

    def test_invalid_epsilon(self):
        f = FeatureExtractor().extract(**scenario())
        with pytest.raises(ValidationError):
            LightweightDQN.init(1).select_action(f, 'zapzap', 1.5)

    def test_predict_batch_matches_predict(self):
        dqn = LightweightDQN.init(3)
        extractor = FeatureExtractor()
        rows = [extractor.extract(**scenario(round_number=r)) for r in (1, 4, 9)]
        batch = dqn.predict_batch(np.stack(rows), 'playType')
        assert batch.shape == (3, 5)
        for row, q in zip(rows, batch):
            np.testing.assert_allclose(dqn.predict(row, 'playType'), q)

    def test_parameter_count(self):
        # 4 shared-shape trunks plus 33 output parameters per action
        assert LightweightDQN.init(0).num_parameters() == 4 * 55008 + 33 * 16

    def test_weights_round_trip(self):
        dqn = LightweightDQN.init(11)
        clone = LightweightDQN.from_dict(dqn.to_dict())
        f = FeatureExtractor().extract(**scenario())
        for category in DecisionCategory:
            assert np.array_equal(dqn.predict(f, category), clone.predict(f, category))

    def test_set_weights_rejects_bad_shape(self):
        dqn = LightweightDQN.init(0)
        weights = dqn.get_weights()
        weights['zapzap'][0]['bias'] = [0.0] * 3
        with pytest.raises(ValidationError):
            dqn.set_weights(weights)


class TestBanditPolicy:
    def test_unseen_actions_are_optimistic(self):
        policy = BanditPolicy(seed=0)
        assert policy.action_values('ctx', 'zapzap') == [OPTIMISTIC_VALUE] * 2

    def test_incremental_mean(self):
        policy = BanditPolicy(seed=0)
        policy.update('ctx', 'zapzap', 0, 10)
        policy.update('ctx', 'zapzap', 0, 20)
        assert policy.action_values('ctx', 'zapzap') == [15.0, OPTIMISTIC_VALUE]
        assert policy.best_action('ctx', 'zapzap') == 1
        policy.update('ctx', 'zapzap', 1, 5)
        assert policy.best_action('ctx', 'zapzap') == 0
        assert policy.total_updates == 3

    def test_ties_pick_lowest_index(self):
        assert BanditPolicy(seed=0).best_action('ctx', 'playType') == 0

    @pytest.mark.parametrize("args", [
        ('ctx', 'zapzap', 2, 1.0),
        ('ctx', 'zapzap', 0, float('nan')),
        ('', 'zapzap', 0, 1.0),
        ('ctx', 'zapzap', 0, True),
        ('ctx', 'bluff', 0, 1.0),
    ])
    def test_invalid_update(self, args):
        with pytest.raises(ValidationError):
            BanditPolicy(seed=0).update(*args)

    def test_epsilon_decays_to_floor(self):
        policy = BanditPolicy(epsilon=0.5, min_epsilon=0.1, epsilon_decay=0.5, seed=0)
        for expected in (0.25, 0.125, 0.1):
            policy.update('ctx', 'drawSource', 0, 1)
            assert policy.epsilon == pytest.approx(expected)

    def test_trained_mode_never_explores(self):
        policy = BanditPolicy(epsilon=1.0, seed=0)
        policy.trained_mode = True
        f = FeatureExtractor().extract(**scenario())
        for _ in range(20):
            policy.select_action(f, 'playType')
        assert policy.explorations == 0
        assert policy.exploitations == 20

    def _populated(self, f):
        policy = BanditPolicy(seed=4)
        for category in DecisionCategory:
            context = policy.context_key(f, category)
            for action in range(category.action_count):
                policy.update(context, category, action, float(action % 3))
        return policy

    def test_epsilon_zero_is_greedy(self):
        f = FeatureExtractor().extract(**scenario())
        policy = self._populated(f)
        for category in DecisionCategory:
            greedy = policy.greedy_action(f, category)
            assert greedy == min(2, category.action_count - 1)
            for _ in range(10):
                assert policy.select_action(f, category, 0.0) == greedy

    def test_epsilon_one_explores(self):
        f = FeatureExtractor().extract(**scenario())
        policy = self._populated(f)
        for category in DecisionCategory:
            actions = {policy.select_action(f, category, 1.0) for _ in range(50)}
            assert len(actions) >= 2
            assert actions <= set(range(category.action_count))

    @pytest.mark.parametrize("epsilon", [-0.1, 1.5, float('nan')])
    def test_invalid_epsilon(self, epsilon):
        f = FeatureExtractor().extract(**scenario())
        with pytest.raises(ValidationError):
            BanditPolicy(seed=0).select_action(f, 'zapzap', epsilon)

    def test_greedy_action_leaves_rng_alone(self):
        f = FeatureExtractor().extract(**scenario())
        a, b = BanditPolicy(epsilon=0.5, seed=9), BanditPolicy(epsilon=0.5, seed=9)
        for _ in range(5):
            a.greedy_action(f, 'playType')
        assert [a.select_action(f, 'playType') for _ in range(30)] == \
            [b.select_action(f, 'playType') for _ in range(30)]
        assert a.get_stats()['exploration_rate'] == b.get_stats()['exploration_rate']

    def test_numpy_action_index(self):
        policy = BanditPolicy(seed=0)
        policy.update('ctx', 'zapzap', np.int64(1), 3)
        assert policy.action_values('ctx', 'zapzap') == [OPTIMISTIC_VALUE, 3.0]
        assert list(policy.q_values['ctx']['zapzap']) == [1]
        assert type(list(policy.q_values['ctx']['zapzap'])[0]) is int
        assert DecisionCategory.HAND_SIZE.action_value(np.int32(2)) == 6
        with pytest.raises(ValidationError):
            policy.update('ctx', 'zapzap', np.float64(1.0), 3)

    def test_snapshot_round_trip(self):
        policy = BanditPolicy(seed=0)
        policy.update('a', 'playType', 2, 4)
        policy.update('b', 'handSize', 6, -3)
        snap = policy.to_snapshot()
        clone = BanditPolicy.from_snapshot(snap)
        assert clone.to_snapshot() == snap
        assert snap.get_cell('a', DecisionCategory.PLAY_TYPE, 2) == \
            {'count': 1, 'sum': 4.0, 'mean': 4.0}
        assert PolicySnapshot.from_dict(snap.to_dict()) == snap

    def test_diff_only_reports_changes(self):
        policy = BanditPolicy(seed=0)
        policy.update('a', 'zapzap', 0, 5)
        start = policy.to_snapshot()
        assert policy.diff(start).is_empty

        policy.update('a', 'zapzap', 0, 3)
        policy.update('b', 'zapzap', 1, -2)
        delta = policy.diff(start)
        assert len(delta) == 2
        assert delta.total_count == 2
        assert delta.cells['a']['zapzap'][0].total == 3.0

    def test_merge_matches_local_learning(self):
        master = BanditPolicy(seed=0).to_snapshot()
        local = BanditPolicy.from_snapshot(master)
        local.update('a', 'playType', 1, 7)
        local.update('a', 'playType', 1, 1)
        merged = merge(master, local.diff(master))
        assert merged.q_values == local.to_snapshot().q_values
        assert merged.total_updates == 2
        assert master.q_values == {}

    def test_merge_is_order_independent(self):
        base = BanditPolicy(seed=0)
        base.update('a', 'zapzap', 0, 4)
        master = base.to_snapshot()

        deltas = []
        for rewards in ([1, 2], [3], [5, -6, 7]):
            runner = BanditPolicy.from_snapshot(master)
            for i, reward in enumerate(rewards):
                runner.update('a' if i % 2 == 0 else 'b', 'zapzap', i % 2, reward)
            deltas.append(runner.diff(master))

        forward = master
        for delta in deltas:
            forward = merge(forward, delta)
        backward = master
        for delta in reversed(deltas):
            backward = merge(backward, delta)
        combined = merge(master, deltas[0] + deltas[1] + deltas[2])

        assert forward == backward == combined
        assert forward.total_updates == master.total_updates + 6

    def test_delta_serialization(self):
        policy = BanditPolicy(seed=0)
        start = policy.to_snapshot()
        policy.update('a', 'drawSource', 1, 2)
        delta = policy.diff(start)
        data = delta.to_dict()
        assert data == {'a': {'drawSource': {'1': {'delta_count': 1, 'delta_sum': 2.0}}}}
        assert DeltaTable.from_dict(data) == delta

    def test_save_and_load(self):
        policy = BanditPolicy(seed=0)
        policy.update('a', 'handSize', 3, 12)
        snap = policy.to_snapshot()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "policies", "policy.json")
            save_snapshot(path, snap)
            assert load_snapshot(path) == snap

    def test_best_actions_and_stats(self):
        policy = BanditPolicy(seed=0)
        for _ in range(10):
            policy.update('a', 'zapzap', 1, 3)
        policy.update('b', 'zapzap', 0, 3)
        best = policy.get_best_actions('zapzap', min_samples=10)
        assert list(best) == ['a']
        assert best['a']['value'] is False

        stats = policy.get_stats()
        assert stats['context_count'] == 2
        assert stats['total_samples'] == 11
        assert stats['total_actions'] == 2


class TestStrategies:
    def test_factory(self):
        assert isinstance(StrategyFactory.create('hard'), HardBot)
        assert isinstance(StrategyFactory.create('MEDIUM'), MediumBot)
        assert isinstance(StrategyFactory.create('easy', {'seed': 1}), EasyBot)
        assert isinstance(StrategyFactory.create('ml'), MLBotStrategy)
        assert isinstance(StrategyFactory.create('dqn'), DQNBotStrategy)
        assert set(StrategyFactory.available_strategies()) == \
            {'easy', 'medium', 'hard', 'ml', 'dqn'}
        with pytest.raises(ValidationError):
            StrategyFactory.create('expert')

    def test_shared_policy(self):
        policy = BanditPolicy(seed=0)
        bot = StrategyFactory.create('ml', {'policy': policy})
        assert bot.policy is policy

    def test_play_types(self):
        assert play_for_type(PlayType.SINGLE_HIGH, [0, 12, 5]) == [12]
        assert play_for_type(PlayType.MULTI_HIGH, [0, 13, 12]) == [0, 13]
        assert play_for_type(PlayType.AVOID_JOKER, [52, 3]) == [3]
        assert play_for_type(PlayType.USE_JOKER_COMBO, [52, 3, 7]) == [7, 52]
        assert play_for_type(PlayType.OPTIMAL, []) is None

    def test_zapzap_guards_skip_the_policy(self):
        bot = MLBotStrategy(seed=0)
        assert not bot.should_zapzap(make_view([0, 1, 2]))
        assert bot.should_zapzap(make_view([52]))
        assert bot.decisions == []

    def test_forced_joker_pickup_in_golden_score(self):
        bot = MLBotStrategy(seed=0)
        source = bot.select_draw_source(make_view([0, 1], last=(5, 52), golden=True))
        assert source == DrawSource.PLAYED
        assert len(bot.decisions) == 1
        assert bot.decisions[0][1] == DecisionCategory.DRAW_SOURCE
        assert bot.decisions[0][2] == 1

    def test_hand_size_within_bounds(self):
        bot = MLBotStrategy(policy=BanditPolicy(epsilon=1.0, seed=1), seed=0)
        for _ in range(20):
            assert 4 <= bot.select_hand_size(make_view([])) <= 7

    def test_ml_learns_at_game_end(self):
        policy = BanditPolicy(seed=0)
        bot = MLBotStrategy(policy=policy, seed=1)
        result = HeadlessGameEngine([bot, HardBot()], seed=3).run_game()
        assert bot.decisions
        bot.on_game_end(result, 0)
        assert bot.decisions == []
        assert policy.total_updates > 0

    def test_dqn_strategy_plays_valid_cards(self):
        bot = DQNBotStrategy(dqn=LightweightDQN.init(42), seed=0)
        view = make_view([0, 13, 5, 18])
        play = bot.select_play(view)
        assert is_valid_play(play)
        assert set(play) <= set(view.hand)

    def test_shaped_rewards(self):
        result = GameResult(winner=0, total_rounds=5, final_scores=[10, 50, 70, 120],
                            was_golden_score=False, eliminated=[3])
        winner = shaped_rewards(result, 0)
        assert winner[DecisionCategory.PLAY_TYPE] == pytest.approx(22.625)
        assert winner[DecisionCategory.DRAW_SOURCE] == pytest.approx(22.625 * 0.9)
        assert winner[DecisionCategory.HAND_SIZE] == pytest.approx(22.625 * 0.7)
        assert winner[DecisionCategory.ZAPZAP] == pytest.approx(22.625 * 1.5)

        loser = shaped_rewards(result, 3)
        assert loser[DecisionCategory.PLAY_TYPE] == pytest.approx(-15.875)
        assert loser[DecisionCategory.ZAPZAP] == pytest.approx(-15.875 * 0.8)


class TestSimulationStats:
    def _result(self, winner, scores, rounds=3):
        return GameResult(winner=winner, total_rounds=rounds, final_scores=scores,
                          was_golden_score=False, eliminated=[])

    def test_record_and_rates(self):
        stats = SimulationStats()
        stats.record_game(self._result(0, [5, 30]), ['ml', 'hard'])
        stats.record_game(self._result(1, [40, 10]), ['ml', 'hard'])
        stats.record_game(self._result(1, [40, 10]), ['hard', 'ml'])
        assert stats.games_played == 3
        assert stats.get_win_rates() == {'ml': 2 / 3, 'hard': 1 / 3}
        assert stats.get_win_rates_by_seat() == {0: 1 / 3, 1: 2 / 3}
        assert stats.get_average_rounds() == 3.0
        assert stats.fairness_ratio() == 2.0
        assert "SIMULATION REPORT" in stats.get_report()

    def test_fairness_edge_cases(self):
        stats = SimulationStats()
        assert stats.fairness_ratio() == 1.0
        stats.record_game(self._result(0, [5, 30]), ['hard', 'hard'])
        assert stats.fairness_ratio() == float('inf')

    def test_learning_curve(self):
        stats = SimulationStats()
        for _ in range(200):
            stats.record_game(self._result(0, [5, 30]), ['ml', 'easy'])
        assert [point['games'] for point in stats.learning_curve] == [100, 200]

    def test_merge_and_serialize(self):
        a, b = SimulationStats(), SimulationStats()
        a.record_game(self._result(0, [5, 30]), ['ml', 'hard'])
        b.record_game(self._result(1, [40, 10]), ['ml', 'hard'])
        a.merge(SimulationStats.from_dict(b.to_dict()))
        assert a.games_played == 2
        assert a.wins_by_seat == {0: 1, 1: 1}
        assert a.matchups['hard_vs_ml'] == {'games': 2, 'wins': {'ml': 1, 'hard': 1}}
        assert SimulationStats.from_dict(a.to_dict()).to_dict() == a.to_dict()


class TestBatchSimulationRunner:
    def test_run_batch(self):
        policy = BanditPolicy(seed=3)
        runner = BatchSimulationRunner("runner-test", seed=1)
        result = runner.run_batch(policy, ['ml', 'hard'], 4, batch_id="b-1")
        assert result.batch_id == "b-1"
        assert result.runner_id == "runner-test"
        assert result.games_played == result.stats.games_played == 4
        assert not result.delta.is_empty
        assert result.delta.total_count == policy.total_updates
        assert runner.games_run == 4

        clone = BatchResult.from_dict(result.to_dict())
        assert clone.delta == result.delta
        assert clone.stats.to_dict() == result.stats.to_dict()

    def test_seeded_runners_agree(self):
        def delta():
            runner = BatchSimulationRunner(seed=7)
            return runner.run_batch(BanditPolicy(seed=3), ['ml', 'medium', 'easy'], 3).delta
        assert delta() == delta()

    def test_heuristic_only_batch_has_empty_delta(self):
        result = BatchSimulationRunner(seed=2).run_batch(BanditPolicy(), ['hard', 'easy'], 2)
        assert result.delta.is_empty

    def test_invalid_requests(self):
        runner = BatchSimulationRunner(seed=0)
        with pytest.raises(ValidationError):
            runner.run_batch(BanditPolicy(), ['ml', 'hard'], 0)
        with pytest.raises(ValidationError):
            runner.run_batch(BanditPolicy(), ['ml'], 5)
        with pytest.raises(ValidationError):
            check_assignment(['ml', 'grandmaster'])
        assert runner.batches_run == 0

    def test_failure_is_wrapped(self):
        class BrokenPolicy(BanditPolicy):
            def select_action(self, vector, category, epsilon=None):
                raise RuntimeError("table corrupted")

        runner = BatchSimulationRunner("runner-x", seed=0)
        with pytest.raises(RunnerFailure) as excinfo:
            runner.run_batch(BrokenPolicy(), ['ml', 'hard'], 2, batch_id="b-9")
        assert excinfo.value.batch_id == "b-9"
        assert excinfo.value.runner_id == "runner-x"
        assert "table corrupted" in excinfo.value.trace

    def test_seat_fairness(self):
        result = BatchSimulationRunner(seed=2024).run_batch(
            BanditPolicy(), ['hard'] * 4, 100)
        assert result.stats.games_played == 100
        assert result.stats.fairness_ratio() <= 5.0
