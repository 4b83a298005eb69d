"""
Tests for the ZapZap game environment.

Tests cover:
- Card model and play validation
- Play enumeration
- Round state and player views
- ZapZap resolution and round end
- Heuristic opponents
- Full game simulation
"""

import sys
import os
import random

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from game.cards import (
    DrawSource, get_rank, get_suit, get_card_points, card_name, is_valid_card,
    hand_value, hand_score, can_call_zapzap, is_valid_same_rank,
    is_valid_sequence, is_valid_play, find_same_rank_plays, find_sequence_plays,
    find_all_valid_plays, find_random_play, remaining_after, evaluate_card_value,
)
from game.game_state import RoundState, PlayerView
from game.engine import (
    HeadlessGameEngine, GameResult, RoundSummary, clamp_hand_size,
)
from game.ai_opponents import EasyBot, MediumBot, HardBot, best_shedding_play


def make_view(hand, seat=0, scores=(0, 0), round_number=1, last=(),
              golden=False, sizes=None):
    hand_sizes = list(sizes) if sizes else [5] * len(scores)
    hand_sizes[seat] = len(hand)
    return PlayerView(
        seat=seat,
        hand=tuple(hand),
        scores=tuple(scores),
        hand_sizes=tuple(hand_sizes),
        round_number=round_number,
        deck_remaining=30,
        last_cards_played=tuple(last),
        is_golden_score=golden,
    )


class TestCards:
    def test_rank_and_suit(self):
        assert get_rank(13) == 0
        assert get_suit(13) == 1
        assert get_rank(51) == 12
        assert get_suit(51) == 3
        assert get_rank(52) is None
        assert get_suit(53) is None

    def test_card_points(self):
        assert get_card_points(0) == 1
        assert get_card_points(12) == 13
        assert get_card_points(52) == 0

    def test_card_name(self):
        assert card_name(0) == "AS"
        assert card_name(25) == "KH"
        assert card_name(53) == "JK"

    def test_valid_card_ids(self):
        assert is_valid_card(0)
        assert is_valid_card(53)
        assert not is_valid_card(54)
        assert not is_valid_card(-1)
        assert not is_valid_card(True)

    def test_hand_value(self):
        assert hand_value([0, 13, 5, 18]) == 14
        assert hand_value([52, 53]) == 0
        assert hand_value([]) == 0

    def test_hand_score_joker_penalty(self):
        assert hand_score([0, 52]) == 26
        assert hand_score([0, 52], is_lowest=True) == 1

    def test_can_call_zapzap(self):
        assert can_call_zapzap([0, 1, 52])
        assert can_call_zapzap([4])
        assert not can_call_zapzap([5])


class TestPlayValidation:
    def test_same_rank(self):
        assert is_valid_same_rank([0, 13])
        assert is_valid_same_rank([0, 13, 26, 52])
        assert not is_valid_same_rank([0, 1])
        assert not is_valid_same_rank([0])

    def test_sequence(self):
        assert is_valid_sequence([0, 1, 2])
        assert is_valid_sequence([0, 2, 52])
        assert not is_valid_sequence([0, 2, 4])
        assert not is_valid_sequence([0, 1, 15])
        assert not is_valid_sequence([0, 1])

    def test_single_always_valid(self):
        assert is_valid_play([5])
        assert is_valid_play([52])
        assert not is_valid_play([])


class TestPlayEnumeration:
    def test_same_rank_plays(self):
        assert find_same_rank_plays([0, 13, 5, 18]) == [[0, 13], [5, 18]]

    def test_same_rank_plays_with_joker(self):
        plays = find_same_rank_plays([0, 13, 52])
        assert [0, 13] in plays
        assert [0, 13, 52] in plays

    def test_sequence_plays(self):
        plays = find_sequence_plays([0, 1, 2, 3])
        assert plays == [[0, 1, 2], [0, 1, 2, 3], [1, 2, 3]]

    def test_all_plays_singles_first(self):
        assert find_all_valid_plays([0, 13]) == [[0], [13], [0, 13]]
        assert find_all_valid_plays([]) == []

    def test_every_enumerated_play_is_valid(self):
        rng = random.Random(3)
        for _ in range(50):
            hand = rng.sample(range(54), 7)
            for play in find_all_valid_plays(hand):
                assert is_valid_play(play)
                assert set(play) <= set(hand)

    def test_random_play(self):
        rng = random.Random(0)
        assert find_random_play([], rng) is None
        play = find_random_play([0, 13, 5], rng)
        assert is_valid_play(play)

    def test_remaining_after(self):
        assert remaining_after([0, 13, 5], [0, 13]) == [5]

    def test_card_value_prefers_combos(self):
        assert evaluate_card_value(13, [0]) > 5
        assert evaluate_card_value(12, [0]) <= 5


class TestPlayerView:
    def test_view_for_seat(self):
        state = RoundState.new_game(3)
        state.hands = [[0, 1], [2, 3, 4], [5]]
        state.deck = list(range(10, 30))
        view = state.view_for(1)
        assert view.hand == (2, 3, 4)
        assert view.opponent_hand_sizes() == [2, 1]
        assert view.deck_remaining == 20

    def test_view_is_frozen(self):
        view = make_view([0, 1])
        with pytest.raises(Exception):
            view.seat = 1

    def test_extract_kwargs(self):
        view = make_view([0, 1], seat=1, scores=(10, 20, 30))
        kwargs = view.extract_kwargs()
        assert kwargs['own_index'] == 1
        assert kwargs['opponent_hand_sizes'] == [5, 5]
        assert kwargs['all_scores'] == [10, 20, 30]

    def test_from_dict_opponent_form(self):
        view = PlayerView.from_dict({
            'seat': 1, 'hand': [0, 1], 'scores': [0, 0, 0],
            'opponent_hand_sizes': [4, 5],
        })
        assert view.hand_sizes == (4, 2, 5)

    def test_dict_round_trip(self):
        view = make_view([0, 1], last=(7,), golden=True)
        assert PlayerView.from_dict(view.to_dict()) == view

    def test_next_active_skips_eliminated(self):
        state = RoundState.new_game(4)
        state.eliminated = [1, 2]
        assert state.next_active(0) == 3
        assert state.next_active(3) == 0


class TestRoundResolution:
    def _engine(self, n=3):
        return HeadlessGameEngine([HardBot() for _ in range(n)], seed=0)

    def _summary(self):
        return RoundSummary(round_number=1, turns_played=0)

    def test_clamp_hand_size(self):
        assert clamp_hand_size(12, False) == 7
        assert clamp_hand_size(12, True) == 10
        assert clamp_hand_size(2, False) == 4

    def test_successful_zapzap(self):
        engine = self._engine()
        state = RoundState.new_game(3)
        state.hands = [[0, 1], [12, 11], [52, 10]]
        summary = self._summary()
        engine._execute_zapzap(state, 0, summary)
        assert not summary.counteracted
        assert state.scores == [0, 25, 36]

    def test_counteracted_zapzap(self):
        engine = self._engine()
        state = RoundState.new_game(3)
        state.hands = [[2], [0], [12]]
        summary = self._summary()
        engine._execute_zapzap(state, 0, summary)
        assert summary.counteracted
        # Caller pays hand + 5 per other player; lowest hand pays nothing
        assert state.scores == [13, 0, 13]

    def test_elimination_starts_golden_score(self):
        engine = self._engine()
        state = RoundState.new_game(3)
        state.scores = [101, 50, 20]
        engine._process_round_end(state)
        assert state.eliminated == [0]
        assert state.is_golden_score
        assert state.round_number == 2

    def test_player_count_bounds(self):
        with pytest.raises(ValueError):
            HeadlessGameEngine([HardBot()])
        with pytest.raises(ValueError):
            HeadlessGameEngine([HardBot() for _ in range(5)])


class TestAIOpponents:
    def test_medium_zapzap_threshold(self):
        bot = MediumBot()
        assert bot.should_zapzap(make_view([0, 1]))
        assert not bot.should_zapzap(make_view([0, 2]))

    def test_hard_hand_size(self):
        bot = HardBot()
        assert bot.select_hand_size(make_view([])) == 4
        assert bot.select_hand_size(make_view([], golden=True)) == 6

    def test_hard_zapzap_is_round_aware(self):
        bot = HardBot()
        assert bot.should_zapzap(make_view([0, 13], round_number=1))
        assert not bot.should_zapzap(make_view([2], round_number=1))
        assert bot.should_zapzap(make_view([2], round_number=3))
        assert bot.should_zapzap(make_view([3], round_number=5))

    def test_hard_sheds_pair_of_kings(self):
        bot = HardBot()
        assert bot.select_play(make_view([12, 25, 0])) == [12, 25]
        assert best_shedding_play([]) is None

    def test_easy_prefers_multi_card_play(self):
        bot = EasyBot(seed=1)
        play = bot.select_play(make_view([0, 13, 7]))
        assert play == [0, 13]

    def test_draw_source_decisions(self):
        assert MediumBot().select_draw_source(make_view([0], last=(13,))) == DrawSource.PLAYED
        assert MediumBot().select_draw_source(make_view([0], last=(7,))) == DrawSource.DECK
        assert HardBot().select_draw_source(make_view([0], last=(13,))) == DrawSource.PLAYED
        assert HardBot().select_draw_source(make_view([0], last=(12,))) == DrawSource.DECK
        assert HardBot().select_draw_source(make_view([0])) == DrawSource.DECK


class TestFullGame:
    @pytest.mark.parametrize("bot_cls", [EasyBot, MediumBot, HardBot])
    def test_game_runs_to_completion(self, bot_cls):
        engine = HeadlessGameEngine([bot_cls(seed=i) for i in range(4)], seed=11)
        result = engine.run_game()
        assert isinstance(result, GameResult)
        assert 0 <= result.winner < 4
        assert len(result.final_scores) == 4
        assert result.total_rounds == len(result.rounds) >= 1
        assert all(score >= 0 for score in result.final_scores)

    def test_winner_has_lowest_active_score(self):
        engine = HeadlessGameEngine([HardBot(), MediumBot(seed=1), EasyBot(seed=2)], seed=5)
        result = engine.run_game()
        active = [s for s in range(3) if s not in result.eliminated] or list(range(3))
        best = min(result.final_scores[s] for s in active)
        assert result.final_scores[result.winner] == best

    def test_seeded_games_are_reproducible(self):
        def play():
            bots = [EasyBot(seed=1), MediumBot(seed=2), HardBot(seed=3)]
            return HeadlessGameEngine(bots, seed=99).run_game().to_dict()
        assert play() == play()

    def test_game_ends_with_one_survivor_or_golden_score(self):
        result = HeadlessGameEngine([EasyBot(seed=i) for i in range(2)], seed=4).run_game()
        active = [s for s in range(2) if s not in result.eliminated]
        assert len(active) <= 1 or result.was_golden_score or result.total_rounds == 200

    def test_collaborator_aliases(self):
        result = HeadlessGameEngine([HardBot(), HardBot()], seed=1).run_game()
        assert result.winner_index == result.winner
        assert result.scores == result.final_scores
        assert result.round_count == result.total_rounds
