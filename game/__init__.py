"""
ZapZap Game Environment for self-play simulation

A pure-Python, headless implementation of the ZapZap card game used as the
external game-engine collaborator of the training pipeline. Features:

- 54-card deck with jokers as wildcards
- Single, same-rank and same-suit-sequence plays
- ZapZap calls with counteract penalty
- Elimination above 100 points and golden-score endgame
- Seeded, deterministic shuffling
"""

from game.cards import (
    DrawSource, hand_value, hand_score, can_call_zapzap,
    find_all_valid_plays, is_valid_play,
)
from game.game_state import RoundState, PlayerView
from game.engine import HeadlessGameEngine, GameResult
from game.ai_opponents import BotStrategy, EasyBot, MediumBot, HardBot

__all__ = [
    "DrawSource", "hand_value", "hand_score", "can_call_zapzap",
    "find_all_valid_plays", "is_valid_play",
    "RoundState", "PlayerView",
    "HeadlessGameEngine", "GameResult",
    "BotStrategy", "EasyBot", "MediumBot", "HardBot",
]
