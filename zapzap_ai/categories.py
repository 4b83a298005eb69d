"""
Decision categories - the fixed action spaces a ZapZap policy chooses among.

Each category carries its action count and the meaning of each action
index, so estimators never deal with stringly-typed action spaces.
"""

from enum import Enum
from typing import Any, Tuple

import numpy as np

from game.cards import DrawSource
from zapzap_ai.errors import ValidationError


class PlayType(str, Enum):
    OPTIMAL = "optimal"
    SINGLE_HIGH = "single_high"
    MULTI_HIGH = "multi_high"
    AVOID_JOKER = "avoid_joker"
    USE_JOKER_COMBO = "use_joker_combo"


HAND_SIZE_ACTIONS: Tuple[int, ...] = (4, 5, 6, 7, 8, 9, 10)
ZAPZAP_ACTIONS: Tuple[bool, ...] = (True, False)
PLAY_TYPE_ACTIONS: Tuple[PlayType, ...] = tuple(PlayType)
DRAW_SOURCE_ACTIONS: Tuple[DrawSource, ...] = (DrawSource.DECK, DrawSource.PLAYED)


class DecisionCategory(str, Enum):
    HAND_SIZE = "handSize"
    ZAPZAP = "zapzap"
    PLAY_TYPE = "playType"
    DRAW_SOURCE = "drawSource"

    @property
    def actions(self) -> Tuple[Any, ...]:
        return _ACTIONS[self]

    @property
    def action_count(self) -> int:
        return len(_ACTIONS[self])

    def action_value(self, index: int) -> Any:
        """Game-level meaning of an action index."""
        return _ACTIONS[self][self.check_action(index)]

    def action_index(self, value: Any) -> int:
        try:
            return _ACTIONS[self].index(value)
        except ValueError:
            raise ValidationError(f"{value!r} is not an action of {self.value}") from None

    def check_action(self, index: int) -> int:
        """Validate an action index and return it as a plain int."""
        if isinstance(index, bool) or not isinstance(index, (int, np.integer)) \
                or not 0 <= index < self.action_count:
            raise ValidationError(
                f"Action index {index!r} out of range for {self.value} "
                f"({self.action_count} actions)")
        return int(index)

    @classmethod
    def parse(cls, value) -> 'DecisionCategory':
        """Accept a DecisionCategory, its value ('playType') or its name ('PLAY_TYPE')."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for category in cls:
                if value in (category.value, category.name, category.name.lower()):
                    return category
        raise ValidationError(f"Unknown decision category: {value!r}")


_ACTIONS = {
    DecisionCategory.HAND_SIZE: HAND_SIZE_ACTIONS,
    DecisionCategory.ZAPZAP: ZAPZAP_ACTIONS,
    DecisionCategory.PLAY_TYPE: PLAY_TYPE_ACTIONS,
    DecisionCategory.DRAW_SOURCE: DRAW_SOURCE_ACTIONS,
}
