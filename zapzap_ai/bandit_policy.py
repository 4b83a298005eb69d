"""
Context-Keyed Bandit Policy - Incremental-mean action values per game context.

Instead of gradient descent, this policy:
1. Buckets the feature vector into a discrete context key
2. Tracks {count, sum} per (context, category, action) cell
3. Selects actions epsilon-greedily on the running means
4. Exports snapshots and diffs them into delta tables

Delta tables are what make parallel training composable: a runner diffs its
private copy against the snapshot it started from, and the coordinator
folds deltas into the master table with a purely additive merge. Merging is
associative and commutative, so arrival order does not matter.
"""

import copy
import json
import math
import os
import random
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from zapzap_ai.categories import DecisionCategory
from zapzap_ai.encoder import FeatureExtractor
from zapzap_ai.errors import ValidationError, check_epsilon

# Unseen actions look this good until tried once
OPTIMISTIC_VALUE = 25.0

DEFAULT_EPSILON = 0.3
DEFAULT_MIN_EPSILON = 0.02
DEFAULT_EPSILON_DECAY = 0.9999


# ── Table cells ──────────────────────────────────────────────────────────

@dataclass
class QCell:
    """Running statistics for one (context, category, action)."""
    count: int = 0
    total: float = 0.0

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> dict:
        return {'count': self.count, 'sum': self.total, 'mean': self.mean}

    @classmethod
    def from_dict(cls, data: dict) -> 'QCell':
        return cls(count=int(data['count']), total=float(data['sum']))


@dataclass(frozen=True)
class DeltaCell:
    count: int
    total: float

    def to_dict(self) -> dict:
        return {'delta_count': self.count, 'delta_sum': self.total}

    @classmethod
    def from_dict(cls, data: dict) -> 'DeltaCell':
        return cls(count=int(data['delta_count']), total=float(data['delta_sum']))


def _json_table(table: dict, encode) -> dict:
    return {
        context: {
            category: {str(action): encode(cell) for action, cell in actions.items()}
            for category, actions in categories.items()
        }
        for context, categories in table.items()
    }


def _parse_table(data: dict, decode) -> dict:
    return {
        context: {
            category: {int(action): decode(cell) for action, cell in actions.items()}
            for category, actions in categories.items()
        }
        for context, categories in data.items()
    }


# ── Snapshot & delta ─────────────────────────────────────────────────────

@dataclass
class PolicySnapshot:
    """
    Complete, serializable copy of a bandit table.

    q_values: context -> category value -> action index -> {count, sum, mean}.
    Cells with count 0 are absent. created_at is informational and does not
    take part in equality.
    """
    q_values: Dict[str, Dict[str, Dict[int, dict]]] = field(default_factory=dict)
    epsilon: float = DEFAULT_EPSILON
    total_updates: int = 0
    created_at: float = field(default_factory=time.time, compare=False)

    def cells(self) -> Iterator[Tuple[str, str, int, dict]]:
        for context, categories in self.q_values.items():
            for category, actions in categories.items():
                for action, cell in actions.items():
                    yield context, category, action, cell

    def get_cell(self, context: str, category, action: int) -> Optional[dict]:
        category = DecisionCategory.parse(category).value
        return self.q_values.get(context, {}).get(category, {}).get(action)

    @property
    def context_count(self) -> int:
        return len(self.q_values)

    def copy(self) -> 'PolicySnapshot':
        return PolicySnapshot(
            q_values=copy.deepcopy(self.q_values),
            epsilon=self.epsilon,
            total_updates=self.total_updates,
        )

    def to_dict(self) -> dict:
        return {
            'q_values': _json_table(self.q_values, dict),
            'epsilon': self.epsilon,
            'total_updates': self.total_updates,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PolicySnapshot':
        return cls(
            q_values=_parse_table(data.get('q_values', {}), dict),
            epsilon=float(data.get('epsilon', DEFAULT_EPSILON)),
            total_updates=int(data.get('total_updates', 0)),
            created_at=float(data.get('created_at', time.time())),
        )


@dataclass
class DeltaTable:
    """Per-cell {delta_count, delta_sum} accrued since a start snapshot."""
    cells: Dict[str, Dict[str, Dict[int, DeltaCell]]] = field(default_factory=dict)

    def add(self, context: str, category: str, action: int,
            count: int, total: float):
        if count == 0 and total == 0.0:
            return
        row = self.cells.setdefault(context, {}).setdefault(category, {})
        prev = row.get(action)
        if prev is not None:
            count += prev.count
            total += prev.total
        row[action] = DeltaCell(count, total)

    def items(self) -> Iterator[Tuple[str, str, int, DeltaCell]]:
        for context, categories in self.cells.items():
            for category, actions in categories.items():
                for action, cell in actions.items():
                    yield context, category, action, cell

    def __add__(self, other: 'DeltaTable') -> 'DeltaTable':
        """Pointwise sum of two deltas."""
        combined = DeltaTable()
        for table in (self, other):
            for context, category, action, cell in table.items():
                combined.add(context, category, action, cell.count, cell.total)
        return combined

    def __len__(self) -> int:
        return sum(1 for _ in self.items())

    @property
    def total_count(self) -> int:
        return sum(cell.count for *_, cell in self.items())

    @property
    def is_empty(self) -> bool:
        return not self.cells

    def to_dict(self) -> dict:
        return _json_table(self.cells, DeltaCell.to_dict)

    @classmethod
    def from_dict(cls, data: dict) -> 'DeltaTable':
        return cls(cells=_parse_table(data, DeltaCell.from_dict))


def merge(master: PolicySnapshot, delta: DeltaTable) -> PolicySnapshot:
    """
    Fold a delta into a master snapshot and return the new snapshot.

    Additive per cell: count += delta_count, sum += delta_sum; cells only in
    the delta are inserted, cells only in the master are untouched. The input
    snapshot is not modified.
    """
    merged = master.copy()
    for context, category, action, dcell in delta.items():
        row = merged.q_values.setdefault(context, {}).setdefault(category, {})
        cell = row.get(action)
        count = dcell.count + (cell['count'] if cell else 0)
        total = dcell.total + (cell['sum'] if cell else 0.0)
        if count > 0:
            row[action] = {'count': count, 'sum': total, 'mean': total / count}
    merged.total_updates += delta.total_count
    return merged


# ── Policy ───────────────────────────────────────────────────────────────

class BanditPolicy:
    """
    Epsilon-greedy contextual bandit over the four decision categories.

    Rewards arrive through update(); each update also decays epsilon
    towards min_epsilon.
    """

    def __init__(self, epsilon: float = DEFAULT_EPSILON,
                 min_epsilon: float = DEFAULT_MIN_EPSILON,
                 epsilon_decay: float = DEFAULT_EPSILON_DECAY,
                 optimistic_value: float = OPTIMISTIC_VALUE,
                 seed: Optional[int] = None):
        self.epsilon = check_epsilon(epsilon)
        self.min_epsilon = check_epsilon(min_epsilon)
        self.epsilon_decay = epsilon_decay
        self.optimistic_value = optimistic_value
        self.rng = random.Random(seed)

        self.q_values: Dict[str, Dict[str, Dict[int, QCell]]] = {}
        self.total_updates = 0
        self.explorations = 0
        self.exploitations = 0
        self.trained_mode = False

    # ── Lookup ───────────────────────────────────────────────────────

    @staticmethod
    def context_key(vector, category) -> str:
        return FeatureExtractor.context_key(vector, category)

    def action_values(self, context: str, category) -> List[float]:
        """Mean per action; unseen actions get the optimistic default."""
        category = DecisionCategory.parse(category)
        row = self.q_values.get(context, {}).get(category.value, {})
        values = []
        for action in range(category.action_count):
            cell = row.get(action)
            values.append(cell.mean if cell is not None else self.optimistic_value)
        return values

    def best_action(self, context: str, category) -> int:
        values = self.action_values(context, category)
        best = 0
        for action in range(1, len(values)):
            if values[action] > values[best]:
                best = action
        return best

    # ── Selection ────────────────────────────────────────────────────

    def select_action(self, vector, category, epsilon: Optional[float] = None) -> int:
        category = DecisionCategory.parse(category)
        if epsilon is None:
            epsilon = 0.0 if self.trained_mode else self.epsilon
        epsilon = check_epsilon(epsilon)
        context = self.context_key(vector, category)

        if self.rng.random() < epsilon:
            self.explorations += 1
            return self.rng.randrange(category.action_count)
        self.exploitations += 1
        return self.best_action(context, category)

    def greedy_action(self, vector, category) -> int:
        """Best-known action; consumes no randomness and counts no decision."""
        return self.best_action(self.context_key(vector, category), category)

    # ── Learning ─────────────────────────────────────────────────────

    def update(self, context: str, category, action_index: int, reward: float):
        """Incremental mean: count += 1, sum += reward."""
        category = DecisionCategory.parse(category)
        action_index = category.check_action(action_index)
        if not isinstance(context, str) or not context:
            raise ValidationError(f"Context key must be a non-empty string, got {context!r}")
        if isinstance(reward, bool) or not isinstance(reward, (int, float)) \
                or not math.isfinite(reward):
            raise ValidationError(f"Reward must be a finite number, got {reward!r}")

        row = self.q_values.setdefault(context, {}).setdefault(category.value, {})
        cell = row.get(action_index)
        if cell is None:
            cell = row[action_index] = QCell()
        cell.count += 1
        cell.total += float(reward)

        self.total_updates += 1
        self.epsilon = max(self.min_epsilon, self.epsilon * self.epsilon_decay)

    # ── Snapshots ────────────────────────────────────────────────────

    def to_snapshot(self) -> PolicySnapshot:
        return PolicySnapshot(
            q_values={
                context: {
                    category: {action: cell.to_dict() for action, cell in actions.items()}
                    for category, actions in categories.items()
                }
                for context, categories in self.q_values.items()
            },
            epsilon=self.epsilon,
            total_updates=self.total_updates,
        )

    def restore(self, snapshot: PolicySnapshot) -> 'BanditPolicy':
        """Replace this policy's table and counters with the snapshot's."""
        self.q_values = {
            context: {
                category: {action: QCell.from_dict(cell) for action, cell in actions.items()}
                for category, actions in categories.items()
            }
            for context, categories in snapshot.q_values.items()
        }
        self.epsilon = snapshot.epsilon
        self.total_updates = snapshot.total_updates
        return self

    @classmethod
    def from_snapshot(cls, snapshot: PolicySnapshot, **kwargs) -> 'BanditPolicy':
        return cls(**kwargs).restore(snapshot)

    def diff(self, start: PolicySnapshot) -> DeltaTable:
        """Accrual since `start` was captured; unchanged cells are omitted."""
        delta = DeltaTable()
        for context, categories in self.q_values.items():
            for category, actions in categories.items():
                for action, cell in actions.items():
                    base = start.q_values.get(context, {}).get(category, {}).get(action)
                    if base is None:
                        delta.add(context, category, action, cell.count, cell.total)
                    elif cell.count > base['count']:
                        delta.add(context, category, action,
                                  cell.count - base['count'],
                                  cell.total - base['sum'])
        return delta

    # ── Introspection ────────────────────────────────────────────────

    @property
    def context_count(self) -> int:
        return len(self.q_values)

    def get_stats(self) -> Dict:
        cells = [cell for categories in self.q_values.values()
                 for actions in categories.values() for cell in actions.values()]
        decisions = self.explorations + self.exploitations
        return {
            'epsilon': self.epsilon,
            'context_count': self.context_count,
            'total_actions': len(cells),
            'total_samples': sum(c.count for c in cells),
            'total_updates': self.total_updates,
            'exploration_rate': self.explorations / decisions if decisions else 0.0,
        }

    def get_best_actions(self, category, min_samples: int = 10) -> Dict[str, Dict]:
        """Best-known action per context, for contexts with enough samples."""
        category = DecisionCategory.parse(category)
        best = {}
        for context, categories in self.q_values.items():
            row = categories.get(category.value)
            if not row:
                continue
            samples = sum(cell.count for cell in row.values())
            if samples < min_samples:
                continue
            action, cell = max(sorted(row.items()), key=lambda item: item[1].mean)
            best[context] = {
                'action': action,
                'value': category.action_value(action),
                'mean': cell.mean,
                'samples': samples,
            }
        return best


# ── Snapshot files ───────────────────────────────────────────────────────

def save_snapshot(path: str, snapshot: PolicySnapshot):
    """Write a snapshot as JSON. The policy itself never touches disk."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(snapshot.to_dict(), f, indent=2)


def load_snapshot(path: str) -> PolicySnapshot:
    with open(path, 'r') as f:
        return PolicySnapshot.from_dict(json.load(f))
