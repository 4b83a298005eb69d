"""
Lightweight DQN - Seeded feed-forward action-value network in NumPy.

One small MLP per decision category produces a Q-value per action:

  45 -> 256 -> 128 -> 64 -> 32 -> n_actions   (ReLU on hidden layers)

Weights use He-scaled uniform initialization from a seed, biases start at
zero. The network is not trained online here; after construction every
prediction is a pure function of the input vector.
"""

import random
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from zapzap_ai.categories import DecisionCategory
from zapzap_ai.encoder import FEATURE_DIM, check_vector
from zapzap_ai.errors import ValidationError, check_epsilon

HIDDEN_LAYERS: Tuple[int, ...] = (256, 128, 64, 32)

Layer = Tuple[np.ndarray, np.ndarray]


def layer_dims(category: DecisionCategory,
               hidden_layers: Sequence[int] = HIDDEN_LAYERS) -> List[int]:
    return [FEATURE_DIM, *hidden_layers, category.action_count]


class LightweightDQN:
    """
    Vectorized DQN-lite. Use LightweightDQN.init(seed) or the constructor.

    The seed drives weight initialization and, separately, the exploration
    draws of select_action. predict and greedy_action never consume it.
    """

    def __init__(self, seed: int = 42,
                 hidden_layers: Sequence[int] = HIDDEN_LAYERS):
        self.seed = seed
        self.hidden_layers = tuple(hidden_layers)
        self.layers: Dict[DecisionCategory, List[Layer]] = {}
        self._explore_rng = random.Random(seed)
        self._init_weights(np.random.default_rng(seed))

    @classmethod
    def init(cls, seed: int) -> 'LightweightDQN':
        return cls(seed=seed)

    def _init_weights(self, rng: np.random.Generator):
        """He-scaled uniform init: U(-1, 1) * sqrt(2 / fan_in)."""
        for category in DecisionCategory:
            dims = layer_dims(category, self.hidden_layers)
            layers = []
            for fan_in, fan_out in zip(dims, dims[1:]):
                scale = np.sqrt(2.0 / fan_in)
                w = rng.uniform(-1.0, 1.0, size=(fan_in, fan_out)) * scale
                b = np.zeros(fan_out, dtype=np.float64)
                layers.append((w, b))
            self.layers[category] = layers

    # ── Inference ────────────────────────────────────────────────────

    def _forward(self, x: np.ndarray, category: DecisionCategory) -> np.ndarray:
        layers = self.layers[category]
        for w, b in layers[:-1]:
            x = np.maximum(x @ w + b, 0.0)
        w, b = layers[-1]
        return x @ w + b

    def predict(self, vector, category) -> np.ndarray:
        """Q-values for every action of `category`."""
        category = DecisionCategory.parse(category)
        return self._forward(check_vector(vector), category)

    def predict_batch(self, matrix, category) -> np.ndarray:
        """Q-values for a (batch, 45) matrix; returns (batch, n_actions)."""
        category = DecisionCategory.parse(category)
        x = np.asarray(matrix, dtype=np.float64)
        if x.ndim != 2 or x.shape[1] != FEATURE_DIM:
            raise ValidationError(
                f"Batch must have shape (n, {FEATURE_DIM}), got {x.shape}")
        return self._forward(x, category)

    def greedy_action(self, vector, category) -> int:
        """argmax of predict(); np.argmax returns the lowest index on ties."""
        return int(np.argmax(self.predict(vector, category)))

    def select_action(self, vector, category, epsilon: float = 0.0,
                      rng: Optional[random.Random] = None) -> int:
        """Epsilon-greedy: uniform random action with probability epsilon."""
        epsilon = check_epsilon(epsilon)
        category = DecisionCategory.parse(category)
        rng = rng or self._explore_rng
        if rng.random() < epsilon:
            return rng.randrange(category.action_count)
        return self.greedy_action(vector, category)

    # ── Weights ──────────────────────────────────────────────────────

    @property
    def has_weights(self) -> bool:
        return all(category in self.layers for category in DecisionCategory)

    def get_weights(self) -> Dict[str, List[Dict[str, list]]]:
        """Compact layout: per category, per layer, weights as [in][out] rows."""
        return {
            category.value: [
                {'weights': w.tolist(), 'bias': b.tolist()}
                for w, b in self.layers[category]
            ]
            for category in DecisionCategory
        }

    def set_weights(self, weights: Dict[str, List[Dict[str, list]]]):
        for key, layer_list in weights.items():
            category = DecisionCategory.parse(key)
            expected = layer_dims(category, self.hidden_layers)
            layers = []
            for i, layer in enumerate(layer_list):
                w = np.asarray(layer['weights'], dtype=np.float64)
                b = np.asarray(layer['bias'], dtype=np.float64)
                if w.shape != (expected[i], expected[i + 1]) or b.shape != (expected[i + 1],):
                    raise ValidationError(
                        f"{category.value} layer {i}: expected "
                        f"({expected[i]}, {expected[i + 1]}), got {w.shape}")
                layers.append((w, b))
            if len(layers) != len(expected) - 1:
                raise ValidationError(
                    f"{category.value}: expected {len(expected) - 1} layers, "
                    f"got {len(layers)}")
            self.layers[category] = layers

    def num_parameters(self) -> int:
        return sum(w.size + b.size for layers in self.layers.values()
                   for w, b in layers)

    def to_dict(self) -> Dict:
        return {
            'seed': self.seed,
            'hidden_layers': list(self.hidden_layers),
            'weights': self.get_weights(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'LightweightDQN':
        model = cls(seed=data.get('seed', 42),
                    hidden_layers=data.get('hidden_layers', HIDDEN_LAYERS))
        model.set_weights(data['weights'])
        return model
