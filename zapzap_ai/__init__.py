"""
ZapZap AI - Self-play learning pipeline for the ZapZap card game.

Turns game observations into a fixed 45-slot feature vector and learns
which action to take per decision category through a context-keyed
bandit. Training is batch-parallel: runners simulate games against a
private policy copy and ship back delta tables that merge additively.

Architecture:
- Feature extractor with a pure-Python reference for parity checks
- Lightweight NumPy DQN scoring actions per category
- Contextual bandit with snapshot / diff / merge
- Policy-driven seat strategies and a batch simulation runner
"""

from zapzap_ai.errors import ZapZapError, ValidationError, RunnerFailure, ProtocolError
from zapzap_ai.categories import DecisionCategory, PlayType
from zapzap_ai.encoder import (
    FEATURE_DIM, FeatureExtractor, extract_features, get_feature_dimension,
)
from zapzap_ai.policy import LightweightDQN
from zapzap_ai.bandit_policy import (
    BanditPolicy, PolicySnapshot, DeltaTable, merge, save_snapshot, load_snapshot,
)
from zapzap_ai.ml_strategy import MLBotStrategy, DQNBotStrategy, StrategyFactory
from zapzap_ai.stats import SimulationStats
from zapzap_ai.parallel_worker import BatchSimulationRunner, BatchResult

__all__ = [
    "ZapZapError", "ValidationError", "RunnerFailure", "ProtocolError",
    "DecisionCategory", "PlayType",
    "FEATURE_DIM", "FeatureExtractor", "extract_features", "get_feature_dimension",
    "LightweightDQN",
    "BanditPolicy", "PolicySnapshot", "DeltaTable", "merge",
    "save_snapshot", "load_snapshot",
    "MLBotStrategy", "DQNBotStrategy", "StrategyFactory",
    "SimulationStats",
    "BatchSimulationRunner", "BatchResult",
]
