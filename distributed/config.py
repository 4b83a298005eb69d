"""
Training Configuration - Settings for batch-parallel self-play

Supports two runner transports:
- Processes (multiprocessing, one policy copy per process)
- Threads (in-process, for tests and small machines)

Every config can be built from ZAPZAP_* environment variables or loaded
from a JSON file.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional
import json
import multiprocessing
import os


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class PolicyConfig:
    """Bandit exploration settings"""
    epsilon: float = 0.3
    min_epsilon: float = 0.02
    epsilon_decay: float = 0.9999
    optimistic_value: float = 25.0

    @classmethod
    def from_env(cls) -> 'PolicyConfig':
        return cls(
            epsilon=_env_float('ZAPZAP_EPSILON', 0.3),
            min_epsilon=_env_float('ZAPZAP_MIN_EPSILON', 0.02),
            epsilon_decay=_env_float('ZAPZAP_EPSILON_DECAY', 0.9999),
            optimistic_value=_env_float('ZAPZAP_OPTIMISTIC_VALUE', 25.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PolicyConfig':
        return cls(**data)


@dataclass
class RunnerConfig:
    """Per-runner simulation settings"""
    strategies: List[str] = field(default_factory=lambda: ['ml', 'hard', 'medium', 'easy'])
    seed: Optional[int] = None
    max_turns_per_round: int = 1000
    max_rounds: int = 200
    dqn_seed: int = 42
    dqn_epsilon: float = 0.0

    @classmethod
    def from_env(cls) -> 'RunnerConfig':
        strategies = os.getenv('ZAPZAP_STRATEGIES')
        return cls(
            strategies=strategies.split(',') if strategies else ['ml', 'hard', 'medium', 'easy'],
            seed=_env_int('ZAPZAP_SEED', None),
            max_turns_per_round=_env_int('ZAPZAP_MAX_TURNS', 1000),
            max_rounds=_env_int('ZAPZAP_MAX_ROUNDS', 200),
            dqn_seed=_env_int('ZAPZAP_DQN_SEED', 42),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RunnerConfig':
        return cls(**data)


@dataclass
class TrainingConfig:
    """Master configuration for a training run"""
    games: int = 10000
    batch_size: int = 100
    workers: int = 4
    sync_interval: int = 10          # Merged batches between policy pushes
    heartbeat_timeout: float = 30.0  # seconds
    result_timeout: float = 300.0    # seconds
    use_processes: bool = True
    save_path: Optional[str] = None

    policy: PolicyConfig = field(default_factory=PolicyConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)

    @classmethod
    def for_single_machine(cls, workers: int = None) -> 'TrainingConfig':
        """One process per CPU core"""
        return cls(workers=workers or multiprocessing.cpu_count(), use_processes=True)

    @classmethod
    def for_tests(cls) -> 'TrainingConfig':
        """Small, seeded, thread-based run"""
        return cls(
            games=40,
            batch_size=10,
            workers=2,
            sync_interval=2,
            heartbeat_timeout=5.0,
            result_timeout=60.0,
            use_processes=False,
            runner=RunnerConfig(seed=1234, max_rounds=60),
        )

    @classmethod
    def from_env(cls) -> 'TrainingConfig':
        return cls(
            games=_env_int('ZAPZAP_GAMES', 10000),
            batch_size=_env_int('ZAPZAP_BATCH_SIZE', 100),
            workers=_env_int('ZAPZAP_WORKERS', multiprocessing.cpu_count()),
            sync_interval=_env_int('ZAPZAP_SYNC_INTERVAL', 10),
            heartbeat_timeout=_env_float('ZAPZAP_HEARTBEAT_TIMEOUT', 30.0),
            result_timeout=_env_float('ZAPZAP_RESULT_TIMEOUT', 300.0),
            use_processes=os.getenv('ZAPZAP_USE_PROCESSES', 'true').lower() == 'true',
            save_path=os.getenv('ZAPZAP_SAVE_PATH'),
            policy=PolicyConfig.from_env(),
            runner=RunnerConfig.from_env(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize configuration"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingConfig':
        data = dict(data)
        policy = PolicyConfig.from_dict(data.pop('policy', {}))
        runner = RunnerConfig.from_dict(data.pop('runner', {}))
        return cls(policy=policy, runner=runner, **data)

    def save(self, filepath: str):
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'TrainingConfig':
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))
