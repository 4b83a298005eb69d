"""
Batch Simulation Runner for batch-parallel self-play.

Each runner owns a private BanditPolicy copy and its own engines. A batch:

1. Captures a start snapshot of the local policy
2. Plays `batch_size` complete games with fresh per-seat strategies
3. Lets every learning seat update the *local* policy after each game
4. Diffs the local policy against the start snapshot

Only the delta leaves the runner. The coordinator merges it into the master
table, so concurrent runners never share memory or take locks.
"""

import logging
import random
import time
import traceback
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from game.engine import GameResult, HeadlessGameEngine
from zapzap_ai.bandit_policy import BanditPolicy, DeltaTable
from zapzap_ai.errors import RunnerFailure, ValidationError
from zapzap_ai.ml_strategy import StrategyFactory
from zapzap_ai.policy import LightweightDQN
from zapzap_ai.stats import SimulationStats

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Completed-batch payload: stats plus the policy delta."""
    batch_id: str
    runner_id: str
    stats: SimulationStats
    delta: DeltaTable
    games_played: int
    elapsed: float

    def to_dict(self) -> Dict:
        return {
            'batch_id': self.batch_id,
            'runner_id': self.runner_id,
            'stats': self.stats.to_dict(),
            'delta': self.delta.to_dict(),
            'games_played': self.games_played,
            'elapsed': self.elapsed,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'BatchResult':
        return cls(
            batch_id=data['batch_id'],
            runner_id=data['runner_id'],
            stats=SimulationStats.from_dict(data['stats']),
            delta=DeltaTable.from_dict(data['delta']),
            games_played=data['games_played'],
            elapsed=data['elapsed'],
        )


def check_assignment(strategy_assignment: Sequence[str]) -> List[str]:
    tags = [str(tag).lower() for tag in strategy_assignment]
    if not 2 <= len(tags) <= 4:
        raise ValidationError(f"Strategy assignment needs 2-4 seats, got {len(tags)}")
    known = set(StrategyFactory.available_strategies())
    unknown = [tag for tag in tags if tag not in known]
    if unknown:
        raise ValidationError(f"Unknown strategy tags: {unknown}")
    return tags


class BatchSimulationRunner:
    """
    Sequential game simulator for one execution context.

    Seeds are drawn from the runner's RNG so a seeded runner replays the same
    batches. The starting seat rotates with the global game index, which
    keeps seat win rates comparable when every seat runs the same strategy.
    """

    def __init__(self, runner_id: str = "runner-0", seed: Optional[int] = None,
                 dqn: Optional[LightweightDQN] = None, dqn_seed: int = 42,
                 dqn_epsilon: float = 0.0, max_turns_per_round: int = 1000,
                 max_rounds: int = 200):
        self.runner_id = runner_id
        self.rng = random.Random(seed)
        self.dqn = dqn if dqn is not None else LightweightDQN.init(dqn_seed)
        self.dqn_epsilon = dqn_epsilon
        self.max_turns_per_round = max_turns_per_round
        self.max_rounds = max_rounds
        self.games_run = 0
        self.batches_run = 0

    def _make_strategies(self, tags: List[str], policy: BanditPolicy):
        return [
            StrategyFactory.create(tag, {
                'seed': self.rng.getrandbits(32),
                'policy': policy,
                'dqn': self.dqn,
                'epsilon': self.dqn_epsilon,
            })
            for tag in tags
        ]

    def play_game(self, local_policy: BanditPolicy, tags: List[str]) -> GameResult:
        """Play one game and deliver the result to every seat."""
        strategies = self._make_strategies(tags, local_policy)
        engine = HeadlessGameEngine(
            strategies,
            seed=self.rng.getrandbits(32),
            starting_player=self.games_run % len(tags),
            max_turns_per_round=self.max_turns_per_round,
            max_rounds=self.max_rounds,
        )
        result = engine.run_game()
        for seat, strategy in enumerate(strategies):
            strategy.on_game_end(result, seat)
        self.games_run += 1
        return result

    def run_batch(self, local_policy: BanditPolicy,
                  strategy_assignment: Sequence[str], batch_size: int,
                  batch_id: Optional[str] = None) -> BatchResult:
        """
        Run `batch_size` games against the local policy copy.

        Raises ValidationError for a malformed request and RunnerFailure if
        anything goes wrong mid-batch; no partial delta is ever returned.
        """
        batch_id = batch_id or str(uuid.uuid4())[:8]
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise ValidationError(f"batch_size must be a positive integer, got {batch_size!r}")
        tags = check_assignment(strategy_assignment)

        start = local_policy.to_snapshot()
        stats = SimulationStats()
        stats.start()
        t0 = time.time()

        try:
            for _ in range(batch_size):
                result = self.play_game(local_policy, tags)
                stats.record_game(result, tags)
            delta = local_policy.diff(start)
        except Exception as e:
            logger.error(f"Batch {batch_id} failed on {self.runner_id}: {e}")
            raise RunnerFailure(str(e), batch_id=batch_id, runner_id=self.runner_id,
                                trace=traceback.format_exc()) from e
        finally:
            stats.stop()

        self.batches_run += 1
        elapsed = time.time() - t0
        logger.debug(f"{self.runner_id}: batch {batch_id} played {batch_size} games "
                     f"in {elapsed:.2f}s, {len(delta)} cells changed")
        return BatchResult(
            batch_id=batch_id,
            runner_id=self.runner_id,
            stats=stats,
            delta=delta,
            games_played=batch_size,
            elapsed=elapsed,
        )
