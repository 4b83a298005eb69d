"""
Training Coordinator

Drives batch-parallel self-play:
- Starts runner processes (or threads) and checks their liveness
- Hands out run_batch requests and collects replies in arrival order
- Merges each completed delta into the master policy under one lock
- Periodically pushes the master snapshot back out to the runners
- Drops batches from runners that fail or go silent

The master PolicySnapshot lives only inside MergeCoordinator. Everyone else
gets copies.
"""

import logging
import multiprocessing
import queue
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from distributed.config import TrainingConfig
from distributed.worker import Message, MessageType, runner_main
from zapzap_ai.bandit_policy import DeltaTable, PolicySnapshot, merge
from zapzap_ai.parallel_worker import BatchResult, check_assignment
from zapzap_ai.stats import SimulationStats

logger = logging.getLogger(__name__)


class MergeCoordinator:
    """
    Single owner of the master policy table.

    merge_delta is the only mutation and runs under a lock, so results from
    any number of collector threads can be applied in any order.
    """

    def __init__(self, snapshot: Optional[PolicySnapshot] = None,
                 min_epsilon: float = 0.02, epsilon_decay: float = 0.9999):
        self._master = snapshot.copy() if snapshot is not None else PolicySnapshot()
        self._lock = threading.Lock()
        self.min_epsilon = min_epsilon
        self.epsilon_decay = epsilon_decay
        self.merges = 0

    def merge_delta(self, delta: DeltaTable) -> PolicySnapshot:
        """Merge one delta; epsilon decays once per merged sample."""
        with self._lock:
            merged = merge(self._master, delta)
            merged.epsilon = max(self.min_epsilon,
                                 merged.epsilon * self.epsilon_decay ** delta.total_count)
            self._master = merged
            self.merges += 1
            return merged.copy()

    def apply_result(self, result: BatchResult) -> PolicySnapshot:
        return self.merge_delta(result.delta)

    def snapshot(self) -> PolicySnapshot:
        """Timestamped copy of the master table."""
        with self._lock:
            return self._master.copy()


class RunnerStatus(Enum):
    STARTING = "starting"
    IDLE = "idle"
    BUSY = "busy"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class RunnerInfo:
    """Coordinator-side view of one runner"""
    runner_id: str
    status: RunnerStatus = RunnerStatus.STARTING
    last_heartbeat: float = field(default_factory=time.time)
    outstanding: int = 0
    current_batch: Optional[Tuple[str, int]] = None
    dispatched_at: Optional[float] = None
    batches_completed: int = 0
    batches_failed: int = 0
    games_played: int = 0

    @property
    def available(self) -> bool:
        return self.status == RunnerStatus.IDLE and self.current_batch is None


@dataclass
class TrainingReport:
    """Outcome of one train() call"""
    games_requested: int
    games_played: int
    batches_merged: int
    batches_failed: int
    batches_dropped: int
    elapsed: float
    stats: SimulationStats
    snapshot: PolicySnapshot
    runners: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def games_per_second(self) -> float:
        return self.games_played / self.elapsed if self.elapsed > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'games_requested': self.games_requested,
            'games_played': self.games_played,
            'batches_merged': self.batches_merged,
            'batches_failed': self.batches_failed,
            'batches_dropped': self.batches_dropped,
            'elapsed': self.elapsed,
            'games_per_second': self.games_per_second,
            'epsilon': self.snapshot.epsilon,
            'context_count': self.snapshot.context_count,
            'total_updates': self.snapshot.total_updates,
            'stats': self.stats.get_summary(),
            'runners': self.runners,
        }


class TrainingCoordinator:
    """
    Runs a training session over `config.workers` runners.

    Usage:
        with TrainingCoordinator(config) as coordinator:
            report = coordinator.train(10000)
    """

    POLL_INTERVAL = 0.005

    def __init__(self, config: TrainingConfig,
                 initial_snapshot: Optional[PolicySnapshot] = None):
        self.config = config
        check_assignment(config.runner.strategies)
        start = initial_snapshot or PolicySnapshot(epsilon=config.policy.epsilon)
        self.merger = MergeCoordinator(start, config.policy.min_epsilon,
                                       config.policy.epsilon_decay)
        self.coordinator_id = str(uuid.uuid4())[:8]
        self.runners: Dict[str, RunnerInfo] = {}
        self._endpoints: Dict[str, Tuple[Any, Any, Any]] = {}
        self.started = False

        logger.info(f"Coordinator {self.coordinator_id} initialized "
                    f"({config.workers} {'processes' if config.use_processes else 'threads'})")

    def __enter__(self) -> 'TrainingCoordinator':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self):
        if self.started:
            return
        base_seed = self.config.runner.seed
        for i in range(self.config.workers):
            runner_id = f"runner-{i}"
            runner_config = self.config.runner.to_dict()
            if base_seed is not None:
                runner_config['seed'] = base_seed + i
            policy_config = self.config.policy.to_dict()

            if self.config.use_processes:
                inbox, outbox = multiprocessing.Queue(), multiprocessing.Queue()
                handle = multiprocessing.Process(
                    target=runner_main, name=runner_id, daemon=True,
                    args=(runner_id, runner_config, policy_config, inbox, outbox))
            else:
                inbox, outbox = queue.Queue(), queue.Queue()
                handle = threading.Thread(
                    target=runner_main, name=runner_id, daemon=True,
                    args=(runner_id, runner_config, policy_config, inbox, outbox))
            handle.start()
            self._endpoints[runner_id] = (handle, inbox, outbox)
            self.runners[runner_id] = RunnerInfo(runner_id=runner_id)
            logger.info(f"Started runner {runner_id}")

        self.started = True
        self.ping_all(self.config.heartbeat_timeout)

    def shutdown(self, timeout: float = 5.0):
        """Stop every runner and wait for it to exit."""
        for runner_id, (handle, inbox, _) in self._endpoints.items():
            if handle.is_alive():
                inbox.put(Message.create(MessageType.SHUTDOWN).to_dict())
        for runner_id, (handle, _, _) in self._endpoints.items():
            handle.join(timeout)
            if handle.is_alive() and isinstance(handle, multiprocessing.Process):
                logger.warning(f"Runner {runner_id} did not stop; terminating")
                handle.terminate()
                handle.join(timeout)
            self.runners[runner_id].status = RunnerStatus.STOPPED
        self._endpoints.clear()
        self.started = False
        logger.info(f"Coordinator {self.coordinator_id} stopped")

    # ── Messaging ────────────────────────────────────────────────────

    def _send(self, runner_id: str, message: Message):
        _, inbox, _ = self._endpoints[runner_id]
        inbox.put(message.to_dict())
        self.runners[runner_id].outstanding += 1

    def _poll(self, runner_id: str) -> Optional[Dict[str, Any]]:
        _, _, outbox = self._endpoints[runner_id]
        try:
            reply = outbox.get_nowait()
        except queue.Empty:
            return None
        info = self.runners[runner_id]
        info.outstanding = max(0, info.outstanding - 1)
        info.last_heartbeat = time.time()
        return reply

    def _live_runners(self) -> List[str]:
        return [rid for rid, info in self.runners.items()
                if info.status not in (RunnerStatus.FAILED, RunnerStatus.STOPPED)]

    def _mark_failed(self, runner_id: str, reason: str):
        info = self.runners[runner_id]
        info.status = RunnerStatus.FAILED
        logger.warning(f"Runner {runner_id} marked failed: {reason}")
        handle = self._endpoints[runner_id][0]
        if isinstance(handle, multiprocessing.Process) and handle.is_alive():
            handle.terminate()

    def ping_all(self, timeout: float = 5.0) -> Dict[str, bool]:
        """Liveness check. Only call while no batches are in flight."""
        targets = self._live_runners()
        for runner_id in targets:
            self._send(runner_id, Message.create(MessageType.PING))

        alive = {runner_id: False for runner_id in targets}
        deadline = time.time() + timeout
        while time.time() < deadline and not all(alive.values()):
            for runner_id in targets:
                if alive[runner_id]:
                    continue
                reply = self._poll(runner_id)
                if reply and reply.get('type') == MessageType.PONG.value:
                    alive[runner_id] = True
                    self.runners[runner_id].status = RunnerStatus.IDLE
            time.sleep(self.POLL_INTERVAL)

        for runner_id, ok in alive.items():
            if not ok:
                self._mark_failed(runner_id, f"no pong within {timeout:.1f}s")
        return alive

    def collect_runner_stats(self, timeout: float = 5.0) -> Dict[str, Dict[str, Any]]:
        targets = [rid for rid in self._live_runners() if self.runners[rid].available]
        for runner_id in targets:
            self._send(runner_id, Message.create(MessageType.GET_STATS))
        stats: Dict[str, Dict[str, Any]] = {}
        deadline = time.time() + timeout
        while time.time() < deadline and len(stats) < len(targets):
            for runner_id in targets:
                if runner_id in stats:
                    continue
                reply = self._poll(runner_id)
                if reply and reply.get('type') == MessageType.STATS.value:
                    stats[runner_id] = reply['payload']
            time.sleep(self.POLL_INTERVAL)
        return stats

    def sync_policy(self) -> PolicySnapshot:
        """Push the master snapshot to every live runner (acks arrive later)."""
        snapshot = self.merger.snapshot()
        payload = snapshot.to_dict()
        for runner_id in self._live_runners():
            self._send(runner_id, Message.create(MessageType.UPDATE_POLICY, snapshot=payload))
        logger.info(f"Synced policy to runners: {snapshot.context_count} contexts, "
                    f"epsilon {snapshot.epsilon:.4f}")
        return snapshot

    # ── Training loop ────────────────────────────────────────────────

    def _plan_batches(self, games: int) -> deque:
        size = self.config.batch_size
        plan = deque()
        while games > 0:
            plan.append((str(uuid.uuid4())[:8], min(size, games)))
            games -= size
        return plan

    def train(self, games: Optional[int] = None, verbose: bool = False) -> TrainingReport:
        games = games if games is not None else self.config.games
        if not self.started:
            self.start()

        pending = self._plan_batches(games)
        total_batches = len(pending)
        stats = SimulationStats()
        merged = failed = dropped = games_played = 0
        merged_since_sync = 0
        t0 = time.time()

        self.sync_policy()

        while pending or any(info.current_batch for info in self.runners.values()
                             if info.status != RunnerStatus.FAILED):
            live = self._live_runners()
            if not live:
                logger.error(f"No live runners left; abandoning {len(pending)} batches")
                dropped += len(pending)
                pending.clear()
                break

            for runner_id in live:
                info = self.runners[runner_id]
                if pending and info.available:
                    batch_id, size = pending.popleft()
                    self._send(runner_id, Message.create(
                        MessageType.RUN_BATCH, batch_id=batch_id, batch_size=size,
                        strategies=list(self.config.runner.strategies)))
                    info.current_batch = (batch_id, size)
                    info.dispatched_at = time.time()
                    info.status = RunnerStatus.BUSY

            progressed = False
            for runner_id in live:
                info = self.runners[runner_id]
                reply = self._poll(runner_id) if info.outstanding else None
                if reply is None:
                    if info.current_batch and \
                            time.time() - info.dispatched_at > self.config.result_timeout:
                        logger.warning(f"Dropping batch {info.current_batch[0]}: "
                                       f"{runner_id} exceeded {self.config.result_timeout:.0f}s")
                        info.current_batch = None
                        dropped += 1
                        self._mark_failed(runner_id, "result timeout")
                    continue

                progressed = True
                kind = reply.get('type')
                payload = reply.get('payload', {})

                if kind == MessageType.BATCH_COMPLETE.value:
                    result = BatchResult.from_dict(payload['result'])
                    self.merger.apply_result(result)
                    stats.merge(result.stats)
                    games_played += result.games_played
                    merged += 1
                    merged_since_sync += 1
                    info.batches_completed += 1
                    info.games_played += result.games_played
                    info.current_batch = None
                    info.status = RunnerStatus.IDLE
                    logger.debug(f"Merged batch {result.batch_id} from {runner_id}: "
                                 f"{len(result.delta)} cells")
                    if verbose:
                        print(f"  Batch {merged}/{total_batches} from {runner_id} | "
                              f"games {games_played}/{games} | "
                              f"{result.games_played / max(result.elapsed, 1e-9):.1f} games/s")

                elif kind == MessageType.ERROR.value:
                    batch_id = payload.get('batch_id')
                    logger.warning(f"Runner {runner_id} reported error for batch "
                                   f"{batch_id}: {payload.get('message')}")
                    if info.current_batch and batch_id == info.current_batch[0]:
                        failed += 1
                        info.batches_failed += 1
                        info.current_batch = None
                        info.status = RunnerStatus.IDLE
                        # Discard whatever the failed batch left in the runner's copy
                        self._send(runner_id, Message.create(
                            MessageType.UPDATE_POLICY,
                            snapshot=self.merger.snapshot().to_dict()))

            if merged_since_sync >= self.config.sync_interval:
                self.sync_policy()
                merged_since_sync = 0

            if not progressed:
                time.sleep(self.POLL_INTERVAL)

        elapsed = time.time() - t0
        stats.elapsed = elapsed
        snapshot = self.merger.snapshot()
        logger.info(f"Training finished: {merged}/{total_batches} batches merged, "
                    f"{failed} failed, {dropped} dropped in {elapsed:.1f}s")

        return TrainingReport(
            games_requested=games,
            games_played=games_played,
            batches_merged=merged,
            batches_failed=failed,
            batches_dropped=dropped,
            elapsed=elapsed,
            stats=stats,
            snapshot=snapshot,
            runners={rid: {
                'status': info.status.value,
                'batches_completed': info.batches_completed,
                'batches_failed': info.batches_failed,
                'games_played': info.games_played,
            } for rid, info in self.runners.items()},
        )
