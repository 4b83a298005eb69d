"""
Distributed self-play training

Independent runners that never share memory, coordinated by message passing:
"each runner learns alone; only its deltas meet at the master table"

Architecture:
- Runner processes or threads, one private policy copy each
- Queue-based request/reply protocol with liveness pings
- Lock-guarded additive merge of delta tables into one master policy
- Periodic snapshot push back to the runners
"""

from .config import PolicyConfig, RunnerConfig, TrainingConfig
from .worker import Message, MessageType, SimulationWorker, runner_main
from .coordinator import (
    MergeCoordinator, RunnerInfo, RunnerStatus, TrainingCoordinator, TrainingReport,
)

__all__ = [
    'PolicyConfig',
    'RunnerConfig',
    'TrainingConfig',
    'Message',
    'MessageType',
    'SimulationWorker',
    'runner_main',
    'MergeCoordinator',
    'RunnerInfo',
    'RunnerStatus',
    'TrainingCoordinator',
    'TrainingReport',
]
