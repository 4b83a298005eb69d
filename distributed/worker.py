"""
Simulation Workers

Each runner is an independent execution context that:
- Owns a private BanditPolicy copy and its own game engines
- Receives requests as messages on its inbox queue
- Replies on its outbox queue (completed batch, ack, stats, pong or error)

Nothing is shared with the coordinator except the queues. A runner never
raises out of its loop; failures become explicit error messages.
"""

import logging
import time
import traceback
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from distributed.config import PolicyConfig, RunnerConfig
from zapzap_ai.bandit_policy import BanditPolicy, PolicySnapshot
from zapzap_ai.errors import ProtocolError, RunnerFailure
from zapzap_ai.parallel_worker import BatchSimulationRunner

logger = logging.getLogger(__name__)


class MessageType(Enum):
    """Coordinator <-> runner message types"""
    RUN_BATCH = "run_batch"
    BATCH_COMPLETE = "batch_complete"
    UPDATE_POLICY = "update_policy"
    POLICY_UPDATED = "policy_updated"
    GET_STATS = "get_stats"
    STATS = "stats"
    PING = "ping"
    PONG = "pong"
    SHUTDOWN = "shutdown"
    ERROR = "error"


@dataclass
class Message:
    """One message on a runner queue. Travels as a plain dict."""
    type: MessageType
    payload: Dict[str, Any] = field(default_factory=dict)
    message_id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    reply_to: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    @classmethod
    def create(cls, kind: MessageType, reply_to: Optional[str] = None,
               **payload) -> 'Message':
        return cls(type=kind, payload=payload, reply_to=reply_to)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'payload': self.payload,
            'message_id': self.message_id,
            'reply_to': self.reply_to,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a message dict, got {type(data).__name__}")
        raw_type = data.get('type')
        try:
            message_type = MessageType(raw_type)
        except ValueError:
            raise ProtocolError(f"Unknown message type: {raw_type!r}",
                                message_type=raw_type) from None
        return cls(
            type=message_type,
            payload=data.get('payload') or {},
            message_id=data.get('message_id') or str(uuid.uuid4())[:12],
            reply_to=data.get('reply_to'),
            created_at=data.get('created_at', time.time()),
        )


def error_message(message: str, trace: Optional[str] = None,
                  reply_to: Optional[str] = None, **extra) -> Message:
    return Message.create(MessageType.ERROR, reply_to=reply_to,
                          message=message, trace=trace, **extra)


class SimulationWorker:
    """
    Message handler around one BatchSimulationRunner.

    handle_message() is total: every input, malformed or not, produces
    exactly one reply dict.
    """

    def __init__(self, runner_id: str, config: Optional[RunnerConfig] = None,
                 policy_config: Optional[PolicyConfig] = None):
        self.runner_id = runner_id
        self.config = config or RunnerConfig()
        policy_config = policy_config or PolicyConfig()

        self.policy = BanditPolicy(
            epsilon=policy_config.epsilon,
            min_epsilon=policy_config.min_epsilon,
            epsilon_decay=policy_config.epsilon_decay,
            optimistic_value=policy_config.optimistic_value,
            seed=self.config.seed,
        )
        self.runner = BatchSimulationRunner(
            runner_id=runner_id,
            seed=self.config.seed,
            dqn_seed=self.config.dqn_seed,
            dqn_epsilon=self.config.dqn_epsilon,
            max_turns_per_round=self.config.max_turns_per_round,
            max_rounds=self.config.max_rounds,
        )

        self.running = True
        self.batches_completed = 0
        self.batches_failed = 0
        self.games_played = 0
        self.start_time = time.time()

        self._handlers = {
            MessageType.RUN_BATCH: self._run_batch,
            MessageType.UPDATE_POLICY: self._update_policy,
            MessageType.GET_STATS: self._get_stats,
            MessageType.PING: self._ping,
            MessageType.SHUTDOWN: self._shutdown,
        }

        logger.info(f"Runner {runner_id} initialized")

    def handle_message(self, raw) -> Dict[str, Any]:
        reply_to = raw.get('message_id') if isinstance(raw, dict) else None
        batch_id = None
        try:
            message = raw if isinstance(raw, Message) else Message.from_dict(raw)
            reply_to = message.message_id
            batch_id = message.payload.get('batch_id')
            handler = self._handlers.get(message.type)
            if handler is None:
                raise ProtocolError(
                    f"Runner cannot handle message type {message.type.value!r}",
                    message_type=message.type.value)
            reply = handler(message)

        except RunnerFailure as e:
            self.batches_failed += 1
            logger.error(f"Runner {self.runner_id} batch {e.batch_id} failed: {e.message}")
            reply = error_message(e.message, trace=e.trace, reply_to=reply_to,
                                  batch_id=e.batch_id, runner_id=self.runner_id)

        except ProtocolError as e:
            logger.error(f"Runner {self.runner_id} protocol error: {e.message}")
            reply = error_message(e.message, trace=traceback.format_exc(),
                                  reply_to=reply_to, runner_id=self.runner_id,
                                  message_type=e.message_type)

        except Exception as e:
            logger.error(f"Runner {self.runner_id} error: {e}")
            reply = error_message(str(e), trace=traceback.format_exc(),
                                  reply_to=reply_to, runner_id=self.runner_id,
                                  batch_id=batch_id)

        return reply.to_dict()

    def get_status(self) -> Dict[str, Any]:
        return {
            'runner_id': self.runner_id,
            'batches_completed': self.batches_completed,
            'batches_failed': self.batches_failed,
            'games_played': self.games_played,
            'uptime_seconds': time.time() - self.start_time,
        }

    # ── Handlers ─────────────────────────────────────────────────────

    def _run_batch(self, message: Message) -> Message:
        payload = message.payload
        if payload.get('snapshot') is not None:
            self.policy.restore(PolicySnapshot.from_dict(payload['snapshot']))

        result = self.runner.run_batch(
            self.policy,
            payload.get('strategies') or self.config.strategies,
            payload.get('batch_size'),
            batch_id=payload.get('batch_id'),
        )
        self.batches_completed += 1
        self.games_played += result.games_played
        return Message.create(MessageType.BATCH_COMPLETE, reply_to=message.message_id,
                              runner_id=self.runner_id, batch_id=result.batch_id,
                              result=result.to_dict())

    def _update_policy(self, message: Message) -> Message:
        snapshot = PolicySnapshot.from_dict(message.payload['snapshot'])
        self.policy.restore(snapshot)
        return Message.create(MessageType.POLICY_UPDATED, reply_to=message.message_id,
                              runner_id=self.runner_id,
                              total_updates=self.policy.total_updates)

    def _get_stats(self, message: Message) -> Message:
        return Message.create(MessageType.STATS, reply_to=message.message_id,
                              runner_id=self.runner_id,
                              epsilon=self.policy.epsilon,
                              context_count=self.policy.context_count,
                              total_updates=self.policy.total_updates,
                              **{k: v for k, v in self.get_status().items()
                                 if k != 'runner_id'})

    def _ping(self, message: Message) -> Message:
        return Message.create(MessageType.PONG, reply_to=message.message_id,
                              runner_id=self.runner_id)

    def _shutdown(self, message: Message) -> Message:
        self.running = False
        return Message.create(MessageType.SHUTDOWN, reply_to=message.message_id,
                              runner_id=self.runner_id)


def serve(worker: SimulationWorker, inbox, outbox):
    """Handle inbox messages until shutdown. A None message also stops the loop."""
    while worker.running:
        raw = inbox.get()
        if raw is None:
            break
        outbox.put(worker.handle_message(raw))
    logger.info(f"Runner {worker.runner_id} stopped")


def runner_main(runner_id: str, runner_config: Dict[str, Any],
                policy_config: Dict[str, Any], inbox, outbox):
    """Entry point for both process and thread runners."""
    worker = SimulationWorker(runner_id,
                              RunnerConfig.from_dict(runner_config),
                              PolicyConfig.from_dict(policy_config))
    serve(worker, inbox, outbox)
