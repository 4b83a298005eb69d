#!/usr/bin/env python3
"""
ZapZap Self-Play - Command Line Interface

Train, evaluate and inspect the ZapZap learning pipeline.

Usage:
    python cli.py train --games 10000 --workers 8 --save-path policy.json
    python cli.py evaluate --games 200 --strategies ml hard medium easy
    python cli.py features view.json
    python cli.py predict view.json --category playType
    python cli.py conformance --fixtures 500
"""

import argparse
import json
import logging
import os
import sys

from distributed.config import PolicyConfig, RunnerConfig, TrainingConfig
from distributed.coordinator import TrainingCoordinator
from game.game_state import PlayerView
from zapzap_ai.bandit_policy import BanditPolicy, load_snapshot, save_snapshot
from zapzap_ai.categories import DecisionCategory
from zapzap_ai.conformance import run_conformance
from zapzap_ai.encoder import FeatureExtractor
from zapzap_ai.errors import ZapZapError
from zapzap_ai.ml_strategy import StrategyFactory
from zapzap_ai.parallel_worker import BatchSimulationRunner
from zapzap_ai.policy import LightweightDQN


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='zapzap-sim',
        description='ZapZap self-play training pipeline'
    )
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    strategies = StrategyFactory.available_strategies()

    # Train command
    train_parser = subparsers.add_parser('train', help='Batch-parallel self-play training')
    train_parser.add_argument('--games', '-g', type=int, default=1000,
                              help='Total games to simulate')
    train_parser.add_argument('--workers', '-w', type=int, default=None,
                              help='Number of runners (default: CPU count)')
    train_parser.add_argument('--batch-size', '-b', type=int, default=100,
                              help='Games per batch')
    train_parser.add_argument('--sync-interval', type=int, default=10,
                              help='Merged batches between policy pushes')
    train_parser.add_argument('--strategies', '-s', nargs='+', choices=strategies,
                              default=['ml', 'hard', 'medium', 'easy'],
                              help='Strategy tag per seat (2-4 seats)')
    train_parser.add_argument('--threads', action='store_true',
                              help='Run runners as threads instead of processes')
    train_parser.add_argument('--seed', type=int, default=None,
                              help='Base seed for runners')
    train_parser.add_argument('--epsilon', type=float, default=0.3,
                              help='Initial exploration rate')
    train_parser.add_argument('--save-path', type=str, default=None,
                              help='Write the trained policy snapshot here (JSON)')
    train_parser.add_argument('--resume', type=str, default=None,
                              help='Start from a saved policy snapshot')

    # Evaluate command
    eval_parser = subparsers.add_parser('evaluate', help='Play one sequential batch, no merge')
    eval_parser.add_argument('--games', '-g', type=int, default=100,
                             help='Games to play')
    eval_parser.add_argument('--strategies', '-s', nargs='+', choices=strategies,
                             default=['ml', 'hard', 'medium', 'easy'],
                             help='Strategy tag per seat (2-4 seats)')
    eval_parser.add_argument('--policy', type=str, default=None,
                             help='Policy snapshot for ml seats')
    eval_parser.add_argument('--greedy', action='store_true',
                             help='Disable exploration for ml seats')
    eval_parser.add_argument('--seed', type=int, default=None,
                             help='Runner seed')

    # Features command
    feat_parser = subparsers.add_parser('features', help='Extract the feature vector for a view')
    feat_parser.add_argument('view', type=str, help='Game view (JSON file or inline JSON)')

    # Predict command
    pred_parser = subparsers.add_parser('predict', help='DQN Q-values for a view')
    pred_parser.add_argument('view', type=str, help='Game view (JSON file or inline JSON)')
    pred_parser.add_argument('--category', '-c', type=str, default='playType',
                             help='Decision category')
    pred_parser.add_argument('--dqn-seed', type=int, default=42,
                             help='Weight initialization seed')

    # Conformance command
    conf_parser = subparsers.add_parser('conformance', help='Reference vs vectorized parity check')
    conf_parser.add_argument('--fixtures', '-n', type=int, default=200,
                             help='Corpus size')
    conf_parser.add_argument('--seed', type=int, default=0,
                             help='Corpus seed')
    conf_parser.add_argument('--dqn-seed', type=int, default=42,
                             help='Weight initialization seed')
    conf_parser.add_argument('--tolerance', type=float, default=1e-9,
                             help='Max absolute difference allowed')

    return parser


def load_view(source: str) -> PlayerView:
    if os.path.exists(source):
        with open(source, 'r') as f:
            data = json.load(f)
    else:
        data = json.loads(source)
    return PlayerView.from_dict(data)


def cmd_train(args):
    """Run batch-parallel training"""
    config = TrainingConfig.for_single_machine(args.workers)
    config.games = args.games
    config.batch_size = args.batch_size
    config.sync_interval = args.sync_interval
    config.use_processes = not args.threads
    config.save_path = args.save_path
    config.policy = PolicyConfig(epsilon=args.epsilon)
    config.runner = RunnerConfig(strategies=args.strategies, seed=args.seed)

    initial = load_snapshot(args.resume) if args.resume else None

    print("=" * 60)
    print("ZAPZAP SELF-PLAY TRAINING")
    print("=" * 60)
    print(f"Games: {config.games} | Batch size: {config.batch_size} | "
          f"Runners: {config.workers} ({'threads' if args.threads else 'processes'})")
    print(f"Seats: {', '.join(config.runner.strategies)}")
    if initial:
        print(f"Resuming from {args.resume} ({initial.context_count} contexts)")

    with TrainingCoordinator(config, initial_snapshot=initial) as coordinator:
        report = coordinator.train(verbose=True)

    print("\n" + report.stats.get_report())
    print("-" * 60)
    print(f"Batches merged: {report.batches_merged} | failed: {report.batches_failed} | "
          f"dropped: {report.batches_dropped}")
    print(f"Throughput: {report.games_per_second:.1f} games/sec")
    print(f"Policy: {report.snapshot.context_count} contexts, "
          f"{report.snapshot.total_updates} updates, epsilon {report.snapshot.epsilon:.4f}")

    if config.save_path:
        save_snapshot(config.save_path, report.snapshot)
        print(f"Saved policy to {config.save_path}")
    return 0


def cmd_evaluate(args):
    """Play one sequential batch and print the report"""
    policy = BanditPolicy(seed=args.seed)
    if args.policy:
        policy.restore(load_snapshot(args.policy))
    policy.trained_mode = args.greedy

    runner = BatchSimulationRunner("evaluate", seed=args.seed)
    result = runner.run_batch(policy, args.strategies, args.games)

    print(result.stats.get_report())
    print("-" * 60)
    print(f"Fairness ratio (best/worst seat wins): {result.stats.fairness_ratio():.2f}")
    return 0


def cmd_features(args):
    """Print the feature vector for a view"""
    extractor = FeatureExtractor()
    vector = extractor.extract_view(load_view(args.view))
    for name, value in extractor.describe(vector).items():
        print(f"  {name:<26} {value:.4f}")
    return 0


def cmd_predict(args):
    """Print Q-values and the greedy action for a view"""
    category = DecisionCategory.parse(args.category)
    vector = FeatureExtractor().extract_view(load_view(args.view))
    dqn = LightweightDQN.init(args.dqn_seed)
    q_values = dqn.predict(vector, category)
    best = dqn.greedy_action(vector, category)

    print(f"Category: {category.value}")
    for i, q in enumerate(q_values):
        marker = " <-" if i == best else ""
        print(f"  [{i}] {str(category.action_value(i)):<18} {q:+.6f}{marker}")
    return 0


def cmd_conformance(args):
    """Run the reference/vectorized parity check"""
    report = run_conformance(seed=args.seed, size=args.fixtures,
                             dqn_seed=args.dqn_seed, tolerance=args.tolerance)
    print("=" * 60)
    print("CONFORMANCE")
    print("=" * 60)
    print(f"Fixtures checked: {report.checked}")
    print(f"Max feature diff: {report.feature_max_abs_diff:.3g}")
    print(f"Max Q-value diff: {report.max_abs_diff:.3g}")
    for mismatch in report.mismatches[:20]:
        print(f"  {mismatch}")
    print("PASSED" if report.passed else "FAILED")
    return 0 if report.passed else 1


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )

    if not args.command:
        parser.print_help()
        return 0

    # Map commands to functions
    commands = {
        'train': cmd_train,
        'evaluate': cmd_evaluate,
        'features': cmd_features,
        'predict': cmd_predict,
        'conformance': cmd_conformance,
    }

    try:
        return commands[args.command](args)
    except ZapZapError as e:
        print(f"Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main() or 0)
