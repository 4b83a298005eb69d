"""
Simulation statistics - win rates, scores and learning progress over many games.

Stats from parallel runners are plain counters and lists, so they merge by
addition and travel as dicts.
"""

import time
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

LEARNING_CURVE_INTERVAL = 100


class SimulationStats:

    def __init__(self):
        self.reset()

    def reset(self):
        self.games_played = 0
        self.wins_by_strategy: Dict[str, int] = defaultdict(int)
        self.wins_by_seat: Dict[int, int] = defaultdict(int)
        self.scores_by_strategy: Dict[str, List[int]] = defaultdict(list)
        self.round_counts: List[int] = []
        self.learning_curve: List[Dict] = []
        self.matchups: Dict[str, Dict] = {}
        self.player_count = 0
        self.elapsed = 0.0
        self._started_at: Optional[float] = None

    # ── Recording ────────────────────────────────────────────────────

    def start(self):
        self._started_at = time.time()

    def stop(self):
        if self._started_at is not None:
            self.elapsed += time.time() - self._started_at
            self._started_at = None

    def record_game(self, result, strategy_tags: Sequence[str]):
        """Record one finished game; strategy_tags[i] is the tag at seat i."""
        self.games_played += 1
        self.player_count = max(self.player_count, len(strategy_tags))

        winner = result.winner
        winner_tag = strategy_tags[winner]
        self.wins_by_strategy[winner_tag] += 1
        self.wins_by_seat[winner] += 1

        for seat, tag in enumerate(strategy_tags):
            self.scores_by_strategy[tag].append(result.final_scores[seat])
        self.round_counts.append(result.total_rounds)

        key = '_vs_'.join(sorted(strategy_tags))
        matchup = self.matchups.setdefault(key, {'games': 0, 'wins': {}})
        matchup['games'] += 1
        matchup['wins'][winner_tag] = matchup['wins'].get(winner_tag, 0) + 1

        if self.games_played % LEARNING_CURVE_INTERVAL == 0:
            self.learning_curve.append({
                'games': self.games_played,
                'win_rates': self.get_win_rates(),
                'avg_scores': self.get_average_scores(),
                'timestamp': time.time(),
            })

    # ── Reporting ────────────────────────────────────────────────────

    def get_win_rates(self) -> Dict[str, float]:
        """Wins per seat played, by strategy tag."""
        rates = {}
        for tag, scores in self.scores_by_strategy.items():
            rates[tag] = self.wins_by_strategy.get(tag, 0) / len(scores) if scores else 0.0
        return rates

    def get_win_rates_by_seat(self) -> Dict[int, float]:
        if not self.games_played:
            return {}
        return {seat: self.wins_by_seat.get(seat, 0) / self.games_played
                for seat in range(self.player_count)}

    def get_average_scores(self) -> Dict[str, float]:
        return {tag: sum(scores) / len(scores)
                for tag, scores in self.scores_by_strategy.items() if scores}

    def get_average_rounds(self) -> float:
        if not self.round_counts:
            return 0.0
        return sum(self.round_counts) / len(self.round_counts)

    @property
    def games_per_second(self) -> float:
        return self.games_played / self.elapsed if self.elapsed > 0 else 0.0

    def fairness_ratio(self) -> float:
        """Most-winning seat's wins over least-winning seat's wins."""
        wins = [self.wins_by_seat.get(seat, 0) for seat in range(self.player_count)]
        if not wins or max(wins) == 0:
            return 1.0
        if min(wins) == 0:
            return float('inf')
        return max(wins) / min(wins)

    def get_summary(self) -> Dict:
        return {
            'games_played': self.games_played,
            'win_rates': self.get_win_rates(),
            'win_rates_by_seat': self.get_win_rates_by_seat(),
            'avg_scores': self.get_average_scores(),
            'avg_rounds': self.get_average_rounds(),
            'elapsed': self.elapsed,
            'games_per_second': self.games_per_second,
            'learning_curve': list(self.learning_curve),
        }

    def get_report(self) -> str:
        summary = self.get_summary()
        lines = [
            "=" * 50,
            "SIMULATION REPORT",
            "=" * 50,
            f"Total games: {summary['games_played']}",
            f"Average rounds per game: {summary['avg_rounds']:.1f}",
        ]
        if self.elapsed > 0:
            lines.append(f"Throughput: {self.games_per_second:.1f} games/sec")

        lines.append("\nWin rates by strategy:")
        for tag, rate in sorted(summary['win_rates'].items(), key=lambda kv: -kv[1]):
            wins = self.wins_by_strategy.get(tag, 0)
            seats = len(self.scores_by_strategy[tag])
            lines.append(f"  {tag:<10} {rate:6.1%} ({wins}/{seats})")

        lines.append("\nWin rates by seat:")
        for seat, rate in summary['win_rates_by_seat'].items():
            lines.append(f"  Seat {seat}: {rate:6.1%}")

        lines.append("\nAverage final scores:")
        for tag, score in sorted(summary['avg_scores'].items(), key=lambda kv: kv[1]):
            lines.append(f"  {tag:<10} {score:.1f}")
        return "\n".join(lines)

    # ── Combining ────────────────────────────────────────────────────

    def merge(self, other: 'SimulationStats'):
        """Fold another runner's stats into this one."""
        self.games_played += other.games_played
        self.player_count = max(self.player_count, other.player_count)
        for tag, wins in other.wins_by_strategy.items():
            self.wins_by_strategy[tag] += wins
        for seat, wins in other.wins_by_seat.items():
            self.wins_by_seat[seat] += wins
        for tag, scores in other.scores_by_strategy.items():
            self.scores_by_strategy[tag].extend(scores)
        self.round_counts.extend(other.round_counts)
        for key, data in other.matchups.items():
            matchup = self.matchups.setdefault(key, {'games': 0, 'wins': {}})
            matchup['games'] += data['games']
            for tag, wins in data['wins'].items():
                matchup['wins'][tag] = matchup['wins'].get(tag, 0) + wins

    def to_dict(self) -> Dict:
        return {
            'games_played': self.games_played,
            'player_count': self.player_count,
            'wins_by_strategy': dict(self.wins_by_strategy),
            # JSON object keys must be strings
            'wins_by_seat': {str(k): v for k, v in self.wins_by_seat.items()},
            'scores_by_strategy': {k: list(v) for k, v in self.scores_by_strategy.items()},
            'round_counts': list(self.round_counts),
            'learning_curve': list(self.learning_curve),
            'matchups': {k: {'games': v['games'], 'wins': dict(v['wins'])}
                         for k, v in self.matchups.items()},
            'elapsed': self.elapsed,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SimulationStats':
        stats = cls()
        stats.games_played = data.get('games_played', 0)
        stats.player_count = data.get('player_count', 0)
        stats.wins_by_strategy.update(data.get('wins_by_strategy', {}))
        stats.wins_by_seat.update({int(k): v for k, v in data.get('wins_by_seat', {}).items()})
        for tag, scores in data.get('scores_by_strategy', {}).items():
            stats.scores_by_strategy[tag].extend(scores)
        stats.round_counts = list(data.get('round_counts', []))
        stats.learning_curve = list(data.get('learning_curve', []))
        stats.matchups = {k: {'games': v['games'], 'wins': dict(v['wins'])}
                          for k, v in data.get('matchups', {}).items()}
        stats.elapsed = data.get('elapsed', 0.0)
        return stats
