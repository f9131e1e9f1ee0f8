"""
Metrics Collection and Analysis Module

Per-run safety and performance metrics for platoon simulations and
aggregation across randomized campaigns.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, asdict

import numpy as np
import pandas as pd
import scipy.stats as stats

from .history import HistoryView, StateHistory
from .models import ViolationKind

logger = logging.getLogger(__name__)


@dataclass
class SafetyMetrics:
    """Container for safety-related metrics"""
    collision: bool = False
    min_gap: float = float('inf')
    mean_gap: float = float('nan')
    distance_violations: int = 0
    speed_violations: int = 0
    acceleration_violations: int = 0
    collision_violations: int = 0
    emergency_brake_violations: int = 0
    predicted_violations: int = 0
    unsafe_step_fraction: float = 0.0


@dataclass
class PerformanceMetrics:
    """Container for performance-related metrics"""
    duration: float = 0.0
    steps: int = 0
    distance_traveled: float = 0.0
    average_speed: float = 0.0
    max_speed: float = 0.0
    max_abs_jerk: float = 0.0
    comfort_score: float = 1.0


class MetricsCollector:
    """
    Metrics computation for platoon runs

    Every run's metrics are kept in ``metrics_history`` for campaign-level
    aggregation.
    """

    def __init__(self, comfort_accel_max: float = 2.5, comfort_jerk_max: float = 1.0):
        self.thresholds = {
            'comfort_accel_max': comfort_accel_max,  # m/s^2
            'comfort_jerk_max': comfort_jerk_max,  # m/s^3
        }
        self.metrics_history: List[Dict[str, Any]] = []

    def compute_run_metrics(self, history: Union[StateHistory, HistoryView],
                            violation_log: Optional[List[Dict[str, Any]]] = None,
                            warning_stats: Optional[Dict[str, Dict[str, Any]]] = None,
                            completion_reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Compute metrics for one simulation run

        Args:
            history: Recorded states of the run
            violation_log: One dict per violation with ``time``, ``kind``
                (ViolationKind name) and ``source`` (live or predicted)
            warning_stats: WarningSystem.get_warning_stats() output
            completion_reason: How the run ended

        Returns:
            Flat dictionary of metrics
        """
        df = history.to_dataframe()
        violations = pd.DataFrame(violation_log or [], columns=['time', 'kind', 'source', 'message'])

        safety_metrics = self._compute_safety_metrics(df, violations, len(history))
        performance_metrics = self._compute_performance_metrics(df)

        warning_stats = warning_stats or {}
        metrics = {
            **asdict(safety_metrics),
            **asdict(performance_metrics),
            'warnings_dispatched': sum(s.get('dispatched', 0) for s in warning_stats.values()),
            'warnings_suppressed': sum(s.get('suppressed', 0) for s in warning_stats.values()),
            'completion_reason': completion_reason
        }

        self.metrics_history.append(metrics)
        return metrics

    def _compute_safety_metrics(self, df: pd.DataFrame, violations: pd.DataFrame,
                                num_states: int) -> SafetyMetrics:
        metrics = SafetyMetrics()

        gaps = df['gap'].dropna()
        if not gaps.empty:
            metrics.min_gap = float(gaps.min())
            metrics.mean_gap = float(gaps.mean())

        if violations.empty:
            return metrics

        live = violations[violations['source'] != 'predicted']
        counts = live['kind'].value_counts()
        metrics.distance_violations = int(counts.get(ViolationKind.DISTANCE.name, 0))
        metrics.speed_violations = int(counts.get(ViolationKind.SPEED.name, 0))
        metrics.acceleration_violations = int(counts.get(ViolationKind.ACCELERATION.name, 0))
        metrics.collision_violations = int(counts.get(ViolationKind.COLLISION.name, 0))
        metrics.emergency_brake_violations = int(counts.get(ViolationKind.EMERGENCY_BRAKE.name, 0))
        metrics.predicted_violations = int((violations['source'] == 'predicted').sum())
        metrics.collision = metrics.collision_violations > 0

        if num_states > 1:
            metrics.unsafe_step_fraction = live['time'].nunique() / (num_states - 1)

        return metrics

    def _compute_performance_metrics(self, df: pd.DataFrame) -> PerformanceMetrics:
        metrics = PerformanceMetrics()
        if df.empty:
            return metrics

        times = df['time'].unique()
        lead = df[df['truck'] == 0]

        metrics.duration = float(times.max() - times.min())
        metrics.steps = len(times) - 1
        metrics.distance_traveled = float(lead['position'].iloc[-1] - lead['position'].iloc[0])
        if metrics.duration > 0:
            metrics.average_speed = metrics.distance_traveled / metrics.duration
        metrics.max_speed = float(df['velocity'].max())
        metrics.max_abs_jerk = float(df['jerk'].abs().max())

        # Comfort score (based on acceleration/jerk)
        comfort_accel = max(0.0, 1 - df['acceleration'].abs().mean() / self.thresholds['comfort_accel_max'])
        comfort_jerk = max(0.0, 1 - df['jerk'].abs().mean() / self.thresholds['comfort_jerk_max'])
        metrics.comfort_score = (comfort_accel + comfort_jerk) / 2

        return metrics

    def aggregate_metrics(self, metrics_list: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Aggregate metrics across multiple runs

        Args:
            metrics_list: List of metrics dictionaries; defaults to every
                run computed by this collector

        Returns:
            Aggregated statistics
        """
        if metrics_list is None:
            metrics_list = self.metrics_history
        if not metrics_list:
            logger.warning("No metrics to aggregate")
            return {'total_runs': 0}

        df = pd.DataFrame(metrics_list)
        n = len(df)

        aggregated = {
            'total_runs': n,
            'collision_rate': df['collision'].mean() * 100,
            'collision_count': int(df['collision'].sum()),
            'min_gap': float(df['min_gap'].min()),
            'avg_min_gap': float(df['min_gap'].mean()),
            'total_distance_violations': int(df['distance_violations'].sum()),
            'total_speed_violations': int(df['speed_violations'].sum()),
            'total_emergency_brakes': int(df['emergency_brake_violations'].sum()),
            'avg_comfort_score': float(df['comfort_score'].mean()),
            'goal_reached_rate': float((df['completion_reason'] == 'distance_goal').mean() * 100),
            'collision_confidence_interval': self.collision_confidence_interval(
                df['collision'].mean(), n
            )
        }

        # Safety score (0-100)
        safety_score = 100.0
        safety_score -= aggregated['collision_rate'] * 0.5
        safety_score -= aggregated['total_distance_violations'] / n * 0.1
        safety_score -= aggregated['total_emergency_brakes'] / n * 0.1
        aggregated['safety_score'] = max(0.0, safety_score)

        return aggregated

    @staticmethod
    def collision_confidence_interval(mean: float, n: int,
                                      confidence: float = 0.95) -> Tuple[float, float]:
        """Wilson score interval for the per-run collision proportion"""
        if n == 0:
            return (0.0, 1.0)

        z = stats.norm.ppf(1 - (1 - confidence) / 2)

        denominator = 1 + z ** 2 / n
        center = (mean + z ** 2 / (2 * n)) / denominator
        margin = z * np.sqrt(mean * (1 - mean) / n + z ** 2 / (4 * n ** 2)) / denominator

        return (float(max(0.0, center - margin)), float(min(1.0, center + margin)))

    def export_markdown_report(self, output_path: str):
        """Write a Markdown summary of all recorded runs"""
        if not self.metrics_history:
            logger.warning("No metrics to export")
            return

        aggregated = self.aggregate_metrics()
        low, high = aggregated['collision_confidence_interval']
        md_content = f"""# Platoon Safety Report

## Summary Statistics

| Metric | Value |
|--------|-------|
| Total Runs | {aggregated['total_runs']} |
| Collision Rate | {aggregated['collision_rate']:.2f}% (95% CI {low:.3f}-{high:.3f}) |
| Goal Reached | {aggregated['goal_reached_rate']:.1f}% |
| Safety Score | {aggregated['safety_score']:.1f}/100 |
| Minimum Gap | {aggregated['min_gap']:.2f} m |

## Violations

- Distance: {aggregated['total_distance_violations']}
- Speed: {aggregated['total_speed_violations']}
- Emergency Braking: {aggregated['total_emergency_brakes']}
"""

        with open(output_path, 'w') as f:
            f.write(md_content)

        logger.info(f"Markdown report saved to {output_path}")
