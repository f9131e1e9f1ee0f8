"""
Simulation Orchestrator Module

Drives one platoon run: controller commands, engine step, safety check of
the new snapshot (and of an optional prediction), and warning dispatch.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np

from .history import HistoryView
from .metrics import MetricsCollector
from .models import PlatoonState, SimulationStatus, Violation
from .safety import SafetyMonitor
from .simulation import PlatoonSimulation
from .warning_system import WarningSystem

logger = logging.getLogger(__name__)

# predictor(state) -> {'positions': ..., 'velocities': ..., 'accelerations': ..., 'jerks': ...}
Predictor = Callable[[PlatoonState], Mapping[str, Any]]
# controller(state) -> {truck_index: {'acceleration': a, 'jerk': j}}
Controller = Callable[[PlatoonState], Optional[Dict[int, Dict[str, float]]]]


def kinematic_prediction(state: PlatoonState, dt: float) -> Dict[str, np.ndarray]:
    """
    Predict the next state by extrapolating current kinematics

    Reference prediction source with the same shape as a learned model's
    output; does not clamp or apply spacing correction.
    """
    pos = state.positions()
    vel = state.velocities()
    acc = state.accelerations()
    jerk = state.jerks()

    return {
        'positions': pos + vel * dt + 0.5 * acc * dt ** 2 + jerk * dt ** 3 / 6.0,
        'velocities': vel + acc * dt + 0.5 * jerk * dt ** 2,
        'accelerations': acc + jerk * dt,
        'jerks': jerk.copy()
    }


@dataclass
class RunResult:
    """Outcome of one simulation run"""
    final_state: PlatoonState
    history: HistoryView
    completion_reason: Optional[str]
    violation_log: List[Dict[str, Any]] = field(default_factory=list)
    warning_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def steps(self) -> int:
        return max(len(self.history) - 1, 0)


class PlatoonRunner:
    """
    Runs a simulation with live safety monitoring

    Violations are raised with the simulation time as the warning clock so
    rate limiting is reproducible.
    """

    def __init__(self, simulation: PlatoonSimulation,
                 monitor: Optional[SafetyMonitor] = None,
                 warnings: Optional[WarningSystem] = None,
                 predictor: Optional[Predictor] = None,
                 controller: Optional[Controller] = None,
                 metrics_collector: Optional[MetricsCollector] = None):
        """
        Args:
            simulation: Engine to drive; the runner is its only caller
            monitor: Safety monitor (built from the simulation config if None)
            warnings: Warning system (built from the simulation config if None)
            predictor: Optional prediction source checked every step
            controller: Optional callable producing per-truck commands
            metrics_collector: Collector receiving the run metrics
        """
        self.simulation = simulation
        self.monitor = monitor or SafetyMonitor(simulation.config)
        self.warnings = warnings or WarningSystem(simulation.config)
        self.predictor = predictor
        self.controller = controller
        self.metrics_collector = metrics_collector or MetricsCollector(
            comfort_accel_max=simulation.config.safety.max_acceleration,
            comfort_jerk_max=simulation.config.safety.max_jerk
        )

        self.violation_log: List[Dict[str, Any]] = []

    def run(self, max_steps: Optional[int] = None) -> RunResult:
        """
        Run until the simulation finishes, pauses, or max_steps is hit

        Starting from a CREATED simulation begins a fresh run: warning
        windows and the violation log of any earlier run are dropped,
        since the simulation clock restarts at zero.

        Raises:
            InvalidInitialState, NumericDivergence: from the engine
        """
        sim = self.simulation
        if sim.status is SimulationStatus.CREATED:
            sim.start()
            self.warnings.clear_warnings()
            self.violation_log = []

        logger.info(f"Starting platoon run ({sim.num_trucks} trucks, "
                    f"goal {sim.config.simulation.distance_goal:.1f}m)")

        steps = 0
        while sim.status is SimulationStatus.RUNNING:
            if max_steps is not None and steps >= max_steps:
                break
            self.run_step()
            steps += 1

        return self.result()

    def run_step(self) -> PlatoonState:
        """Advance one step and process safety for the new state"""
        sim = self.simulation

        if self.controller is not None:
            commands = self.controller(sim.state) or {}
            for index, command in commands.items():
                sim.set_control(index, acceleration=command.get('acceleration'),
                                jerk=command.get('jerk'))

        state = sim.step()

        report = self.monitor.check_state(state)
        self._record(report.violations, state.time, 'live')
        self.warnings.process(report.violations, now=state.time)

        if self.predictor is not None and not state.finished:
            prediction = self.predictor(state)
            predicted = self.monitor.check_prediction(prediction)
            tagged = [replace(v, message=f"[predicted] {v.message}") for v in predicted.violations]
            self._record(tagged, state.time, 'predicted')
            self.warnings.process(tagged, now=state.time)

        return state

    def _record(self, violations: List[Violation], time: float, source: str):
        for v in violations:
            self.violation_log.append({
                'time': time,
                'kind': v.kind.name,
                'source': source,
                'message': v.message
            })

    def result(self) -> RunResult:
        sim = self.simulation
        warning_stats = self.warnings.get_warning_stats()
        metrics = self.metrics_collector.compute_run_metrics(
            sim.history, self.violation_log, warning_stats, sim.completion_reason
        )

        return RunResult(
            final_state=sim.state,
            history=sim.history,
            completion_reason=sim.completion_reason,
            violation_log=list(self.violation_log),
            warning_stats=warning_stats,
            metrics=metrics
        )

    def save_results(self, result: RunResult, results_dir: Optional[str] = None,
                     output_format: Optional[str] = None) -> Path:
        """
        Save history and summary of a run

        Returns:
            Directory the results were written to
        """
        output = self.simulation.config.output
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_dir = Path(results_dir or output.results_directory) / f"run_{timestamp}"
        run_dir.mkdir(parents=True, exist_ok=True)

        fmt = output_format or output.format
        result.history.save(run_dir / f"history.{fmt}", format=fmt)

        summary = {
            'config_hash': self.simulation.config.config_hash(),
            'completion_reason': result.completion_reason,
            'final_time': result.final_state.time,
            'metrics': result.metrics,
            'warnings': result.warning_stats
        }
        with open(run_dir / "summary.json", 'w') as f:
            json.dump(summary, f, indent=2, default=str)

        logger.info(f"Results saved to {run_dir}")
        return run_dir
