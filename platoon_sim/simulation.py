"""
Platoon Simulation Engine

Owns the authoritative platoon state and advances it in fixed time steps
with a jerk-aware kinematic update, a hard spacing clamp and completion
detection. Single-threaded: callers serialize step() calls.
"""

import logging
from typing import Optional, Union, Dict, Any
from pathlib import Path

import numpy as np

from .config import PlatoonConfig, load_config
from .errors import InvalidInitialState, NumericDivergence
from .history import HistoryView, StateHistory
from .models import PlatoonState, SimulationStatus, Truck

logger = logging.getLogger(__name__)

SPACING_TOLERANCE = 1e-9  # meters
TIME_TOLERANCE = 1e-9  # seconds


class PlatoonSimulation:
    """
    Truck platoon simulator

    Lifecycle: CREATED -> RUNNING <-> PAUSED, RUNNING -> FINISHED.
    FINISHED is terminal until reset().
    """

    def __init__(self, config: Union[str, Path, Dict[str, Any], PlatoonConfig, None] = None):
        """
        Initialize simulation

        Args:
            config: PlatoonConfig, dict of sections, path to a config file,
                or None for defaults

        Raises:
            ConfigurationError: if the configuration is invalid
        """
        self.config = load_config(config)
        self.num_trucks = self.config.truck.num_trucks

        self._history = StateHistory()
        self._history_view = HistoryView(self._history)
        self._last_state: Optional[PlatoonState] = None
        self._rng: Optional[np.random.Generator] = None
        self._status = SimulationStatus.CREATED
        self._completion_reason: Optional[str] = None
        self._steps = 0

        self.reset()
        logger.info(f"Simulation initialized with {self.num_trucks} trucks")

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def status(self) -> SimulationStatus:
        return self._status

    @property
    def time(self) -> float:
        return self._steps * self.config.simulation.time_step

    @property
    def state(self) -> PlatoonState:
        """Immutable snapshot of the current state"""
        return self._snapshot()

    @property
    def history(self) -> HistoryView:
        """Read-only view of the recorded states"""
        return self._history_view

    @property
    def completion_reason(self) -> Optional[str]:
        return self._completion_reason

    def is_finished(self) -> bool:
        return self._status is SimulationStatus.FINISHED

    def _snapshot(self) -> PlatoonState:
        trucks = tuple(
            Truck(
                position=float(self._positions[i]),
                velocity=float(self._velocities[i]),
                acceleration=float(self._accelerations[i]),
                jerk=float(self._jerks[i]),
                length=float(self._lengths[i]),
                weight=float(self._weights[i])
            )
            for i in range(self.num_trucks)
        )
        return PlatoonState(time=self.time, trucks=trucks, finished=self.is_finished())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self):
        """
        Reset to the canonical starting layout

        Trucks are placed back to front from the lead truck at position 0,
        one ``min_safe_distance + max_length`` apart, all at the initial
        speed with zero acceleration and jerk.
        """
        truck = self.config.truck
        spacing = self.config.safety.min_safe_distance + truck.max_length
        n = self.num_trucks

        self._positions = -spacing * np.arange(n, dtype=float)
        self._velocities = np.full(n, truck.initial_speed, dtype=float)
        self._accelerations = np.zeros(n)
        self._jerks = np.zeros(n)
        self._lengths = np.full(n, truck.max_length, dtype=float)
        self._weights = np.full(n, truck.max_weight, dtype=float)

        self._steps = 0
        self._status = SimulationStatus.CREATED
        self._completion_reason = None
        self._rng = np.random.default_rng(self.config.simulation.random_seed)

        self._history.clear()
        self._record(self._snapshot())

        logger.debug(f"Simulation reset (seed={self.config.simulation.random_seed})")

    def start(self):
        """
        Start the simulation

        Raises:
            InvalidInitialState: if the current layout fails validate_state()
        """
        if self._status is not SimulationStatus.CREATED:
            logger.debug(f"start() ignored in state {self._status.value}")
            return

        if not self.validate_state():
            raise InvalidInitialState("Initial platoon state failed validation")

        self._status = SimulationStatus.RUNNING
        logger.info("Simulation started")

    def pause(self):
        if self._status is SimulationStatus.RUNNING:
            self._status = SimulationStatus.PAUSED
            logger.info(f"Simulation paused at t={self.time:.2f}s")
        else:
            logger.debug(f"pause() ignored in state {self._status.value}")

    def resume(self):
        if self._status is SimulationStatus.PAUSED:
            self._status = SimulationStatus.RUNNING
            logger.info(f"Simulation resumed at t={self.time:.2f}s")
        else:
            logger.debug(f"resume() ignored in state {self._status.value}")

    # ------------------------------------------------------------------
    # Parameters and control
    # ------------------------------------------------------------------

    def randomize_parameters(self):
        """
        Draw truck lengths and weights uniformly within configured bounds

        Intended for training-data generation. Spacing is re-corrected
        afterwards since longer trucks need larger gaps.
        """
        truck = self.config.truck
        n = self.num_trucks

        self._lengths = self._rng.uniform(truck.min_length, truck.max_length, n)
        self._weights = self._rng.uniform(truck.min_weight, truck.max_weight, n)
        self._apply_spacing_correction()

        if self._status is SimulationStatus.CREATED:
            self._history.clear()
            self._record(self._snapshot())

        logger.debug(f"Randomized truck lengths {np.round(self._lengths, 2).tolist()}")

    def set_control(self, index: int, acceleration: Optional[float] = None,
                    jerk: Optional[float] = None):
        """
        Command acceleration and/or jerk for one truck

        Values are clamped to the configured bounds and take effect on the
        next step().
        """
        if not 0 <= index < self.num_trucks:
            raise IndexError(f"Truck index {index} out of range [0, {self.num_trucks})")

        safety = self.config.safety
        if acceleration is not None:
            self._accelerations[index] = np.clip(
                acceleration, safety.max_deceleration, safety.max_acceleration
            )
        if jerk is not None:
            self._jerks[index] = np.clip(jerk, -safety.max_jerk, safety.max_jerk)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def step(self) -> PlatoonState:
        """
        Advance the simulation by one time step

        Not running: returns the current state unchanged. Finished: returns
        the last recorded state.

        Raises:
            NumericDivergence: if integration produces NaN/Inf; the
                simulation is finished and stepping halts
        """
        if self._status is SimulationStatus.FINISHED:
            return self._last_state
        if self._status is not SimulationStatus.RUNNING:
            return self._snapshot()

        sim = self.config.simulation
        safety = self.config.safety
        dt = sim.time_step

        jerk = np.clip(self._jerks, -safety.max_jerk, safety.max_jerk)
        if sim.constant_acceleration:
            jerk = np.zeros_like(jerk)

        a0 = self._accelerations
        v0 = self._velocities
        x0 = self._positions

        a1 = a0 + jerk * dt
        v1 = v0 + a0 * dt + 0.5 * jerk * dt ** 2
        x1 = x0 + v0 * dt + 0.5 * a0 * dt ** 2 + jerk * dt ** 3 / 6.0

        next_time = (self._steps + 1) * dt
        for name, values in (('jerk', jerk), ('acceleration', a1),
                             ('velocity', v1), ('position', x1)):
            if not np.all(np.isfinite(values)):
                self._status = SimulationStatus.FINISHED
                self._completion_reason = 'numeric_divergence'
                bad = np.flatnonzero(~np.isfinite(values)).tolist()
                logger.error(f"Numeric divergence in {name} at t={next_time:.2f}s (trucks {bad})")
                raise NumericDivergence(
                    f"Non-finite {name} for trucks {bad} at t={next_time:.2f}s",
                    time=next_time, field=name
                )

        stopped = v1 < 0
        v1 = np.clip(v1, 0.0, safety.max_velocity)
        a1 = np.clip(a1, safety.max_deceleration, safety.max_acceleration)
        # a truck that stops inside the step does not roll backwards
        x1 = np.where(stopped, np.maximum(x1, x0), x1)

        self._positions = x1
        self._velocities = v1
        self._accelerations = a1
        self._jerks = jerk
        self._steps += 1

        self._apply_spacing_correction()
        self._check_completion()

        state = self._snapshot()
        self._record(state)
        return state

    def _record(self, state: PlatoonState):
        self._history.append(state)
        self._last_state = state

    def _apply_spacing_correction(self) -> int:
        """
        Push trailing trucks back to restore the minimum gap

        Walks front to back so each correction sees the already-corrected
        truck ahead. Returns the number of trucks moved.
        """
        min_gap = self.config.safety.min_safe_distance
        corrections = 0

        for i in range(self.num_trucks - 1):
            required = min_gap + self._lengths[i]
            if self._positions[i] - self._positions[i + 1] < required:
                self._positions[i + 1] = self._positions[i] - required
                corrections += 1

        if corrections:
            logger.debug(f"Spacing correction moved {corrections} truck(s) at t={self.time:.2f}s")
        return corrections

    def _check_completion(self):
        sim = self.config.simulation

        if self._positions[0] >= sim.distance_goal:
            self._status = SimulationStatus.FINISHED
            self._completion_reason = 'distance_goal'
            logger.info(f"Distance goal {sim.distance_goal:.2f}m reached at t={self.time:.2f}s")
        elif self.time >= sim.duration - TIME_TOLERANCE:
            self._status = SimulationStatus.FINISHED
            self._completion_reason = 'duration'
            logger.warning(
                f"Duration {sim.duration:.1f}s elapsed before distance goal "
                f"(lead at {self._positions[0]:.2f}m of {sim.distance_goal:.2f}m)"
            )

    # ------------------------------------------------------------------
    # Consistency self-check
    # ------------------------------------------------------------------

    def validate_state(self) -> bool:
        """
        Check per-truck bounds and inter-truck spacing

        Returns:
            True if every invariant holds; the first violated field is
            logged otherwise
        """
        truck = self.config.truck
        safety = self.config.safety

        arrays = {
            'position': self._positions,
            'velocity': self._velocities,
            'acceleration': self._accelerations,
            'jerk': self._jerks,
            'length': self._lengths,
            'weight': self._weights
        }
        for name, values in arrays.items():
            if not np.all(np.isfinite(values)):
                logger.warning(f"Invalid state: non-finite {name}")
                return False

        checks = [
            ('length', self._lengths, truck.min_length, truck.max_length),
            ('weight', self._weights, truck.min_weight, truck.max_weight),
            ('velocity', self._velocities, 0.0, safety.max_velocity),
            ('acceleration', self._accelerations, safety.max_deceleration, safety.max_acceleration),
            ('jerk', self._jerks, -safety.max_jerk, safety.max_jerk),
        ]
        for name, values, low, high in checks:
            out_of_range = np.flatnonzero((values < low) | (values > high))
            if out_of_range.size:
                i = int(out_of_range[0])
                logger.warning(
                    f"Invalid state: truck {i} {name} {values[i]:.3f} outside [{low}, {high}]"
                )
                return False

        gaps = self._positions[:-1] - self._positions[1:] - self._lengths[:-1]
        too_close = np.flatnonzero(gaps < safety.min_safe_distance - SPACING_TOLERANCE)
        if too_close.size:
            i = int(too_close[0])
            logger.warning(
                f"Invalid state: gap between trucks {i} and {i + 1} is {gaps[i]:.3f}m "
                f"(min: {safety.min_safe_distance:.2f}m)"
            )
            return False

        return True
