"""
Safety Monitor

Side-effect-free evaluation of a platoon state (live or predicted) against
the configured safety envelope. Rules are evaluated in a fixed order:
distance, speed, acceleration, then collision and emergency braking.
"""

import logging
from typing import List, Mapping, NamedTuple, Optional, Sequence, Union, Any

import numpy as np

from .config import PlatoonConfig, SafetyConfig, load_config
from .models import PlatoonState, Violation, ViolationKind

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


class SafetyReport(NamedTuple):
    """Result of one safety evaluation; unpacks as (is_safe, violations)"""
    is_safe: bool
    violations: List[Violation]

    def by_kind(self, kind: ViolationKind) -> List[Violation]:
        return [v for v in self.violations if v.kind is kind]


class SafetyMonitor:
    """
    Stateless safety rule evaluator

    Safe to call from several threads at once as long as each caller passes
    its own snapshot of the state.
    """

    def __init__(self, config: Union[PlatoonConfig, SafetyConfig, Mapping[str, Any], None] = None):
        if isinstance(config, SafetyConfig):
            self.thresholds = config
        else:
            self.thresholds = load_config(config).safety

    def check(self, positions: Optional[ArrayLike], velocities: Optional[ArrayLike],
              accelerations: Optional[ArrayLike], jerks: Optional[ArrayLike] = None) -> SafetyReport:
        """
        Evaluate all safety rules

        Args:
            positions: Per-truck positions, lead truck first (m)
            velocities: Per-truck velocities (m/s)
            accelerations: Per-truck accelerations (m/s^2)
            jerks: Per-truck jerks (m/s^3); accepted for interface parity,
                jerk is bounded by the engine rather than flagged here

        Returns:
            SafetyReport(is_safe, violations). Never raises: arrays of
            unequal length are truncated to the shortest and empty input
            is safe. NaN or Inf values are reported per truck under the
            rule that reads them (position: DISTANCE, velocity: SPEED,
            acceleration: ACCELERATION) and skipped by the other rules.
        """
        pos = self._as_array(positions, 'positions')
        vel = self._as_array(velocities, 'velocities')
        acc = self._as_array(accelerations, 'accelerations')

        n = min(len(pos), len(vel), len(acc))
        if n != max(len(pos), len(vel), len(acc)):
            logger.debug(f"Mismatched input lengths, evaluating first {n} trucks")
        pos, vel, acc = pos[:n], vel[:n], acc[:n]

        violations: List[Violation] = []
        if n == 0:
            return SafetyReport(True, violations)

        violations.extend(self._check_distance(pos, vel))
        violations.extend(self._check_speed(vel))
        violations.extend(self._check_acceleration(acc))
        violations.extend(self._check_collision(pos, vel))
        violations.extend(self._check_emergency_brake(acc))

        return SafetyReport(not violations, violations)

    def check_state(self, state: PlatoonState) -> SafetyReport:
        """Evaluate an engine snapshot"""
        return self.check(state.positions(), state.velocities(),
                          state.accelerations(), state.jerks())

    def check_prediction(self, prediction: Union[PlatoonState, Mapping[str, ArrayLike]]) -> SafetyReport:
        """
        Evaluate a predicted next state with the same rules as a live one

        Args:
            prediction: PlatoonState or mapping with ``positions``,
                ``velocities``, ``accelerations`` and ``jerks``
        """
        if isinstance(prediction, PlatoonState):
            return self.check_state(prediction)
        if prediction is None:
            return SafetyReport(True, [])
        return self.check(prediction.get('positions'), prediction.get('velocities'),
                          prediction.get('accelerations'), prediction.get('jerks'))

    @staticmethod
    def _as_array(values: Optional[ArrayLike], name: str) -> np.ndarray:
        if values is None:
            return np.zeros(0)
        try:
            return np.atleast_1d(np.asarray(values, dtype=float)).ravel()
        except (TypeError, ValueError):
            logger.error(f"Unreadable {name} input, treating as empty")
            return np.zeros(0)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def _non_finite(kind: ViolationKind, index: int, field_name: str, value: float) -> Violation:
        return Violation(
            kind=kind,
            message=f"Truck {index} has non-finite {field_name}: {value}",
            data={'truck': index, 'non_finite': field_name}
        )

    def _check_distance(self, pos: np.ndarray, vel: np.ndarray) -> List[Violation]:
        # Flagged only when the gap fails BOTH the absolute and the
        # time-headway minimum.
        t = self.thresholds
        violations = [self._non_finite(ViolationKind.DISTANCE, i, 'position', p)
                      for i, p in enumerate(pos) if not np.isfinite(p)]

        for i in range(len(pos) - 1):
            if not np.all(np.isfinite([pos[i], pos[i + 1], vel[i + 1]])):
                continue
            gap = pos[i] - pos[i + 1]
            time_based = t.min_following_time * vel[i + 1]
            required = max(t.min_safe_distance, time_based)

            if gap < t.min_safe_distance and gap < time_based:
                violations.append(Violation(
                    kind=ViolationKind.DISTANCE,
                    message=(f"Unsafe spacing between trucks {i} and {i + 1}: "
                             f"{gap:.2f} m (required: {required:.2f} m)"),
                    data={
                        'leader': i,
                        'follower': i + 1,
                        'actual_distance': float(gap),
                        'required_distance': float(required),
                        'min_safe_distance': t.min_safe_distance,
                        'time_based_distance': float(time_based)
                    }
                ))

        return violations

    def _check_speed(self, vel: np.ndarray) -> List[Violation]:
        t = self.thresholds
        violations = []

        for i, v in enumerate(vel):
            if not np.isfinite(v):
                violations.append(self._non_finite(ViolationKind.SPEED, i, 'velocity', v))
            elif v < 0 or v > t.max_velocity:
                violations.append(Violation(
                    kind=ViolationKind.SPEED,
                    message=(f"Truck {i} outside velocity limits: {v:.2f} m/s "
                             f"(range: 0.00-{t.max_velocity:.2f} m/s)"),
                    data={'truck': i, 'speed': float(v), 'threshold': t.max_velocity}
                ))

        return violations

    def _check_acceleration(self, acc: np.ndarray) -> List[Violation]:
        t = self.thresholds
        violations = []

        for i, a in enumerate(acc):
            if not np.isfinite(a):
                violations.append(self._non_finite(ViolationKind.ACCELERATION, i, 'acceleration', a))
            elif a > t.max_acceleration:
                violations.append(Violation(
                    kind=ViolationKind.ACCELERATION,
                    message=(f"Truck {i} exceeds acceleration limit: {a:.2f} m/s² "
                             f"(max: {t.max_acceleration:.2f} m/s²)"),
                    data={'truck': i, 'acceleration': float(a), 'threshold': t.max_acceleration}
                ))
            elif a < t.max_deceleration:
                violations.append(Violation(
                    kind=ViolationKind.ACCELERATION,
                    message=(f"Truck {i} exceeds deceleration limit: {a:.2f} m/s² "
                             f"(min: {t.max_deceleration:.2f} m/s²)"),
                    data={'truck': i, 'acceleration': float(a), 'threshold': t.max_deceleration}
                ))

        return violations

    def _check_collision(self, pos: np.ndarray, vel: np.ndarray) -> List[Violation]:
        t = self.thresholds
        violations = []

        for i in range(len(pos) - 1):
            if not np.all(np.isfinite([pos[i], pos[i + 1], vel[i], vel[i + 1]])):
                continue
            gap = pos[i] - pos[i + 1]
            closing_speed = vel[i + 1] - vel[i]

            if gap < t.collision_warning_distance and closing_speed > 0:
                violations.append(Violation(
                    kind=ViolationKind.COLLISION,
                    message=(f"Collision risk: truck {i + 1} closing on truck {i} "
                             f"at {closing_speed:.2f} m/s, gap {gap:.2f} m"),
                    data={
                        'leader': i,
                        'follower': i + 1,
                        'distance': float(gap),
                        'closing_speed': float(closing_speed),
                        'threshold': t.collision_warning_distance
                    }
                ))

        return violations

    def _check_emergency_brake(self, acc: np.ndarray) -> List[Violation]:
        t = self.thresholds
        braking = np.flatnonzero(np.isfinite(acc) & (acc < t.emergency_decel_threshold))
        if braking.size == 0:
            return []

        deceleration = float(np.min(acc[braking]))
        return [Violation(
            kind=ViolationKind.EMERGENCY_BRAKE,
            message=(f"Emergency deceleration detected: {deceleration:.2f} m/s² "
                     f"(threshold: {t.emergency_decel_threshold:.2f} m/s²)"),
            data={
                'trucks': braking.tolist(),
                'deceleration': deceleration,
                'threshold': t.emergency_decel_threshold
            }
        )]
