"""
Warning System

Turns safety violations into rate-limited, priority-ordered notifications.
Each warning kind owns an independent timeout window scaled by its
priority; raises inside the window are counted but not dispatched.
"""

import time
import logging
import threading
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .config import PlatoonConfig, load_config
from .errors import InvalidWarningKind
from .models import Violation, ViolationKind, WarningKind, WarningPriority, WarningRecord

logger = logging.getLogger(__name__)

# sink(kind, message, data, severity)
NotificationSink = Callable[[WarningKind, str, Mapping[str, Any], float], None]

WARNING_PRIORITIES = {
    WarningKind.COLLISION: WarningPriority.HIGH,
    WarningKind.EMERGENCY_BRAKE: WarningPriority.HIGH,
    WarningKind.DISTANCE: WarningPriority.MEDIUM,
    WarningKind.SPEED: WarningPriority.LOW,
}

# Acceleration envelope breaches share the low-priority speed channel
VIOLATION_CHANNELS = {
    ViolationKind.DISTANCE: WarningKind.DISTANCE,
    ViolationKind.SPEED: WarningKind.SPEED,
    ViolationKind.ACCELERATION: WarningKind.SPEED,
    ViolationKind.COLLISION: WarningKind.COLLISION,
    ViolationKind.EMERGENCY_BRAKE: WarningKind.EMERGENCY_BRAKE,
}

MAX_ACTIVE_WARNINGS = 100


class WarningSystem:
    """
    Rate-limited warning dispatcher

    raise_warning() may be called from several threads (e.g. live and
    predicted state checks in parallel); record updates are serialized by
    an internal lock. Sinks are called outside the lock and must not block.
    """

    def __init__(self, config: Union[PlatoonConfig, Dict[str, Any], None] = None,
                 sinks: Optional[Iterable[NotificationSink]] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize warning system

        Args:
            config: Platoon configuration (base timeout and thresholds)
            sinks: Notification callbacks receiving (kind, message, data, severity)
            clock: Time source used when raise_warning() gets no ``now``
        """
        self.config = load_config(config)
        self.sinks: List[NotificationSink] = list(sinks or [])
        self.clock = clock

        self._lock = threading.Lock()
        self._active_warnings = deque(maxlen=MAX_ACTIVE_WARNINGS)
        self.records: Dict[WarningKind, WarningRecord] = self._initialize_warning_types()
        self.invalid_count = 0

        self._handlers = {
            WarningKind.COLLISION: self._handle_collision_warning,
            WarningKind.EMERGENCY_BRAKE: self._handle_emergency_brake_warning,
            WarningKind.DISTANCE: self._handle_distance_warning,
            WarningKind.SPEED: self._handle_speed_warning,
        }

        logger.info(f"Warning system initialized with {len(self.sinks)} sink(s)")

    def _initialize_warning_types(self) -> Dict[WarningKind, WarningRecord]:
        base_timeout = self.config.warning.warning_timeout
        return {
            kind: WarningRecord(priority=priority, timeout=base_timeout * priority.value)
            for kind, priority in WARNING_PRIORITIES.items()
        }

    def add_sink(self, sink: NotificationSink):
        self.sinks.append(sink)

    # ------------------------------------------------------------------
    # Raising
    # ------------------------------------------------------------------

    def raise_warning(self, kind: Union[WarningKind, str], message: str,
                      data: Optional[Mapping[str, Any]] = None,
                      now: Optional[float] = None) -> bool:
        """
        Raise a warning

        Args:
            kind: Warning kind (enum member or its name)
            message: Human-readable description
            data: Kind-specific payload used for severity
            now: Timestamp (simulation or wall clock); defaults to the clock

        Returns:
            True if the warning was dispatched, False if it was rate
            limited or the kind is unknown
        """
        try:
            warning_kind = self._resolve_kind(kind)
        except InvalidWarningKind as e:
            with self._lock:
                self.invalid_count += 1
            logger.error(str(e))
            return False

        data = dict(data or {})
        if now is None:
            now = self.clock()

        with self._lock:
            record = self.records[warning_kind]
            record.count += 1

            elapsed_ok = (record.last_emitted_at is None
                          or now - record.last_emitted_at >= record.timeout)
            if not elapsed_ok:
                record.suppressed += 1
                return False

            record.dispatched += 1
            record.last_emitted_at = now
            warning = {
                'type': warning_kind,
                'message': message,
                'timestamp': now,
                'data': data
            }
            self._active_warnings.append(warning)

        severity = self.calculate_severity(warning_kind, data)
        self._dispatch(warning_kind, message, data, severity)
        self._handlers[warning_kind](warning)
        return True

    def raise_violation(self, violation: Violation, now: Optional[float] = None) -> bool:
        """Raise the warning matching a safety violation"""
        kind = VIOLATION_CHANNELS.get(violation.kind, violation.kind)
        return self.raise_warning(kind, violation.message, violation.data, now=now)

    def process(self, violations: Iterable[Violation], now: Optional[float] = None) -> int:
        """
        Raise warnings for a batch of violations

        Returns:
            Number of warnings dispatched
        """
        return sum(1 for v in violations if self.raise_violation(v, now=now))

    @staticmethod
    def _resolve_kind(kind) -> WarningKind:
        if isinstance(kind, WarningKind):
            return kind
        name = kind.value if isinstance(kind, Enum) else kind
        try:
            return WarningKind(str(name).upper())
        except ValueError:
            raise InvalidWarningKind(f"Invalid warning type: {name}") from None

    def _dispatch(self, kind: WarningKind, message: str, data: Mapping[str, Any], severity: float):
        for sink in self.sinks:
            try:
                sink(kind, message, data, severity)
            except Exception as e:
                logger.error(f"Notification sink {sink!r} failed for {kind.value}: {e}")

    # ------------------------------------------------------------------
    # Severity
    # ------------------------------------------------------------------

    def calculate_severity(self, kind: WarningKind, data: Mapping[str, Any]) -> float:
        """Warning severity on a 0-1 scale"""
        safety = self.config.safety
        severity = 0.5

        if 'non_finite' in data:
            severity = 1.0

        elif kind is WarningKind.COLLISION:
            if 'distance' in data:
                severity = 1 - data['distance'] / safety.collision_warning_distance
            else:
                severity = 1.0

        elif kind is WarningKind.EMERGENCY_BRAKE:
            if 'deceleration' in data:
                severity = abs(data['deceleration']) / abs(safety.max_deceleration)

        elif kind is WarningKind.DISTANCE:
            if 'actual_distance' in data and data.get('required_distance'):
                severity = 1 - data['actual_distance'] / data['required_distance']

        elif kind is WarningKind.SPEED:
            if 'speed' in data:
                speed = data['speed']
                if speed < 0:
                    severity = abs(speed) / safety.max_velocity
                else:
                    severity = speed / safety.max_velocity - 1
            elif 'acceleration' in data and data.get('threshold'):
                severity = abs(data['acceleration']) / abs(data['threshold']) - 1

        return min(max(float(severity), 0.0), 1.0)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_collision_warning(self, warning: Dict[str, Any]):
        logger.error(f"COLLISION WARNING: {warning['message']}")

    def _handle_emergency_brake_warning(self, warning: Dict[str, Any]):
        logger.warning(f"EMERGENCY BRAKE: {warning['message']}")

    def _handle_distance_warning(self, warning: Dict[str, Any]):
        logger.warning(f"DISTANCE VIOLATION: {warning['message']}")

    def _handle_speed_warning(self, warning: Dict[str, Any]):
        logger.warning(f"SPEED VIOLATION: {warning['message']}")

    # ------------------------------------------------------------------
    # Inspection and reset
    # ------------------------------------------------------------------

    def get_active_warnings(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._active_warnings)

    def get_warning_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-kind counters keyed by warning kind name"""
        with self._lock:
            return {
                kind.value: {
                    'priority': record.priority.name,
                    'timeout': record.timeout,
                    'count': record.count,
                    'dispatched': record.dispatched,
                    'suppressed': record.suppressed,
                    'last_emitted_at': record.last_emitted_at
                }
                for kind, record in self.records.items()
            }

    def reset_counters(self):
        """Reset counters and timeout windows of every kind"""
        with self._lock:
            for record in self.records.values():
                record.reset()
            self._active_warnings.clear()
            self.invalid_count = 0

    def clear_warnings(self):
        """Drop all accumulated warning state between runs"""
        self.reset_counters()
        logger.info("All warnings cleared")
