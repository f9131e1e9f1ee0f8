"""
Platoon Data Model

Fixed, typed records for trucks, platoon snapshots, safety violations
and warning bookkeeping.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional, Tuple
from dataclasses import dataclass, field

import numpy as np


class SimulationStatus(Enum):
    """Simulation engine lifecycle states"""
    CREATED = 'created'
    RUNNING = 'running'
    PAUSED = 'paused'
    FINISHED = 'finished'


class ViolationKind(Enum):
    """Safety rule categories, in evaluation order"""
    DISTANCE = 'DISTANCE'
    SPEED = 'SPEED'
    ACCELERATION = 'ACCELERATION'
    COLLISION = 'COLLISION'
    EMERGENCY_BRAKE = 'EMERGENCY_BRAKE'


class WarningKind(Enum):
    """Warning channels handled by the warning system"""
    COLLISION = 'COLLISION'
    EMERGENCY_BRAKE = 'EMERGENCY_BRAKE'
    DISTANCE = 'DISTANCE'
    SPEED = 'SPEED'


class WarningPriority(Enum):
    """Warning priority; the value is the timeout multiplier"""
    HIGH = 1
    MEDIUM = 2
    LOW = 3


@dataclass(frozen=True)
class Truck:
    """Physical state of one truck"""
    position: float  # m, increases in travel direction
    velocity: float  # m/s
    acceleration: float  # m/s^2
    jerk: float  # m/s^3
    length: float  # m
    weight: float  # kg


@dataclass(frozen=True)
class PlatoonState:
    """
    Immutable snapshot of the platoon

    Index 0 is the lead truck; truck i+1 follows truck i.
    """
    time: float
    trucks: Tuple[Truck, ...]
    finished: bool = False

    def __len__(self):
        return len(self.trucks)

    def positions(self) -> np.ndarray:
        return np.array([t.position for t in self.trucks], dtype=float)

    def velocities(self) -> np.ndarray:
        return np.array([t.velocity for t in self.trucks], dtype=float)

    def accelerations(self) -> np.ndarray:
        return np.array([t.acceleration for t in self.trucks], dtype=float)

    def jerks(self) -> np.ndarray:
        return np.array([t.jerk for t in self.trucks], dtype=float)

    def lengths(self) -> np.ndarray:
        return np.array([t.length for t in self.trucks], dtype=float)

    def weights(self) -> np.ndarray:
        return np.array([t.weight for t in self.trucks], dtype=float)

    def gaps(self) -> np.ndarray:
        """Bumper-to-bumper gaps between consecutive trucks"""
        positions = self.positions()
        return positions[:-1] - positions[1:] - self.lengths()[:-1]

    def as_kinematics(self) -> Dict[str, np.ndarray]:
        """Per-truck arrays in the shape accepted by SafetyMonitor.check"""
        return {
            'positions': self.positions(),
            'velocities': self.velocities(),
            'accelerations': self.accelerations(),
            'jerks': self.jerks()
        }


@dataclass(frozen=True)
class Violation:
    """Single rule breach found in one safety evaluation"""
    kind: ViolationKind
    message: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'data', MappingProxyType(dict(self.data)))


@dataclass
class WarningRecord:
    """Rate-limiting state for one warning kind"""
    priority: WarningPriority
    timeout: float
    last_emitted_at: Optional[float] = None
    count: int = 0
    dispatched: int = 0
    suppressed: int = 0

    def reset(self):
        self.last_emitted_at = None
        self.count = 0
        self.dispatched = 0
        self.suppressed = 0


__all__ = [
    'SimulationStatus',
    'ViolationKind',
    'WarningKind',
    'WarningPriority',
    'Truck',
    'PlatoonState',
    'Violation',
    'WarningRecord'
]
