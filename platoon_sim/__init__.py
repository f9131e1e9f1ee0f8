"""
Platoon-Sim: Truck Platoon Safety Simulation Toolkit

Simulates a platoon of heterogeneous trucks in single file, monitors
following distance, speed, acceleration and emergency braking against a
safety envelope, and escalates violations through rate-limited warnings.
"""

import logging

from .config import PlatoonConfig, load_config
from .errors import (
    PlatoonSimError,
    ConfigurationError,
    InvalidInitialState,
    NumericDivergence,
    InvalidWarningKind
)
from .models import (
    Truck,
    PlatoonState,
    SimulationStatus,
    Violation,
    ViolationKind,
    WarningKind,
    WarningPriority,
    WarningRecord
)
from .simulation import PlatoonSimulation
from .safety import SafetyMonitor, SafetyReport
from .warning_system import WarningSystem
from .sonification import Sonificator
from .history import HistoryView, StateHistory
from .metrics import MetricsCollector
from .orchestrator import PlatoonRunner, RunResult, kinematic_prediction
from .monte_carlo import RandomScenarioGenerator

__version__ = '1.0.0'
__license__ = 'MIT'

__all__ = [
    'PlatoonConfig',
    'load_config',
    'PlatoonSimError',
    'ConfigurationError',
    'InvalidInitialState',
    'NumericDivergence',
    'InvalidWarningKind',
    'Truck',
    'PlatoonState',
    'SimulationStatus',
    'Violation',
    'ViolationKind',
    'WarningKind',
    'WarningPriority',
    'WarningRecord',
    'PlatoonSimulation',
    'SafetyMonitor',
    'SafetyReport',
    'WarningSystem',
    'Sonificator',
    'StateHistory',
    'HistoryView',
    'MetricsCollector',
    'PlatoonRunner',
    'RunResult',
    'kinematic_prediction',
    'RandomScenarioGenerator',
    'setup_logging'
]

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level='INFO', log_file=None):
    """Configure package-wide logging"""
    formatter = logging.Formatter(LOG_FORMAT)

    logger = logging.getLogger('platoon_sim')
    logger.setLevel(getattr(logging, level.upper()))

    if not any(getattr(h, '_platoon_sim', False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        handler._platoon_sim = True
        logger.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


logger = logging.getLogger('platoon_sim')
logger.addHandler(logging.NullHandler())
