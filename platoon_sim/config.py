"""
Configuration Module

Immutable configuration for platoon simulation runs. A configuration is
loaded once (from a YAML/JSON file or a dict), validated, and injected into
the engine, safety monitor and warning system at construction.
"""

import json
import hashlib
import logging
import math
from pathlib import Path
from typing import Dict, Any, Union
from dataclasses import dataclass, field, fields, asdict, replace

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_TRUCKS = 2
MAX_TRUCKS = 10


@dataclass(frozen=True)
class TruckConfig:
    """Platoon composition and physical truck bounds"""
    num_trucks: int = 4
    min_length: float = 12.0  # meters
    max_length: float = 21.0  # meters
    min_weight: float = 10000.0  # kg
    max_weight: float = 36000.0  # kg
    initial_speed: float = 22.22  # m/s (80 km/h)


@dataclass(frozen=True)
class SafetyConfig:
    """Safety envelope thresholds"""
    min_safe_distance: float = 10.0  # meters
    min_following_time: float = 1.5  # seconds
    max_velocity: float = 30.0  # m/s
    max_acceleration: float = 2.5  # m/s^2
    max_deceleration: float = -4.0  # m/s^2
    max_jerk: float = 1.0  # m/s^3
    collision_warning_distance: float = 40.0  # meters, front to front
    # Inside the engine clamp (max_deceleration) so emergency braking is
    # observable on live runs; set it below max_deceleration to flag only
    # predicted decelerations beyond what the engine can produce.
    emergency_decel_threshold: float = -3.5  # m/s^2


@dataclass(frozen=True)
class WarningConfig:
    """Warning rate limiting"""
    warning_timeout: float = 5.0  # seconds, base window for high priority


@dataclass(frozen=True)
class SimulationConfig:
    """Time stepping and termination"""
    time_step: float = 0.1  # seconds
    distance_goal: float = 1609.34  # meters (one mile)
    duration: float = 3600.0  # seconds
    random_seed: int = 42
    constant_acceleration: bool = False
    num_random_simulations: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    """Logging output"""
    log_level: str = 'INFO'
    log_file: str = ''


@dataclass(frozen=True)
class OutputConfig:
    """Result export"""
    results_directory: str = 'results'
    format: str = 'csv'


@dataclass(frozen=True)
class PlatoonConfig:
    """Complete, read-only configuration for one simulation run"""
    truck: TruckConfig = field(default_factory=TruckConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    warning: WarningConfig = field(default_factory=WarningConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        validate_config(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PlatoonConfig':
        """Build a configuration from a nested dict of sections"""
        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Invalid config type: {type(config_dict)}")

        sections = {f.name: f for f in fields(cls)}
        kwargs = {}
        for name, values in config_dict.items():
            if name not in sections:
                raise ConfigurationError(f"Unknown config section: {name}")
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ConfigurationError(f"Config section '{name}' must be a mapping")
            section_cls = sections[name].default_factory
            known = {f.name for f in fields(section_cls)}
            unknown = set(values) - known
            if unknown:
                raise ConfigurationError(
                    f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}"
                )
            kwargs[name] = section_cls(**values)

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def with_overrides(self, **sections: Dict[str, Any]) -> 'PlatoonConfig':
        """
        Return a new configuration with some section fields replaced

        Example:
            config.with_overrides(truck={'num_trucks': 6})
        """
        changes = {}
        for name, values in sections.items():
            current = getattr(self, name, None)
            if current is None:
                raise ConfigurationError(f"Unknown config section: {name}")
            try:
                changes[name] = replace(current, **values)
            except TypeError as e:
                raise ConfigurationError(str(e)) from e
        return replace(self, **changes)

    def config_hash(self) -> str:
        """SHA-256 of the configuration for reproducibility records"""
        config_str = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigurationError(message)


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_config(config: PlatoonConfig):
    """
    Validate all numeric bounds of a configuration

    Raises:
        ConfigurationError: on the first invalid field
    """
    truck = config.truck
    safety = config.safety
    sim = config.simulation

    for section in (truck, safety, config.warning, sim):
        for f in fields(section):
            value = getattr(section, f.name)
            if isinstance(value, bool) or f.name == 'random_seed':
                continue
            _require(_finite(value), f"{f.name} must be a finite number, got {value!r}")

    _require(isinstance(truck.num_trucks, int) and MIN_TRUCKS <= truck.num_trucks <= MAX_TRUCKS,
             f"num_trucks must be an integer in [{MIN_TRUCKS}, {MAX_TRUCKS}], got {truck.num_trucks}")
    _require(truck.min_length > 0, "min_length must be positive")
    _require(truck.max_length > truck.min_length, "max_length must be greater than min_length")
    _require(truck.min_weight > 0, "min_weight must be positive")
    _require(truck.max_weight > truck.min_weight, "max_weight must be greater than min_weight")
    _require(truck.initial_speed >= 0, "initial_speed must be non-negative")
    _require(truck.initial_speed <= safety.max_velocity, "initial_speed must not exceed max_velocity")

    _require(safety.min_safe_distance > 0, "min_safe_distance must be positive")
    _require(safety.min_following_time >= 0, "min_following_time must be non-negative")
    _require(safety.max_velocity > 0, "max_velocity must be positive")
    _require(safety.max_acceleration > 0, "max_acceleration must be positive")
    _require(safety.max_deceleration < 0, "max_deceleration must be negative")
    _require(safety.max_jerk > 0, "max_jerk must be positive")
    _require(safety.collision_warning_distance > 0, "collision_warning_distance must be positive")
    _require(safety.emergency_decel_threshold < 0, "emergency_decel_threshold must be negative")
    if safety.emergency_decel_threshold >= safety.max_deceleration:
        logger.debug(
            f"emergency_decel_threshold {safety.emergency_decel_threshold} is not below "
            f"max_deceleration {safety.max_deceleration}; emergency braking is flagged "
            f"within the normal deceleration envelope"
        )

    _require(config.warning.warning_timeout >= 0, "warning_timeout must be non-negative")

    _require(sim.time_step > 0, "time_step must be positive")
    _require(sim.duration > 0, "duration must be positive")
    _require(sim.distance_goal > 0, "distance_goal must be positive")
    _require(isinstance(sim.random_seed, int) and not isinstance(sim.random_seed, bool),
             "random_seed must be an integer")
    _require(isinstance(sim.num_random_simulations, int) and sim.num_random_simulations > 0,
             "num_random_simulations must be a positive integer")

    _require(isinstance(config.logging.log_level, str)
             and config.logging.log_level.upper() in ('DEBUG', 'INFO', 'WARNING', 'ERROR'),
             f"Invalid log level: {config.logging.log_level}")
    _require(config.output.format in ('csv', 'json', 'parquet'),
             f"Unsupported output format: {config.output.format}")


def load_config(source: Union[str, Path, Dict[str, Any], PlatoonConfig, None] = None) -> PlatoonConfig:
    """
    Load configuration

    Args:
        source: Path to a YAML/JSON file, a dict of sections, an existing
            PlatoonConfig, or None for defaults

    Returns:
        Validated PlatoonConfig
    """
    if source is None:
        return PlatoonConfig()
    if isinstance(source, PlatoonConfig):
        return source
    if isinstance(source, dict):
        return PlatoonConfig.from_dict(source)
    if isinstance(source, (str, Path)):
        return _load_config_file(Path(source))
    raise ConfigurationError(f"Invalid config type: {type(source)}")


def _load_config_file(config_path: Path) -> PlatoonConfig:
    """Load configuration from file"""
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        if config_path.suffix in ('.yaml', '.yml'):
            try:
                config_dict = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Malformed YAML in {config_path}: {e}") from e
        elif config_path.suffix == '.json':
            try:
                config_dict = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Malformed JSON in {config_path}: {e}") from e
        else:
            raise ConfigurationError(f"Unsupported config format: {config_path}")

    logger.info(f"Loaded configuration from {config_path}")
    return PlatoonConfig.from_dict(config_dict or {})


__all__ = [
    'TruckConfig',
    'SafetyConfig',
    'WarningConfig',
    'SimulationConfig',
    'LoggingConfig',
    'OutputConfig',
    'PlatoonConfig',
    'validate_config',
    'load_config'
]
