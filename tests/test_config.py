"""
Unit tests for configuration loading and validation
"""

import json
import shutil
import tempfile
import unittest
from dataclasses import FrozenInstanceError
from pathlib import Path

import yaml

from platoon_sim.config import PlatoonConfig, load_config
from platoon_sim.errors import ConfigurationError

DEFAULT_YAML = Path(__file__).parent.parent / 'configs' / 'default.yaml'


class TestPlatoonConfig(unittest.TestCase):
    """Test configuration defaults, bounds and overrides"""

    def test_defaults(self):
        config = PlatoonConfig()
        self.assertEqual(config.truck.num_trucks, 4)
        self.assertEqual(config.safety.min_safe_distance, 10.0)
        self.assertEqual(config.simulation.time_step, 0.1)
        self.assertAlmostEqual(config.simulation.distance_goal, 1609.34)

    def test_truck_count_bounds(self):
        """Platoons need between 2 and 10 trucks"""
        for num_trucks in (0, 1, 11):
            with self.assertRaises(ConfigurationError):
                PlatoonConfig.from_dict({'truck': {'num_trucks': num_trucks}})

        for num_trucks in (2, 10):
            config = PlatoonConfig.from_dict({'truck': {'num_trucks': num_trucks}})
            self.assertEqual(config.truck.num_trucks, num_trucks)

    def test_length_and_weight_ranges(self):
        with self.assertRaises(ConfigurationError):
            load_config({'truck': {'min_length': 21.0, 'max_length': 21.0}})
        with self.assertRaises(ConfigurationError):
            load_config({'truck': {'min_length': 25.0, 'max_length': 21.0}})
        with self.assertRaises(ConfigurationError):
            load_config({'truck': {'min_weight': 40000.0}})

    def test_invalid_thresholds(self):
        invalid = [
            {'simulation': {'time_step': 0.0}},
            {'simulation': {'duration': -1.0}},
            {'safety': {'min_safe_distance': 0.0}},
            {'safety': {'max_deceleration': 1.0}},
            {'safety': {'max_velocity': float('nan')}},
            {'truck': {'initial_speed': 40.0}},
            {'warning': {'warning_timeout': -5.0}},
            {'logging': {'log_level': 'LOUD'}},
            {'output': {'format': 'xlsx'}},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ConfigurationError):
                    load_config(overrides)

    def test_emergency_threshold_inside_deceleration_limit_is_logged(self):
        with self.assertLogs('platoon_sim.config', level='DEBUG') as logs:
            PlatoonConfig()
        self.assertIn('emergency_decel_threshold', logs.output[0])

        config = load_config({'safety': {'emergency_decel_threshold': -4.5}})
        self.assertLess(config.safety.emergency_decel_threshold, config.safety.max_deceleration)

    def test_unknown_keys_rejected(self):
        with self.assertRaises(ConfigurationError):
            load_config({'truck': {'num_trucks': 4, 'wheels': 18}})
        with self.assertRaises(ConfigurationError):
            load_config({'engine': {}})

    def test_configuration_error_is_value_error(self):
        with self.assertRaises(ValueError):
            load_config({'truck': {'num_trucks': 1}})

    def test_immutable(self):
        config = PlatoonConfig()
        with self.assertRaises(FrozenInstanceError):
            config.truck.num_trucks = 6

    def test_with_overrides(self):
        config = PlatoonConfig()
        updated = config.with_overrides(truck={'num_trucks': 6}, simulation={'random_seed': 7})

        self.assertEqual(updated.truck.num_trucks, 6)
        self.assertEqual(updated.simulation.random_seed, 7)
        self.assertEqual(config.truck.num_trucks, 4)

        with self.assertRaises(ConfigurationError):
            config.with_overrides(truck={'num_trucks': 20})
        with self.assertRaises(ConfigurationError):
            config.with_overrides(truck={'wheels': 18})

    def test_config_hash(self):
        self.assertEqual(PlatoonConfig().config_hash(), PlatoonConfig().config_hash())
        self.assertNotEqual(
            PlatoonConfig().config_hash(),
            PlatoonConfig().with_overrides(simulation={'random_seed': 1}).config_hash()
        )

    def test_round_trip_dict(self):
        config = load_config({'truck': {'num_trucks': 3}})
        self.assertEqual(PlatoonConfig.from_dict(config.to_dict()), config)


class TestConfigFiles(unittest.TestCase):
    """Test loading configuration from YAML and JSON files"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_shipped_default_matches_defaults(self):
        self.assertEqual(load_config(DEFAULT_YAML), PlatoonConfig())

    def test_load_yaml(self):
        path = Path(self.temp_dir) / 'platoon.yaml'
        with open(path, 'w') as f:
            yaml.dump({'truck': {'num_trucks': 6}, 'safety': {'max_velocity': 25.0}}, f)

        config = load_config(str(path))
        self.assertEqual(config.truck.num_trucks, 6)
        self.assertEqual(config.safety.max_velocity, 25.0)
        self.assertEqual(config.simulation.time_step, 0.1)

    def test_load_json(self):
        path = Path(self.temp_dir) / 'platoon.json'
        with open(path, 'w') as f:
            json.dump({'simulation': {'duration': 60.0}}, f)

        self.assertEqual(load_config(path).simulation.duration, 60.0)

    def test_empty_yaml_gives_defaults(self):
        path = Path(self.temp_dir) / 'empty.yaml'
        path.write_text('')
        self.assertEqual(load_config(path), PlatoonConfig())

    def test_malformed_files(self):
        bad_yaml = Path(self.temp_dir) / 'bad.yaml'
        bad_yaml.write_text('truck: [unclosed')
        bad_json = Path(self.temp_dir) / 'bad.json'
        bad_json.write_text('{"truck": ')

        for path in (bad_yaml, bad_json):
            with self.assertRaises(ConfigurationError):
                load_config(path)

    def test_missing_and_unsupported_files(self):
        with self.assertRaises(ConfigurationError):
            load_config(Path(self.temp_dir) / 'missing.yaml')

        ini = Path(self.temp_dir) / 'platoon.ini'
        ini.write_text('[truck]')
        with self.assertRaises(ConfigurationError):
            load_config(ini)


if __name__ == '__main__':
    unittest.main()
