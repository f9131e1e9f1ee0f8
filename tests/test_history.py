"""
Unit tests for state history recording and export
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

import numpy as np
import pandas as pd

from platoon_sim.history import HISTORY_COLUMNS, HistoryView, StateHistory
from platoon_sim.simulation import PlatoonSimulation


class TestStateHistory(unittest.TestCase):
    """Test history access and tabular export"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.sim = PlatoonSimulation()
        self.sim.start()
        for _ in range(5):
            self.sim.step()
        self.history = self.sim.history

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_sequence_access(self):
        self.assertEqual(len(self.history), 6)
        self.assertEqual(self.history[0].time, 0.0)
        self.assertEqual(self.history.latest, self.history[-1])
        self.assertEqual(len(list(self.history)), 6)
        self.assertIsNone(StateHistory().latest)

    def test_to_dataframe(self):
        df = self.history.to_dataframe()

        self.assertEqual(list(df.columns), HISTORY_COLUMNS)
        self.assertEqual(len(df), 6 * 4)

        lead = df[df['truck'] == 0]
        self.assertTrue(lead['gap'].isna().all())

        followers = df[df['truck'] > 0]
        np.testing.assert_allclose(followers['gap'], 10.0, atol=1e-9)

    def test_empty_dataframe(self):
        df = StateHistory().to_dataframe()
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), HISTORY_COLUMNS)

    def test_save_csv(self):
        path = self.history.save(Path(self.temp_dir) / 'history.csv')
        df = pd.read_csv(path)
        self.assertEqual(len(df), 24)

    def test_save_json(self):
        path = self.history.save(Path(self.temp_dir) / 'out' / 'history.json', format='json')
        with open(path) as f:
            records = json.load(f)
        self.assertEqual(len(records), 24)
        self.assertEqual(records[0]['truck'], 0)

    def test_save_parquet(self):
        path = self.history.save(Path(self.temp_dir) / 'history.parquet', format='parquet')
        df = pd.read_parquet(path)
        self.assertEqual(len(df), 24)

    def test_engine_hands_out_view(self):
        self.assertIsInstance(self.history, HistoryView)
        self.assertEqual(self.history.times(), [s.time for s in self.history])
        with self.assertRaises(AttributeError):
            self.history.clear()
        with self.assertRaises(AttributeError):
            self.history.append(self.history[0])

        # the view follows the engine as it records more steps
        self.sim.step()
        self.assertEqual(len(self.history), 7)

    def test_unsupported_format(self):
        with self.assertRaises(ValueError):
            self.history.save(Path(self.temp_dir) / 'history.xlsx', format='xlsx')


if __name__ == '__main__':
    unittest.main()
