"""
Unit tests for warning sonification
"""

import unittest

import numpy as np

from platoon_sim.models import WarningKind
from platoon_sim.sonification import Sonificator
from platoon_sim.warning_system import WarningSystem


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestSonificator(unittest.TestCase):
    """Test tone synthesis and playback throttling"""

    def setUp(self):
        self.played = []
        self.clock = FakeClock()
        self.sonificator = Sonificator(
            player=lambda signal, rate: self.played.append((signal, rate)),
            clock=self.clock
        )

    def test_tone_length_and_amplitude(self):
        quiet = self.sonificator.generate_tone(440.0, 0.0)
        loud = self.sonificator.generate_tone(440.0, 1.0)

        self.assertEqual(len(quiet), int(44100 * 0.3) + 1)
        self.assertLessEqual(np.max(np.abs(quiet)), 0.2 + 1e-9)
        self.assertGreater(np.max(np.abs(loud)), np.max(np.abs(quiet)))
        self.assertLessEqual(np.max(np.abs(loud)), 1.1 + 1e-9)

    def test_envelope_starts_and_ends_silent(self):
        tone = self.sonificator.generate_tone(880.0, 0.5)
        self.assertAlmostEqual(tone[0], 0.0)
        self.assertAlmostEqual(tone[-1], 0.0, places=3)

    def test_severity_is_clamped(self):
        np.testing.assert_allclose(
            self.sonificator.generate_tone(523.25, 5.0),
            self.sonificator.generate_tone(523.25, 1.0)
        )

    def test_plays_warning(self):
        signal = self.sonificator.sonify_warning(WarningKind.COLLISION, 0.9)

        self.assertIsNotNone(signal)
        self.assertEqual(len(self.played), 1)
        self.assertEqual(self.played[0][1], 44100)
        self.assertIs(self.sonificator.last_signal, signal)
        self.assertEqual(self.sonificator.last_sound_time, 0.0)

    def test_min_interval_between_tones(self):
        self.assertIsNotNone(self.sonificator.sonify_warning(WarningKind.SPEED, 0.5))

        self.clock.now = 0.1
        self.assertIsNone(self.sonificator.sonify_warning(WarningKind.COLLISION, 1.0))

        self.clock.now = 0.3
        self.assertIsNotNone(self.sonificator.sonify_warning(WarningKind.COLLISION, 1.0))
        self.assertEqual(len(self.played), 2)

    def test_disabled(self):
        self.sonificator.disable()
        self.assertIsNone(self.sonificator.sonify_warning(WarningKind.DISTANCE, 0.5))
        self.assertEqual(self.played, [])

        self.sonificator.enable()
        self.assertIsNotNone(self.sonificator.sonify_warning(WarningKind.DISTANCE, 0.5))

    def test_distinct_tones_per_kind(self):
        tones = Sonificator.WARNING_TONES
        self.assertEqual(len(set(tones.values())), len(WarningKind))
        self.assertGreater(tones[WarningKind.COLLISION], tones[WarningKind.SPEED])

    def test_as_warning_sink(self):
        warnings = WarningSystem(sinks=[self.sonificator])
        warnings.raise_warning(WarningKind.COLLISION, "closing", {'distance': 5.0}, now=0.0)
        self.assertEqual(len(self.played), 1)

    def test_without_player(self):
        sonificator = Sonificator(clock=FakeClock())
        signal = sonificator.sonify_warning(WarningKind.EMERGENCY_BRAKE, 0.8)
        self.assertEqual(len(signal), int(44100 * 0.3) + 1)


if __name__ == '__main__':
    unittest.main()
