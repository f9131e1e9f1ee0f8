"""
Unit tests for the rate-limited warning system
"""

import threading
import unittest

from platoon_sim.config import PlatoonConfig
from platoon_sim.models import Violation, ViolationKind, WarningKind, WarningPriority
from platoon_sim.warning_system import WarningSystem


class RecordingSink:
    """Collects dispatched warnings"""

    def __init__(self):
        self.calls = []

    def __call__(self, kind, message, data, severity):
        self.calls.append((kind, message, dict(data), severity))


class TestRateLimiting(unittest.TestCase):
    """Test per-kind timeout windows"""

    def setUp(self):
        self.sink = RecordingSink()
        self.warnings = WarningSystem(sinks=[self.sink])

    def test_priority_scaled_timeouts(self):
        records = self.warnings.records
        self.assertEqual(records[WarningKind.COLLISION].priority, WarningPriority.HIGH)
        self.assertEqual(records[WarningKind.COLLISION].timeout, 5.0)
        self.assertEqual(records[WarningKind.EMERGENCY_BRAKE].timeout, 5.0)
        self.assertEqual(records[WarningKind.DISTANCE].timeout, 10.0)
        self.assertEqual(records[WarningKind.SPEED].timeout, 15.0)

    def test_high_priority_within_timeout(self):
        """Two raises inside the window dispatch once and count twice"""
        self.assertTrue(self.warnings.raise_warning(WarningKind.COLLISION, "first", now=0.0))
        self.assertFalse(self.warnings.raise_warning(WarningKind.COLLISION, "second", now=1.0))

        stats = self.warnings.get_warning_stats()['COLLISION']
        self.assertEqual(stats['count'], 2)
        self.assertEqual(stats['dispatched'], 1)
        self.assertEqual(stats['suppressed'], 1)
        self.assertEqual(len(self.sink.calls), 1)

    def test_dispatch_again_after_timeout(self):
        self.assertTrue(self.warnings.raise_warning(WarningKind.COLLISION, "first", now=0.0))
        self.assertTrue(self.warnings.raise_warning(WarningKind.COLLISION, "again", now=5.0))
        self.assertEqual(self.warnings.get_warning_stats()['COLLISION']['last_emitted_at'], 5.0)

    def test_suppressed_raise_does_not_extend_window(self):
        self.warnings.raise_warning(WarningKind.DISTANCE, "first", now=0.0)
        self.warnings.raise_warning(WarningKind.DISTANCE, "inside", now=9.0)
        self.assertTrue(self.warnings.raise_warning(WarningKind.DISTANCE, "after", now=10.0))

    def test_kinds_are_independent(self):
        self.assertTrue(self.warnings.raise_warning(WarningKind.COLLISION, "c", now=0.0))
        self.assertTrue(self.warnings.raise_warning(WarningKind.SPEED, "s", now=0.0))
        self.assertTrue(self.warnings.raise_warning(WarningKind.DISTANCE, "d", now=0.5))

    def test_first_raise_dispatches_at_time_zero(self):
        self.assertTrue(self.warnings.raise_warning(WarningKind.SPEED, "first", now=0.0))

    def test_clock_used_without_now(self):
        ticks = iter([100.0, 101.0, 200.0])
        warnings = WarningSystem(clock=lambda: next(ticks))

        self.assertTrue(warnings.raise_warning(WarningKind.EMERGENCY_BRAKE, "a"))
        self.assertFalse(warnings.raise_warning(WarningKind.EMERGENCY_BRAKE, "b"))
        self.assertTrue(warnings.raise_warning(WarningKind.EMERGENCY_BRAKE, "c"))

    def test_zero_timeout_never_suppresses(self):
        config = PlatoonConfig().with_overrides(warning={'warning_timeout': 0.0})
        warnings = WarningSystem(config)
        for _ in range(3):
            self.assertTrue(warnings.raise_warning(WarningKind.SPEED, "s", now=1.0))

    def test_concurrent_raises_dispatch_once(self):
        results = []

        def raise_collision():
            results.append(self.warnings.raise_warning(WarningKind.COLLISION, "c", now=0.0))

        threads = [threading.Thread(target=raise_collision) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(results.count(True), 1)
        stats = self.warnings.get_warning_stats()['COLLISION']
        self.assertEqual(stats['count'], 16)
        self.assertEqual(stats['dispatched'], 1)
        self.assertEqual(stats['suppressed'], 15)


class TestWarningKinds(unittest.TestCase):
    """Test kind resolution and violation mapping"""

    def setUp(self):
        self.warnings = WarningSystem()

    def test_unknown_kind_is_dropped(self):
        self.assertFalse(self.warnings.raise_warning("NOT_A_KIND", "bogus", now=0.0))
        self.assertEqual(self.warnings.invalid_count, 1)
        self.assertEqual(self.warnings.get_active_warnings(), [])

    def test_concurrent_unknown_kinds_are_all_counted(self):
        threads = [
            threading.Thread(target=self.warnings.raise_warning, args=("NOT_A_KIND", "bogus"),
                             kwargs={'now': 0.0})
            for _ in range(16)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(self.warnings.invalid_count, 16)

    def test_kind_by_name(self):
        self.assertTrue(self.warnings.raise_warning("collision", "by name", now=0.0))
        self.assertEqual(self.warnings.get_warning_stats()['COLLISION']['dispatched'], 1)

    def test_violation_mapping(self):
        acceleration = Violation(ViolationKind.ACCELERATION, "too fast",
                                 {'truck': 0, 'acceleration': 3.0, 'threshold': 2.5})
        distance = Violation(ViolationKind.DISTANCE, "too close",
                             {'actual_distance': 6.0, 'required_distance': 10.0})

        dispatched = self.warnings.process([acceleration, distance], now=0.0)
        self.assertEqual(dispatched, 2)

        stats = self.warnings.get_warning_stats()
        self.assertEqual(stats['SPEED']['count'], 1)
        self.assertEqual(stats['DISTANCE']['count'], 1)

    def test_process_counts_dispatched_only(self):
        violation = Violation(ViolationKind.COLLISION, "closing", {'distance': 20.0})
        self.assertEqual(self.warnings.process([violation, violation, violation], now=0.0), 1)


class TestSeverityAndSinks(unittest.TestCase):
    """Test severity scaling and notification dispatch"""

    def setUp(self):
        self.sink = RecordingSink()
        self.warnings = WarningSystem(sinks=[self.sink])

    def test_severity_values(self):
        severity = self.warnings.calculate_severity
        self.assertAlmostEqual(severity(WarningKind.COLLISION, {'distance': 10.0}), 0.75)
        self.assertEqual(severity(WarningKind.COLLISION, {}), 1.0)
        self.assertAlmostEqual(severity(WarningKind.EMERGENCY_BRAKE, {'deceleration': -3.8}), 0.95)
        self.assertAlmostEqual(
            severity(WarningKind.DISTANCE, {'actual_distance': 6.0, 'required_distance': 10.0}), 0.4
        )
        self.assertAlmostEqual(severity(WarningKind.SPEED, {'speed': 33.0}), 0.1)
        self.assertEqual(severity(WarningKind.SPEED, {}), 0.5)
        self.assertEqual(severity(WarningKind.SPEED, {'truck': 1, 'non_finite': 'velocity'}), 1.0)

    def test_severity_is_clamped(self):
        severity = self.warnings.calculate_severity
        self.assertEqual(severity(WarningKind.COLLISION, {'distance': -10.0}), 1.0)
        self.assertEqual(severity(WarningKind.COLLISION, {'distance': 100.0}), 0.0)
        self.assertEqual(severity(WarningKind.SPEED, {'speed': 90.0}), 1.0)

    def test_sink_receives_warning(self):
        self.warnings.raise_warning(WarningKind.COLLISION, "closing", {'distance': 10.0}, now=0.0)

        kind, message, data, severity = self.sink.calls[0]
        self.assertIs(kind, WarningKind.COLLISION)
        self.assertEqual(message, "closing")
        self.assertEqual(data, {'distance': 10.0})
        self.assertAlmostEqual(severity, 0.75)

    def test_failing_sink_does_not_propagate(self):
        def broken(kind, message, data, severity):
            raise RuntimeError("speaker unplugged")

        self.warnings.add_sink(broken)
        self.warnings.add_sink(RecordingSink())

        self.assertTrue(self.warnings.raise_warning(WarningKind.SPEED, "s", now=0.0))
        self.assertEqual(len(self.warnings.sinks[-1].calls), 1)

    def test_active_warnings_and_clear(self):
        self.warnings.raise_warning(WarningKind.COLLISION, "c", now=0.0)
        self.warnings.raise_warning(WarningKind.COLLISION, "suppressed", now=1.0)

        active = self.warnings.get_active_warnings()
        self.assertEqual(len(active), 1)
        self.assertEqual(active[0]['message'], "c")

        self.warnings.clear_warnings()
        self.assertEqual(self.warnings.get_active_warnings(), [])
        stats = self.warnings.get_warning_stats()['COLLISION']
        self.assertEqual(stats['count'], 0)
        self.assertIsNone(stats['last_emitted_at'])
        self.assertTrue(self.warnings.raise_warning(WarningKind.COLLISION, "c", now=1.0))

    def test_reset_counters(self):
        self.warnings.raise_warning("nope", "x", now=0.0)
        self.warnings.raise_warning(WarningKind.SPEED, "s", now=0.0)
        self.warnings.reset_counters()

        self.assertEqual(self.warnings.invalid_count, 0)
        self.assertEqual(self.warnings.get_warning_stats()['SPEED']['dispatched'], 0)


if __name__ == '__main__':
    unittest.main()
