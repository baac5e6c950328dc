"""
Unit tests for the adaptive threshold controller
"""

import unittest

import numpy as np

from agents.adaptive_thresholds import (
    FIELD_SPECS,
    AdaptiveThresholdController,
    get_threshold_value,
)
from config.engine_config import ThresholdConfig
from data.models import AdaptiveThresholds, RegimeType, TradingSession
from utils.error_handling import InvalidConfigurationError
from utils.logging_utils import EventCollector
from tests.market_data import (
    calm_conditions,
    make_candles,
    make_conditions,
    make_indicator_history,
    stress_conditions,
)


class TestAdaptiveThresholdController(unittest.TestCase):

    def setUp(self):
        self.events = EventCollector()
        self.controller = AdaptiveThresholdController(events=self.events)
        self.candles = make_candles(60, seed=3)
        self.history = make_indicator_history(self.candles)

    def assertWithinEnvelope(self, controller, thresholds):
        for key, spec in FIELD_SPECS.items():
            value = get_threshold_value(thresholds, key)
            lower, upper = controller.envelope(key)
            self.assertGreaterEqual(value, lower - 1e-9, key)
            self.assertLessEqual(value, upper + 1e-9, key)
            self.assertGreaterEqual(value, spec.lower - 1e-9, key)
            self.assertLessEqual(value, spec.upper + 1e-9, key)

    def test_starts_at_base(self):
        self.assertEqual(self.controller.get_current_thresholds(), AdaptiveThresholds())
        self.assertEqual(self.controller.get_adjustment_history(), [])

    def test_snapshots_are_copies(self):
        snapshot = self.controller.get_current_thresholds()
        snapshot.rsi.oversold = 5.0
        self.assertEqual(self.controller.get_current_thresholds().rsi.oversold, 30.0)

    def test_insufficient_data_is_noop(self):
        result = self.controller.update_thresholds(self.candles[:5], stress_conditions())
        self.assertEqual(result, AdaptiveThresholds())
        self.assertEqual(self.controller.get_adjustment_history(), [])

    def test_envelope_holds_under_random_conditions(self):
        rng = np.random.default_rng(42)
        regimes = list(RegimeType)
        sessions = [None] + list(TradingSession)
        for i in range(150):
            candles = make_candles(40, volatility=float(rng.uniform(0.001, 0.08)), seed=i)
            conditions = make_conditions(
                volatility=float(rng.uniform(0.0, 1.5)),
                regime=regimes[int(rng.integers(len(regimes)))],
                session=sessions[int(rng.integers(len(sessions)))],
            )
            thresholds = self.controller.update_thresholds(candles, conditions, make_indicator_history(candles))
            self.assertWithinEnvelope(self.controller, thresholds)
            self.assertLess(thresholds.rsi.oversold, thresholds.rsi.overbought)

    def test_non_finite_volatility_stays_in_envelope(self):
        thresholds = self.controller.update_thresholds(self.candles, make_conditions(volatility=float('nan')))
        self.assertWithinEnvelope(self.controller, thresholds)

    def test_converges_under_unchanged_conditions(self):
        conditions = stress_conditions()
        previous = self.controller.get_current_thresholds().flatten()
        deltas = []
        for _ in range(60):
            current = self.controller.update_thresholds(self.candles, conditions, self.history).flatten()
            deltas.append(max(abs(current[key] - previous[key]) for key in current))
            previous = current

        tail = deltas[-20:]
        for earlier, later in zip(tail, tail[1:]):
            self.assertLessEqual(later, earlier + 1e-12)
        self.assertLess(deltas[-1], 1e-3)

    def test_step_is_rate_limited(self):
        before = self.controller.get_current_thresholds().flatten()
        after = self.controller.update_thresholds(self.candles, stress_conditions(), self.history).flatten()
        for key in before:
            self.assertLessEqual(abs(after[key] - before[key]), abs(before[key]) * 0.1 + 1e-9, key)

    def test_reset_restores_base(self):
        for _ in range(10):
            self.controller.update_thresholds(self.candles, stress_conditions(), self.history)
        self.assertNotEqual(self.controller.get_current_thresholds(), AdaptiveThresholds())
        self.assertTrue(self.controller.get_adjustment_history())

        self.controller.reset()
        self.assertEqual(self.controller.get_current_thresholds(), self.controller.get_base_thresholds())
        self.assertEqual(self.controller.get_adjustment_history(), [])
        self.assertIn('thresholds_reset', self.events.names())

    def test_stress_widens_and_calm_narrows_rsi(self):
        stress_candles = make_candles(60, volatility=0.03, seed=5)
        calm_candles = make_candles(60, volatility=0.002, seed=5)

        stressed = AdaptiveThresholdController()
        calmed = AdaptiveThresholdController()
        for _ in range(30):
            stressed.update_thresholds(stress_candles, stress_conditions(), make_indicator_history(stress_candles))
            calmed.update_thresholds(calm_candles, calm_conditions(), make_indicator_history(calm_candles))

        stress_rsi = stressed.get_current_thresholds().rsi
        calm_rsi = calmed.get_current_thresholds().rsi
        self.assertLess(stress_rsi.oversold, 30.0)
        self.assertGreater(stress_rsi.overbought, 70.0)
        self.assertGreater(calm_rsi.oversold, 30.0)
        self.assertLess(calm_rsi.overbought, 70.0)
        self.assertWithinEnvelope(stressed, stressed.get_current_thresholds())
        self.assertWithinEnvelope(calmed, calmed.get_current_thresholds())

    def test_history_is_bounded_fifo(self):
        controller = AdaptiveThresholdController(config=ThresholdConfig(history_capacity=5, material_change=0.0))
        for _ in range(10):
            controller.update_thresholds(self.candles, stress_conditions(), self.history)
        history = controller.get_adjustment_history()
        self.assertEqual(len(history), 5)

    def test_adjustments_record_material_changes(self):
        self.controller.update_thresholds(self.candles, stress_conditions(), self.history)
        history = self.controller.get_adjustment_history()
        self.assertTrue(history)
        for adjustment in history:
            self.assertIn(adjustment.indicator, FIELD_SPECS)
            self.assertNotEqual(adjustment.original_value, adjustment.adjusted_value)
            self.assertTrue(adjustment.reason)

    def test_effectiveness_metrics(self):
        empty = self.controller.get_effectiveness_metrics()
        self.assertEqual(empty['total_adjustments'], 0)
        self.assertEqual(empty['most_adjusted_indicator'], 'none')

        for _ in range(5):
            self.controller.update_thresholds(self.candles, stress_conditions(), self.history)
        metrics = self.controller.get_effectiveness_metrics()
        self.assertGreater(metrics['total_adjustments'], 0)
        self.assertIn(metrics['most_adjusted_indicator'], FIELD_SPECS)
        self.assertGreaterEqual(metrics['stability_score'], 0.0)

    def test_invalid_config_disables_controller(self):
        controller = AdaptiveThresholdController(config=ThresholdConfig(adaptation_speed=2.0))
        self.assertFalse(controller.enabled)
        result = controller.update_thresholds(self.candles, stress_conditions(), self.history)
        self.assertEqual(result, AdaptiveThresholds())

    def test_invalid_base_disables_controller(self):
        base = AdaptiveThresholds()
        base.rsi.oversold = 5.0
        controller = AdaptiveThresholdController(base_thresholds=base)
        self.assertFalse(controller.enabled)

    def test_update_config(self):
        self.controller.update_config(adaptation_speed=0.6)
        self.assertEqual(self.controller.config.adaptation_speed, 0.6)
        self.controller.update_config(adaptation_speed=-1.0)
        self.assertEqual(self.controller.config.adaptation_speed, 0.6)
        with self.assertRaises(InvalidConfigurationError):
            self.controller.update_config(speed=0.2)

    def test_narrower_envelope_applies_to_working_thresholds(self):
        for _ in range(40):
            self.controller.update_thresholds(self.candles, stress_conditions(), self.history)
        self.assertLess(self.controller.get_current_thresholds().rsi.oversold, 27.0)

        self.controller.update_config(max_adjustment=0.1)
        lower, upper = self.controller.envelope('rsi.oversold')
        self.assertAlmostEqual(lower, 27.0)
        self.assertAlmostEqual(upper, 33.0)
        self.assertWithinEnvelope(self.controller, self.controller.get_current_thresholds())

        # Too few candles: the snapshot comes back unchanged but still inside the new envelope
        result = self.controller.update_thresholds(self.candles[:5], stress_conditions())
        self.assertWithinEnvelope(self.controller, result)
        self.assertAlmostEqual(result.rsi.oversold, 27.0)

    def test_update_emits_event(self):
        self.controller.update_thresholds(self.candles, stress_conditions(), self.history)
        events = self.events.events('thresholds_updated')
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].payload['regime'], 'breakout')


if __name__ == '__main__':
    unittest.main()
