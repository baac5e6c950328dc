"""
Unit tests for configuration value objects, validation and error helpers
"""

import math
import unittest

from config.engine_config import (
    ConfidenceWeights,
    EngineConfig,
    FusionConfig,
    PredictorConfig,
    RegimeAdjustments,
    SessionAdjustments,
    ThresholdConfig,
)
from utils.config_validator import (
    validate_engine_config,
    validate_fusion_config,
    validate_predictor_config,
    validate_threshold_config,
)
from utils.error_handling import (
    InvalidConfigurationError,
    clamp,
    finite_or_default,
    guarded_factor,
    safe_divide,
)
from utils.logging_utils import EventCollector, emit_event


class TestConfigOverrides(unittest.TestCase):

    def test_with_overrides_returns_new_value(self):
        config = ThresholdConfig()
        updated = config.with_overrides(adaptation_speed=0.5)
        self.assertEqual(config.adaptation_speed, 0.3)
        self.assertEqual(updated.adaptation_speed, 0.5)

    def test_nested_mapping_overrides(self):
        config = EngineConfig().with_overrides(
            predictor={'network_depth': 2},
            fusion={'base_weights': {'technical': 0.4}},
        )
        self.assertEqual(config.predictor.network_depth, 2)
        self.assertEqual(config.predictor.training_period, PredictorConfig().training_period)
        self.assertEqual(config.fusion.base_weights.technical, 0.4)
        self.assertEqual(config.fusion.base_weights.pattern, 0.20)

    def test_unknown_key_raises(self):
        with self.assertRaises(InvalidConfigurationError):
            ThresholdConfig().with_overrides(adaption_speed=0.5)

    def test_unknown_weight_key_raises(self):
        with self.assertRaises(InvalidConfigurationError):
            FusionConfig().with_overrides(base_weights={'patterns': 0.3})

    def test_from_dict(self):
        config = PredictorConfig.from_dict({'enabled': False})
        self.assertFalse(config.enabled)
        with self.assertRaises(InvalidConfigurationError):
            PredictorConfig.from_dict({'depth': 3})

    def test_adjustment_tables(self):
        self.assertEqual(SessionAdjustments().multiplier(None), 1.0)
        self.assertEqual(SessionAdjustments().multiplier('overlap'), 1.3)
        self.assertEqual(RegimeAdjustments().multiplier('breakout'), 1.4)
        self.assertEqual(RegimeAdjustments().multiplier('sideways'), 1.0)


class TestConfidenceWeights(unittest.TestCase):

    def test_default_weights_sum_to_one(self):
        self.assertAlmostEqual(ConfidenceWeights().total(), 1.0, places=9)

    def test_scaled_and_normalized(self):
        weights = ConfidenceWeights().scaled(technical=2.0).normalized()
        self.assertAlmostEqual(weights.total(), 1.0, places=9)
        self.assertGreater(weights.technical, ConfidenceWeights().technical)

    def test_zero_weights_cannot_normalize(self):
        zero = ConfidenceWeights(**{name: 0.0 for name in ConfidenceWeights.keys()})
        with self.assertRaises(InvalidConfigurationError):
            zero.normalized()


class TestConfigValidation(unittest.TestCase):

    def test_defaults_are_valid(self):
        result = validate_engine_config(EngineConfig())
        self.assertTrue(result.is_valid(), result.summary())

    def test_adaptation_speed_out_of_range(self):
        result = validate_threshold_config(ThresholdConfig(adaptation_speed=0.0))
        self.assertFalse(result.is_valid())
        result = validate_threshold_config(ThresholdConfig(adaptation_speed=1.5))
        self.assertFalse(result.is_valid())

    def test_predictor_depth_zero_invalid(self):
        result = validate_predictor_config(PredictorConfig(network_depth=0))
        self.assertFalse(result.is_valid())

    def test_predictor_training_period_needs_window(self):
        result = validate_predictor_config(PredictorConfig(training_period=20, feature_window=20))
        self.assertFalse(result.is_valid())

    def test_fusion_unnormalized_weights_warn(self):
        config = FusionConfig().with_overrides(base_weights={'technical': 0.5})
        result = validate_fusion_config(config)
        self.assertTrue(result.is_valid())
        self.assertTrue(result.has_warnings())

    def test_fusion_min_above_max_invalid(self):
        config = FusionConfig(min_confidence_threshold=0.9, max_confidence_threshold=0.5)
        self.assertFalse(validate_fusion_config(config).is_valid())


class TestNumericHelpers(unittest.TestCase):

    def test_clamp_non_finite_goes_to_lower(self):
        self.assertEqual(clamp(float('nan'), 0.3, 0.95), 0.3)
        self.assertEqual(clamp(2.0, 0.0, 1.0), 1.0)

    def test_finite_or_default(self):
        self.assertEqual(finite_or_default(float('inf'), 0.5), 0.5)
        self.assertEqual(finite_or_default('abc', 0.1), 0.1)
        self.assertEqual(finite_or_default(3, 0.1), 3.0)

    def test_safe_divide(self):
        self.assertEqual(safe_divide(1.0, 0.0, 7.0), 7.0)
        self.assertEqual(safe_divide(1.0, 4.0), 0.25)

    def test_guarded_factor_fallbacks(self):
        @guarded_factor('demo', 0.4)
        def failing():
            raise ZeroDivisionError("boom")

        @guarded_factor('demo', 0.4)
        def not_finite():
            return math.nan

        @guarded_factor('demo', 0.4)
        def too_large():
            return 3.0

        value, reason = failing()
        self.assertEqual(value, 0.4)
        self.assertIn('boom', reason)

        value, reason = not_finite()
        self.assertEqual(value, 0.4)
        self.assertIsNotNone(reason)

        value, reason = too_large()
        self.assertEqual(value, 1.0)
        self.assertIsNone(reason)


class TestEventCollector(unittest.TestCase):

    def test_emit_and_filter(self):
        collector = EventCollector(capacity=3)
        collector.emit('a', source='x', value=1)
        emit_event(collector, 'b')
        emit_event(None, 'ignored')
        self.assertEqual(collector.names(), ['a', 'b'])
        self.assertEqual(collector.events('a')[0].payload, {'value': 1})

    def test_capacity_is_bounded(self):
        collector = EventCollector(capacity=2)
        for name in ['a', 'b', 'c']:
            collector.emit(name)
        self.assertEqual(collector.names(), ['b', 'c'])
        self.assertEqual(len(collector), 2)


if __name__ == '__main__':
    unittest.main()
