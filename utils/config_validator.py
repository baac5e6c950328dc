"""
Configuration Validator
Checks engine configuration ranges so that components can disable themselves
instead of producing meaningless output.
"""

import logging
import math
from typing import List

from .error_handling import is_finite

logger = logging.getLogger(__name__)


class ConfigValidationResult:
    def __init__(self, section: str = ''):
        self.section = section
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.info: List[str] = []

    def _prefix(self, message: str) -> str:
        return f"{self.section}: {message}" if self.section else message

    def add_error(self, message: str):
        self.errors.append(self._prefix(message))
        logger.error(f"Config Error: {self._prefix(message)}")

    def add_warning(self, message: str):
        self.warnings.append(self._prefix(message))
        logger.warning(f"Config Warning: {self._prefix(message)}")

    def add_info(self, message: str):
        self.info.append(self._prefix(message))
        logger.info(f"Config Info: {self._prefix(message)}")

    def merge(self, other: 'ConfigValidationResult') -> 'ConfigValidationResult':
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.info.extend(other.info)
        return self

    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def summary(self) -> str:
        if not self.is_valid():
            return f"{len(self.errors)} error(s): " + "; ".join(self.errors)
        if self.has_warnings():
            return f"valid with {len(self.warnings)} warning(s)"
        return "valid"


def _check_unit_interval(result: ConfigValidationResult, name: str, value, allow_zero: bool = False):
    bound = "[0, 1]" if allow_zero else "(0, 1]"
    if not is_finite(value):
        result.add_error(f"{name} must be in {bound}, got {value}")
        return
    lower_ok = value >= 0 if allow_zero else value > 0
    if not lower_ok or value > 1:
        result.add_error(f"{name} must be in {bound}, got {value}")


def _check_positive_int(result: ConfigValidationResult, name: str, value, minimum: int = 1):
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        result.add_error(f"{name} must be an integer >= {minimum}, got {value!r}")


def _check_multipliers(result: ConfigValidationResult, name: str, table):
    for key, value in table.to_dict().items():
        if not is_finite(value) or value <= 0:
            result.add_error(f"{name}.{key} must be a positive number, got {value}")


def validate_threshold_config(config) -> ConfigValidationResult:
    result = ConfigValidationResult('thresholds')
    _check_positive_int(result, 'volatility_window', config.volatility_window, minimum=2)
    _check_unit_interval(result, 'adaptation_speed', config.adaptation_speed)
    _check_unit_interval(result, 'max_adjustment', config.max_adjustment)
    _check_positive_int(result, 'min_data_points', config.min_data_points, minimum=2)
    _check_positive_int(result, 'history_capacity', config.history_capacity)
    _check_multipliers(result, 'session_adjustments', config.session_adjustments)
    _check_multipliers(result, 'regime_adjustments', config.regime_adjustments)
    if not is_finite(config.material_change) or config.material_change < 0:
        result.add_error(f"material_change must be >= 0, got {config.material_change}")
    if is_finite(config.max_adjustment) and config.max_adjustment > 0.8:
        result.add_warning("max_adjustment above 0.8 lets thresholds cross neighbouring bands")
    return result


def validate_scoring_config(config) -> ConfigValidationResult:
    result = ConfigValidationResult('scoring')
    weights = config.indicator_weights.to_dict()
    for name, value in weights.items():
        if not is_finite(value) or value < 0:
            result.add_error(f"indicator_weights.{name} must be >= 0, got {value}")
    if result.is_valid() and sum(weights.values()) <= 0:
        result.add_error("indicator_weights must have a positive sum")
    _check_unit_interval(result, 'strong_correlation', config.strong_correlation)
    _check_unit_interval(result, 'moderate_correlation', config.moderate_correlation)
    if config.moderate_correlation > config.strong_correlation:
        result.add_error("moderate_correlation must not exceed strong_correlation")
    _check_positive_int(result, 'divergence_lookback', config.divergence_lookback, minimum=5)
    _check_positive_int(result, 'divergence_min_spacing', config.divergence_min_spacing)
    _check_unit_interval(result, 'min_divergence_strength', config.min_divergence_strength, allow_zero=True)
    _check_positive_int(result, 'correlation_lookback', config.correlation_lookback, minimum=3)
    _check_positive_int(result, 'min_data_points', config.min_data_points, minimum=3)
    if not is_finite(config.dominance_ratio) or config.dominance_ratio < 1:
        result.add_error(f"dominance_ratio must be >= 1, got {config.dominance_ratio}")
    return result


def validate_predictor_config(config) -> ConfigValidationResult:
    result = ConfigValidationResult('predictor')
    _check_positive_int(result, 'network_depth', config.network_depth)
    _check_positive_int(result, 'feature_window', config.feature_window, minimum=15)
    _check_positive_int(result, 'prediction_horizon', config.prediction_horizon)
    _check_positive_int(result, 'max_epochs', config.max_epochs)
    _check_positive_int(result, 'batch_size', config.batch_size)
    if isinstance(config.feature_window, int) and isinstance(config.training_period, int):
        # feature_window + 5 leaves enough labelled pairs for a train/validation split
        minimum = config.feature_window + 5
        if config.training_period < minimum:
            result.add_error(
                f"training_period must be at least feature_window + 5 ({minimum}), "
                f"got {config.training_period}"
            )
    else:
        result.add_error(f"training_period must be an integer, got {config.training_period!r}")
    _check_unit_interval(result, 'confidence_threshold', config.confidence_threshold, allow_zero=True)
    if not is_finite(config.learning_rate) or config.learning_rate <= 0:
        result.add_error(f"learning_rate must be positive, got {config.learning_rate}")
    if not is_finite(config.validation_split) or not 0 < config.validation_split < 1:
        result.add_error(f"validation_split must be in (0, 1), got {config.validation_split}")
    if not is_finite(config.confidence_decay) or config.confidence_decay < 0:
        result.add_error(f"confidence_decay must be >= 0, got {config.confidence_decay}")
    if not is_finite(config.lr_decay) or not 0 <= config.lr_decay < 1:
        result.add_error(f"lr_decay must be in [0, 1), got {config.lr_decay}")
    if config.time_budget is not None and (not is_finite(config.time_budget) or config.time_budget <= 0):
        result.add_error(f"time_budget must be positive when set, got {config.time_budget}")
    if is_finite(config.target_error) and config.target_error < 0:
        result.add_error(f"target_error must be >= 0, got {config.target_error}")
    return result


def validate_fusion_config(config) -> ConfigValidationResult:
    result = ConfigValidationResult('fusion')
    weights = config.base_weights.to_dict()
    for name, value in weights.items():
        if not is_finite(value) or value < 0:
            result.add_error(f"base_weights.{name} must be >= 0, got {value}")
    if result.is_valid():
        total = sum(weights.values())
        if total <= 0:
            result.add_error("base_weights must have a positive sum")
        elif not math.isclose(total, 1.0, abs_tol=1e-6):
            result.add_warning(f"base_weights sum to {total:.4f}; they will be renormalized")
    _check_unit_interval(result, 'min_confidence_threshold', config.min_confidence_threshold, allow_zero=True)
    _check_unit_interval(result, 'max_confidence_threshold', config.max_confidence_threshold)
    if config.min_confidence_threshold > config.max_confidence_threshold:
        result.add_error("min_confidence_threshold must not exceed max_confidence_threshold")
    if not is_finite(config.decay_rate) or config.decay_rate < 0:
        result.add_error(f"decay_rate must be >= 0, got {config.decay_rate}")
    _check_unit_interval(result, 'boost_threshold', config.boost_threshold)
    _check_unit_interval(result, 'optimal_volatility', config.optimal_volatility)
    _check_unit_interval(result, 'predictor_blend', config.predictor_blend, allow_zero=True)
    _check_positive_int(result, 'performance_window', config.performance_window)
    return result


def validate_engine_config(config) -> ConfigValidationResult:
    """
    Validate all configuration blocks of an EngineConfig.
    Returns validation result with errors, warnings, and info.
    """
    result = ConfigValidationResult()
    result.merge(validate_threshold_config(config.thresholds))
    result.merge(validate_scoring_config(config.scoring))
    result.merge(validate_predictor_config(config.predictor))
    result.merge(validate_fusion_config(config.fusion))
    _check_positive_int(result, 'decision_history', config.decision_history)
    return result
