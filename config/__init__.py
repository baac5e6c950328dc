"""
Configuration Module

Defaults and configuration value objects for the confluence engine.

Main Components:
- Logging settings and base interpretation thresholds (constants)
- Predictor defaults (ml_config)
- Frozen, hot-reloadable configuration blocks (engine_config)

Usage:
    from config import EngineConfig, PredictorConfig
"""

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_FILE,
    RSI_OVERSOLD,
    RSI_OVERBOUGHT,
    RSI_HARD_BOUNDS,
    SESSION_MULTIPLIERS,
    REGIME_MULTIPLIERS,
    BASE_CONFIDENCE_WEIGHTS,
)
from .engine_config import (
    ConfigValue,
    SessionAdjustments,
    RegimeAdjustments,
    ThresholdConfig,
    IndicatorWeights,
    ScoringConfig,
    PredictorConfig,
    ConfidenceWeights,
    FusionConfig,
    EngineConfig,
)

__all__ = [
    # Logging Configuration
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",

    # Threshold defaults
    "RSI_OVERSOLD",
    "RSI_OVERBOUGHT",
    "RSI_HARD_BOUNDS",
    "SESSION_MULTIPLIERS",
    "REGIME_MULTIPLIERS",
    "BASE_CONFIDENCE_WEIGHTS",

    # Value objects
    "ConfigValue",
    "SessionAdjustments",
    "RegimeAdjustments",
    "ThresholdConfig",
    "IndicatorWeights",
    "ScoringConfig",
    "PredictorConfig",
    "ConfidenceWeights",
    "FusionConfig",
    "EngineConfig",
]
