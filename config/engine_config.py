"""
Engine configuration value objects.

Every configuration block is a frozen dataclass. Changing a setting never
mutates an existing object: ``with_overrides`` returns a new value with the
requested fields replaced, and nested blocks can be overridden with plain
mappings. Unknown keys are rejected so that a misspelled weight or threshold
name fails loudly instead of silently falling back to a default.

Usage:
    config = EngineConfig().with_overrides(
        predictor={'network_depth': 2, 'training_period': 60},
        fusion={'min_confidence_threshold': 0.25},
    )
"""

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional

from config.constants import (
    BASE_CONFIDENCE_WEIGHTS,
    INDICATOR_WEIGHTS,
    REGIME_MULTIPLIERS,
    SESSION_MULTIPLIERS,
)
from config.ml_config import (
    NKN_BATCH_SIZE,
    NKN_CONFIDENCE_DECAY,
    NKN_CONFIDENCE_THRESHOLD,
    NKN_ENABLED,
    NKN_FEATURE_WINDOW,
    NKN_LEARNING_RATE,
    NKN_MAX_EPOCHS,
    NKN_NETWORK_DEPTH,
    NKN_PREDICTION_HORIZON,
    NKN_TARGET_ERROR,
    NKN_TRAINING_PERIOD,
    NKN_VALIDATION_SPLIT,
)
from utils.error_handling import InvalidConfigurationError


class ConfigValue:
    """Shared behaviour for frozen configuration dataclasses."""

    @classmethod
    def from_dict(cls, data: Optional[Mapping] = None):
        return cls().with_overrides(**dict(data or {}))

    def with_overrides(self, **changes):
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise InvalidConfigurationError(
                f"Unknown {type(self).__name__} keys: {', '.join(unknown)}"
            )

        resolved = {}
        for name, value in changes.items():
            current = getattr(self, name)
            if isinstance(current, ConfigValue) and isinstance(value, Mapping):
                value = current.with_overrides(**value)
            resolved[name] = value
        return replace(self, **resolved)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SessionAdjustments(ConfigValue):
    asian: float = SESSION_MULTIPLIERS['asian']
    london: float = SESSION_MULTIPLIERS['london']
    newyork: float = SESSION_MULTIPLIERS['newyork']
    overlap: float = SESSION_MULTIPLIERS['overlap']

    def multiplier(self, session: Optional[str]) -> float:
        if not session:
            return 1.0
        return getattr(self, str(session), 1.0)


@dataclass(frozen=True)
class RegimeAdjustments(ConfigValue):
    trending: float = REGIME_MULTIPLIERS['trending']
    ranging: float = REGIME_MULTIPLIERS['ranging']
    breakout: float = REGIME_MULTIPLIERS['breakout']
    reversal: float = REGIME_MULTIPLIERS['reversal']

    def multiplier(self, regime_type: Optional[str]) -> float:
        if not regime_type:
            return 1.0
        return getattr(self, str(regime_type), 1.0)


@dataclass(frozen=True)
class ThresholdConfig(ConfigValue):
    volatility_window: int = 20
    adaptation_speed: float = 0.3
    max_adjustment: float = 0.5
    min_data_points: int = 10
    session_adjustments: SessionAdjustments = field(default_factory=SessionAdjustments)
    regime_adjustments: RegimeAdjustments = field(default_factory=RegimeAdjustments)
    # Smallest change (in oscillator points, or percent for ratio fields) worth recording
    material_change: float = 1.0
    history_capacity: int = 100


@dataclass(frozen=True)
class IndicatorWeights(ConfigValue):
    rsi: float = INDICATOR_WEIGHTS['rsi']
    wave_trend: float = INDICATOR_WEIGHTS['wave_trend']
    pvt: float = INDICATOR_WEIGHTS['pvt']
    momentum: float = INDICATOR_WEIGHTS['momentum']
    trend: float = INDICATOR_WEIGHTS['trend']
    volume: float = INDICATOR_WEIGHTS['volume']

    def weight(self, indicator: str) -> float:
        return getattr(self, indicator, 0.0)


@dataclass(frozen=True)
class ScoringConfig(ConfigValue):
    indicator_weights: IndicatorWeights = field(default_factory=IndicatorWeights)
    strong_correlation: float = 0.7
    moderate_correlation: float = 0.4
    divergence_lookback: int = 20
    divergence_min_spacing: int = 3
    min_divergence_strength: float = 0.2
    correlation_lookback: int = 20
    min_data_points: int = 10
    dominance_ratio: float = 1.2


@dataclass(frozen=True)
class PredictorConfig(ConfigValue):
    enabled: bool = NKN_ENABLED
    network_depth: int = NKN_NETWORK_DEPTH
    training_period: int = NKN_TRAINING_PERIOD
    prediction_horizon: int = NKN_PREDICTION_HORIZON
    confidence_threshold: float = NKN_CONFIDENCE_THRESHOLD
    feature_window: int = NKN_FEATURE_WINDOW
    learning_rate: float = NKN_LEARNING_RATE
    max_epochs: int = NKN_MAX_EPOCHS
    batch_size: int = NKN_BATCH_SIZE
    target_error: float = NKN_TARGET_ERROR
    validation_split: float = NKN_VALIDATION_SPLIT
    lr_decay: float = 0.0
    confidence_decay: float = NKN_CONFIDENCE_DECAY
    time_budget: Optional[float] = None
    full_backprop: bool = True
    random_seed: Optional[int] = None


@dataclass(frozen=True)
class ConfidenceWeights(ConfigValue):
    """Fixed-shape weight record for the eight fusion factors."""

    technical: float = BASE_CONFIDENCE_WEIGHTS['technical']
    pattern: float = BASE_CONFIDENCE_WEIGHTS['pattern']
    volume: float = BASE_CONFIDENCE_WEIGHTS['volume']
    timeframe: float = BASE_CONFIDENCE_WEIGHTS['timeframe']
    correlation: float = BASE_CONFIDENCE_WEIGHTS['correlation']
    market_regime: float = BASE_CONFIDENCE_WEIGHTS['market_regime']
    volatility: float = BASE_CONFIDENCE_WEIGHTS['volatility']
    liquidity: float = BASE_CONFIDENCE_WEIGHTS['liquidity']

    @classmethod
    def keys(cls):
        return [f.name for f in fields(cls)]

    def total(self) -> float:
        return sum(getattr(self, name) for name in self.keys())

    def scaled(self, **multipliers: float) -> 'ConfidenceWeights':
        """Multiply the named weights, leaving the rest untouched."""
        changes = {name: getattr(self, name) * factor for name, factor in multipliers.items()}
        return self.with_overrides(**changes)

    def normalized(self) -> 'ConfidenceWeights':
        total = self.total()
        if total <= 0:
            raise InvalidConfigurationError("Confidence weights must have a positive sum")
        return replace(self, **{name: getattr(self, name) / total for name in self.keys()})


@dataclass(frozen=True)
class FusionConfig(ConfigValue):
    base_weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    adaptive_weighting: bool = True
    volatility_adjustment: bool = True
    time_decay: bool = True
    correlation_boost: bool = True
    min_confidence_threshold: float = 0.3
    max_confidence_threshold: float = 0.95
    decay_rate: float = 0.05
    boost_threshold: float = 0.7
    optimal_volatility: float = 0.2
    predictor_blend: float = 0.3
    performance_window: int = 50


@dataclass(frozen=True)
class EngineConfig(ConfigValue):
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    predictor: PredictorConfig = field(default_factory=PredictorConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    decision_history: int = 50
