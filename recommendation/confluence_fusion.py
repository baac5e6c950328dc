"""
Confluence Fusion

Combines the indicator matrix, adaptive thresholds, market conditions,
confluence zones and the predictor's confidence into one weighted confidence
figure with a risk bucket and an audit trail of every adjustment applied.
"""

import logging
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from config.engine_config import ConfidenceWeights, FusionConfig, IndicatorWeights
from data.models import (
    AdaptiveThresholds,
    Candle,
    ConfidenceAdjustment,
    ConfidenceFactors,
    ConfluenceZone,
    CorrelationMatrix,
    IndicatorMatrix,
    IndicatorSample,
    MarketConditions,
    MarketRegime,
    MomentumState,
    RiskLevel,
    Signal,
    Strength,
    TrendDirection,
    VolumeProfile,
    WeightedConfidence,
)
from utils.config_validator import validate_fusion_config
from utils.error_handling import (
    NumericInstabilityError,
    clamp,
    finite_or_default,
    guarded_factor,
    is_finite,
    safe_divide,
)
from utils.general_utils import log_returns, rolling_stability, safe_mean
from utils.logging_utils import EventCollector, emit_event
from utils.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

# Base-weight multipliers per regime type
REGIME_WEIGHT_MULTIPLIERS = {
    'trending': {'technical': 1.2, 'timeframe': 1.3, 'pattern': 0.9},
    'ranging': {'pattern': 1.2, 'volume': 1.1, 'technical': 0.9},
    'breakout': {'volume': 1.4, 'volatility': 1.3, 'pattern': 1.1},
    'reversal': {'pattern': 1.3, 'correlation': 1.2, 'technical': 1.1},
}

HIGH_CORRELATION_WEIGHTS = {'correlation': 1.3, 'technical': 1.1}
LOW_CORRELATION_WEIGHTS = {'correlation': 0.7, 'pattern': 1.1}
HIGH_VOLATILITY_WEIGHTS = {'volatility': 1.4, 'volume': 1.2, 'technical': 0.9}
LOW_VOLATILITY_WEIGHTS = {'pattern': 1.2, 'timeframe': 1.1, 'volatility': 0.8}

REGIME_CONFIDENCE_MULTIPLIERS = {'trending': 1.1, 'ranging': 0.9, 'breakout': 1.2, 'reversal': 0.8}
STRENGTH_MULTIPLIERS = {Strength.STRONG: 1.2, Strength.MODERATE: 1.0, Strength.WEAK: 0.8}

EPSILON = 1e-3
STATISTICS_CAPACITY = 100


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ConfluenceFusion:
    """Weighted multi-factor confidence with adaptive weights."""

    def __init__(self, config: Optional[FusionConfig] = None, events: Optional[EventCollector] = None):
        self.config = self._validated(config or FusionConfig())
        self.events = events
        self.indicator_weights = IndicatorWeights()
        self._performance: Dict[str, RingBuffer] = {}
        self._recent: RingBuffer = RingBuffer(STATISTICS_CAPACITY)

    @staticmethod
    def _validated(config: FusionConfig) -> FusionConfig:
        validation = validate_fusion_config(config)
        if not validation.is_valid():
            logger.error(f"Invalid fusion configuration, using defaults: {validation.summary()}")
            return FusionConfig()
        return config

    def update_config(self, **overrides) -> FusionConfig:
        candidate = self.config.with_overrides(**overrides)
        validation = validate_fusion_config(candidate)
        if not validation.is_valid():
            logger.error(f"Rejected fusion config update: {validation.summary()}")
            return self.config

        if candidate.performance_window != self.config.performance_window:
            for buffer in self._performance.values():
                buffer.resize(candidate.performance_window)
        self.config = candidate
        return self.config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calculate_weighted_confidence(
        self,
        candles: Sequence[Candle],
        matrix: IndicatorMatrix,
        market_conditions: MarketConditions,
        confluence_zones: Sequence[ConfluenceZone] = (),
        thresholds: Optional[AdaptiveThresholds] = None,
        indicators: Optional[IndicatorSample] = None,
        predictor_confidence: Optional[float] = None,
        now: Optional[datetime] = None,
        indicator_weights: Optional[IndicatorWeights] = None,
    ) -> WeightedConfidence:
        """
        Fuse all confidence factors into a single weighted figure.

        Args:
            candles: Ordered candle history, oldest first.
            matrix: Output of the indicator scoring matrix for this cycle.
            market_conditions: Caller supplied market context.
            confluence_zones: Price levels where several analyses agree.
            thresholds: Current adaptive thresholds. Defaults to the base set.
            indicators: Latest indicator sample, used for trend/momentum alignment.
            predictor_confidence: Predictor confidence in [0, 1], blended into
                the pattern factor when given.
            now: Reference time for staleness decay. Defaults to the current time.
            indicator_weights: Per-family weights for the technical factor,
                normally the scoring matrix's. Defaults to the stock weights.

        Returns:
            WeightedConfidence with the clamped overall figure, the adjusted
            factors, the normalized weights and the adjustment trail.
        """
        candles = list(candles)
        thresholds = thresholds or AdaptiveThresholds()
        adjustments: List[ConfidenceAdjustment] = []

        factors = self._calculate_factors(
            candles, matrix, market_conditions, confluence_zones, thresholds, indicators,
            indicator_weights or self.indicator_weights, adjustments
        )
        factors = self._blend_predictor(factors, predictor_confidence, adjustments)
        weights = self.calculate_adaptive_weights(market_conditions, matrix.correlation_matrix)
        factors = self._apply_adjustments(factors, market_conditions, matrix.correlation_matrix,
                                          candles, now, adjustments)

        overall = self._overall(factors, weights)
        reliability = self._reliability(factors, matrix.correlation_matrix)
        risk_level = self._risk_level(overall, market_conditions, factors)

        result = WeightedConfidence(
            overall_confidence=overall,
            factors=factors,
            weights=weights,
            adjustments=tuple(adjustments),
            reliability=reliability,
            risk_level=risk_level,
        )
        self._recent.append(result)

        emit_event(
            self.events, 'confidence_calculated', source='fusion',
            overall_confidence=overall, risk_level=risk_level.value, adjustments=len(adjustments),
        )
        logger.debug(f"Weighted confidence {overall:.3f} ({risk_level.value} risk)")
        return result

    def calculate_adaptive_weights(self, market_conditions: MarketConditions,
                                   correlation_matrix: CorrelationMatrix) -> ConfidenceWeights:
        """Base weights scaled by regime, correlation and volatility, renormalized to sum to 1."""
        weights = self.config.base_weights
        if not self.config.adaptive_weighting:
            return weights.normalized()

        weights = weights.scaled(**REGIME_WEIGHT_MULTIPLIERS.get(market_conditions.regime_type, {}))

        average_correlation = finite_or_default(correlation_matrix.average_correlation, 0.0)
        if average_correlation > 0.7:
            weights = weights.scaled(**HIGH_CORRELATION_WEIGHTS)
        elif average_correlation < 0.3:
            weights = weights.scaled(**LOW_CORRELATION_WEIGHTS)

        volatility = finite_or_default(market_conditions.volatility, self.config.optimal_volatility)
        if volatility > 0.4:
            weights = weights.scaled(**HIGH_VOLATILITY_WEIGHTS)
        elif volatility < 0.1:
            weights = weights.scaled(**LOW_VOLATILITY_WEIGHTS)

        return weights.normalized()

    def update_performance(self, category: str, value: float) -> None:
        """Track an observed performance figure (e.g. hit rate) for ``category``."""
        if not is_finite(value):
            logger.warning(f"Ignoring non-finite performance value for {category}: {value}")
            return
        buffer = self._performance.get(category)
        if buffer is None:
            buffer = RingBuffer(self.config.performance_window)
            self._performance[category] = buffer
        buffer.append(float(value))

    def get_performance(self, category: str = 'overall') -> List[float]:
        buffer = self._performance.get(category)
        return buffer.to_list() if buffer is not None else []

    def get_confidence_statistics(self) -> Dict[str, object]:
        """Summary of the most recent weighted confidence outputs."""
        recent = self._recent.to_list()
        risk_distribution = {level.value: 0.0 for level in RiskLevel}
        if not recent:
            return {
                'samples': 0,
                'average_confidence': 0.0,
                'confidence_stability': 0.0,
                'risk_distribution': risk_distribution,
                'factor_importance': self.config.base_weights.normalized().to_dict(),
            }

        overall = np.array([item.overall_confidence for item in recent])
        mean = float(overall.mean())
        stability = 1.0 if len(overall) < 2 else clamp(1.0 - safe_divide(float(overall.std()), mean, 1.0), 0.0, 1.0)

        for item in recent:
            risk_distribution[item.risk_level.value] += 1.0 / len(recent)

        contributions = {name: 0.0 for name in ConfidenceWeights.keys()}
        for item in recent:
            factor_values = item.factors.as_dict()
            for name in contributions:
                contributions[name] += factor_values[name] * getattr(item.weights, name)
        total = sum(contributions.values())
        factor_importance = {name: safe_divide(value, total, 0.0) for name, value in contributions.items()}

        return {
            'samples': len(recent),
            'average_confidence': mean,
            'confidence_stability': stability,
            'risk_distribution': risk_distribution,
            'factor_importance': factor_importance,
        }

    def reset(self) -> None:
        self._performance.clear()
        self._recent.clear()

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def _calculate_factors(self, candles, matrix, conditions, zones, thresholds, indicators, indicator_weights,
                           adjustments: List[ConfidenceAdjustment]) -> ConfidenceFactors:
        computed = {
            'technical_confidence': self._technical_confidence(matrix.scores, indicator_weights),
            'pattern_confidence': self._pattern_confidence(zones),
            'volume_confidence': self._volume_confidence(candles, conditions, thresholds),
            'timeframe_confidence': self._timeframe_confidence(matrix, conditions, indicators),
            'correlation_confidence': self._correlation_confidence(matrix.correlation_matrix),
            'market_regime_confidence': self._market_regime_confidence(conditions.regime),
            'volatility_confidence': self._volatility_confidence(conditions.volatility, candles, thresholds),
            'liquidity_confidence': self._liquidity_confidence(candles, conditions),
        }

        values = {}
        defaults = ConfidenceFactors()
        for name, (value, failure) in computed.items():
            values[name] = value
            if failure is not None:
                adjustments.append(ConfidenceAdjustment(
                    type='factor_fallback',
                    factor=name,
                    original_value=getattr(defaults, name),
                    adjusted_value=value,
                    reason=failure,
                ))
        return ConfidenceFactors(**values)

    @guarded_factor('technical', 0.3)
    def _technical_confidence(self, scores, indicator_weights: IndicatorWeights) -> float:
        if not scores:
            return 0.3

        total_confidence = 0.0
        total_weight = 0.0
        for score in scores:
            confidence = score.confidence * STRENGTH_MULTIPLIERS.get(score.strength, 1.0)
            confidence *= 0.5 + score.score * 0.5
            weight = indicator_weights.weight(score.indicator) or 0.1
            total_confidence += confidence * weight
            total_weight += weight

        return min(1.0, total_confidence / total_weight) if total_weight > 0 else 0.3

    @guarded_factor('pattern', 0.4)
    def _pattern_confidence(self, zones) -> float:
        if not zones:
            return 0.4

        max_strength = max(zone.strength for zone in zones)
        avg_reliability = sum(zone.reliability for zone in zones) / len(zones)
        multi_zone_bonus = min(0.2, len(zones) * 0.05)
        return min(1.0, (max_strength + avg_reliability) / 2 + multi_zone_bonus)

    @guarded_factor('volume', 0.4)
    def _volume_confidence(self, candles, conditions, thresholds) -> float:
        if len(candles) < 10:
            return 0.4

        volumes = [c.volume for c in candles[-10:]]
        average = safe_mean(volumes)
        ratio = safe_divide(volumes[-1], average, 1.0)
        spike_threshold = thresholds.volume.spike_threshold
        confidence = min(1.0, safe_divide(ratio, spike_threshold, 0.5))

        if conditions.volume_profile == VolumeProfile.HIGH:
            confidence *= 1.2
        elif conditions.volume_profile == VolumeProfile.LOW:
            confidence *= 0.8

        half = len(volumes) // 2
        volume_trend = safe_divide(safe_mean(volumes[half:]) - safe_mean(volumes[:half]), safe_mean(volumes[:half]))
        if abs(volume_trend) > 0.1:
            confidence *= 1.1

        return min(1.0, confidence)

    @guarded_factor('timeframe', 0.6)
    def _timeframe_confidence(self, matrix: IndicatorMatrix, conditions: MarketConditions,
                              indicators: Optional[IndicatorSample]) -> float:
        confidence = 0.6

        if indicators is not None:
            trending = indicators.trend != TrendDirection.SIDEWAYS
            momentum_agrees = trending and indicators.momentum != MomentumState.WEAK
        else:
            trend_score = matrix.score_for('trend')
            momentum_score = matrix.score_for('momentum')
            trending = trend_score is not None and trend_score.signal != Signal.NEUTRAL
            momentum_agrees = (
                trending and momentum_score is not None and momentum_score.signal == trend_score.signal
            )

        if trending:
            confidence += 0.2
        if momentum_agrees:
            confidence += 0.1

        if conditions.regime_type == 'trending':
            confidence *= 1.1
        elif conditions.regime_type == 'ranging':
            confidence *= 0.9

        return min(1.0, confidence)

    @guarded_factor('correlation', 0.5)
    def _correlation_confidence(self, correlation_matrix: CorrelationMatrix) -> float:
        if correlation_matrix.is_empty:
            return 0.5

        agreement = correlation_matrix.agreement_ratio()
        confidence = correlation_matrix.average_correlation * 0.7 + agreement * 0.3
        confidence *= 0.8 + agreement * 0.2
        return min(1.0, confidence)

    @guarded_factor('market_regime', 0.5)
    def _market_regime_confidence(self, regime: MarketRegime) -> float:
        confidence = regime.confidence * REGIME_CONFIDENCE_MULTIPLIERS.get(regime.type.value, 1.0)
        confidence *= 0.7 + regime.strength * 0.3
        return min(1.0, confidence)

    @guarded_factor('volatility', 0.5)
    def _volatility_confidence(self, volatility: float, candles, thresholds) -> float:
        if not is_finite(volatility):
            raise NumericInstabilityError(f"volatility is not finite: {volatility}")
        low, high = thresholds.volatility.low, thresholds.volatility.high
        midpoint = (low + high) / 2
        band = max(high - low, 1e-6)
        confidence = max(0.2, min(1.0, 1.0 - abs(volatility - midpoint) / band))

        if len(candles) >= 20:
            stability = rolling_stability(log_returns([c.close for c in candles]), window=10)
            confidence *= 0.8 + stability * 0.2

        return confidence

    @guarded_factor('liquidity', 0.6)
    def _liquidity_confidence(self, candles, conditions: MarketConditions) -> float:
        profile_levels = {VolumeProfile.HIGH: 0.8, VolumeProfile.MEDIUM: 0.6, VolumeProfile.LOW: 0.4}
        confidence = profile_levels.get(conditions.volume_profile, 0.6)

        session = conditions.market_session.value if conditions.market_session is not None else None
        if session == 'active':
            confidence *= 1.1
        elif session == 'quiet':
            confidence *= 0.9

        recent = candles[-10:]
        if recent:
            spread_ratio = safe_divide(safe_mean([c.range for c in recent]), safe_mean([c.close for c in recent]), 0.0)
            if spread_ratio < 0.01:
                confidence *= 1.1
            elif spread_ratio > 0.03:
                confidence *= 0.9

        return min(1.0, confidence)

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    def _blend_predictor(self, factors: ConfidenceFactors, predictor_confidence: Optional[float],
                         adjustments: List[ConfidenceAdjustment]) -> ConfidenceFactors:
        if predictor_confidence is None or not is_finite(predictor_confidence):
            return factors

        blend = self.config.predictor_blend
        original = factors.pattern_confidence
        blended = clamp((1 - blend) * original + blend * clamp(predictor_confidence, 0.0, 1.0), 0.0, 1.0)
        if abs(blended - original) > EPSILON:
            adjustments.append(ConfidenceAdjustment(
                type='predictor_blend',
                factor='pattern_confidence',
                original_value=original,
                adjusted_value=blended,
                reason=f"Blended predictor confidence {predictor_confidence:.3f} at {blend:.2f}",
            ))
        return replace(factors, pattern_confidence=blended)

    def _scale_factors(self, values: Dict[str, float], names: Sequence[str], multiplier: float,
                       adjustment_type: str, reason: str, adjustments: List[ConfidenceAdjustment]) -> None:
        for name in names:
            original = values[name]
            adjusted = clamp(original * multiplier, 0.0, 1.0)
            values[name] = adjusted
            if abs(adjusted - original) > EPSILON:
                adjustments.append(ConfidenceAdjustment(
                    type=adjustment_type, factor=name,
                    original_value=original, adjusted_value=adjusted, reason=reason,
                ))

    def _apply_adjustments(self, factors: ConfidenceFactors, conditions: MarketConditions,
                           correlation_matrix: CorrelationMatrix, candles: Sequence[Candle],
                           now: Optional[datetime], adjustments: List[ConfidenceAdjustment]) -> ConfidenceFactors:
        values = {f.name: getattr(factors, f.name) for f in fields(factors)}
        all_names = list(values)

        if self.config.time_decay:
            try:
                decay, minutes = self._time_decay_factor(candles, now)
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(f"Time decay unavailable, leaving factors undecayed: {e}")
                adjustments.append(ConfidenceAdjustment(
                    type='factor_fallback', factor='time_decay',
                    original_value=1.0, adjusted_value=1.0, reason=f"Time decay failed: {e}",
                ))
            else:
                self._scale_factors(values, all_names, decay, 'time_decay',
                                    f"Data is {minutes:.1f} minutes old", adjustments)

        if self.config.volatility_adjustment:
            volatility = finite_or_default(conditions.volatility, self.config.optimal_volatility)
            multiplier = max(0.7, 1.0 - abs(volatility - self.config.optimal_volatility) * 2)
            self._scale_factors(values, ['technical_confidence', 'pattern_confidence'], multiplier, 'volatility',
                                f"Volatility adjustment for {volatility:.3f}", adjustments)

        performance = self._performance_multiplier()
        if performance != 1.0:
            self._scale_factors(values, all_names, performance, 'performance',
                                "Historical performance adjustment", adjustments)

        if self.config.correlation_boost and not correlation_matrix.is_empty:
            agreement = correlation_matrix.agreement_ratio()
            if agreement >= self.config.boost_threshold:
                self._scale_factors(values, ['technical_confidence', 'correlation_confidence'], 1.1,
                                    'correlation_boost', f"Indicator agreement {agreement:.2f}", adjustments)

        return ConfidenceFactors(**{name: clamp(value, 0.0, 1.0) for name, value in values.items()})

    def _time_decay_factor(self, candles: Sequence[Candle], now: Optional[datetime]) -> Tuple[float, float]:
        if not candles:
            return 1.0, 0.0
        latest = candles[-1].timestamp
        if now is None:
            now = datetime.now(timezone.utc) if latest.tzinfo is not None else datetime.now()
        if (now.tzinfo is None) != (latest.tzinfo is None):
            # Naive timestamps are read as UTC when compared with aware ones
            now, latest = _as_utc(now), _as_utc(latest)
        minutes = max(0.0, (now - latest).total_seconds() / 60)
        return max(0.5, 1.0 - minutes * self.config.decay_rate / 60), minutes

    def _performance_multiplier(self) -> float:
        history = self.get_performance('overall')
        if not history:
            return 1.0
        average = safe_mean(history, 0.6)
        if average > 0.7:
            return 1.1
        if average < 0.4:
            return 0.9
        return 1.0

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def _overall(self, factors: ConfidenceFactors, weights: ConfidenceWeights) -> float:
        factor_values = factors.as_dict()
        overall = sum(factor_values[name] * getattr(weights, name) for name in ConfidenceWeights.keys())
        lower, upper = self.config.min_confidence_threshold, self.config.max_confidence_threshold
        if not is_finite(overall):
            logger.warning("Non-finite overall confidence; using minimum")
            return lower
        return clamp(overall, lower, upper)

    @staticmethod
    def _reliability(factors: ConfidenceFactors, correlation_matrix: CorrelationMatrix) -> float:
        values = np.array(factors.values())
        consistency = 1.0 - min(1.0, float(values.var()))
        average_correlation = finite_or_default(correlation_matrix.average_correlation, 0.0)
        return clamp(consistency * 0.6 + average_correlation * 0.4, 0.0, 1.0)

    @staticmethod
    def _risk_level(confidence: float, conditions: MarketConditions, factors: ConfidenceFactors) -> RiskLevel:
        risk_score = 0

        if confidence < 0.4:
            risk_score += 3
        elif confidence < 0.6:
            risk_score += 2
        elif confidence < 0.8:
            risk_score += 1

        volatility = finite_or_default(conditions.volatility, 0.0)
        if volatility > 0.5:
            risk_score += 2
        elif volatility > 0.3:
            risk_score += 1

        if conditions.regime_type == 'breakout':
            risk_score += 2
        elif conditions.regime_type == 'reversal':
            risk_score += 1

        values = factors.values()
        if max(values) - min(values) > 0.5:
            risk_score += 1

        if risk_score >= 5:
            return RiskLevel.HIGH
        if risk_score >= 3:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW
