"""
Adaptive Threshold Controller

Keeps the working interpretation thresholds (RSI bands, wave-trend levels,
volume ratios, volatility bands, confidence floors) in step with market
conditions. Each update derives a target for every field from realized
volatility, regime and trading session, then moves toward it through a
rate-limited smoothing filter:

    step = adaptation_speed * (target - current), capped at 10% of |current|

Every field is finally clamped to ``base * (1 +/- max_adjustment)`` and to its
hard domain bounds, so repeated updates under unchanged conditions converge
geometrically and never leave the envelope.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from config.constants import (
    REFERENCE_VOLATILITY,
    RSI_HARD_BOUNDS,
    TRADING_PERIODS_PER_YEAR,
    WAVE_TREND_HARD_LIMIT,
)
from config.engine_config import ThresholdConfig
from data.models import (
    AdaptiveThresholds,
    Candle,
    IndicatorSample,
    MarketConditions,
    RegimeType,
    ThresholdAdjustment,
    TradingSession,
)
from utils.config_validator import validate_threshold_config
from utils.error_handling import clamp, finite_or_default, is_finite, safe_divide
from utils.general_utils import annualized_volatility, safe_mean, sample_std
from utils.logging_utils import EventCollector, emit_event
from utils.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

# Largest per-cycle move as a fraction of the current value
MAX_STEP_FRACTION = 0.1
VOLATILITY_TREND_WINDOW = 20

CONFIDENCE_REGIME_FACTORS = {
    RegimeType.TRENDING.value: 0.9,
    RegimeType.RANGING.value: 1.1,
    RegimeType.BREAKOUT.value: 1.3,
    RegimeType.REVERSAL.value: 1.2,
}
CONFIDENCE_SESSION_FACTORS = {
    TradingSession.OVERLAP.value: 0.9,
    TradingSession.ASIAN.value: 1.1,
}
CONFIDENCE_CAPS = {'confidence.min_confidence': 0.9, 'confidence.strong_confidence': 0.95}


@dataclass(frozen=True)
class FieldSpec:
    key: str
    lower: float
    upper: float
    # Multiplier that converts a change into "units" for the material-change test
    unit_scale: float = 1.0


RSI_LOW, RSI_HIGH = RSI_HARD_BOUNDS
FIELD_SPECS: Dict[str, FieldSpec] = {
    spec.key: spec for spec in [
        FieldSpec('rsi.oversold', RSI_LOW, RSI_HIGH),
        FieldSpec('rsi.overbought', RSI_LOW, RSI_HIGH),
        FieldSpec('rsi.neutral_low', RSI_LOW, RSI_HIGH),
        FieldSpec('rsi.neutral_high', RSI_LOW, RSI_HIGH),
        FieldSpec('wave_trend.buy_threshold', -WAVE_TREND_HARD_LIMIT, -5.0),
        FieldSpec('wave_trend.sell_threshold', 5.0, WAVE_TREND_HARD_LIMIT),
        FieldSpec('wave_trend.extreme_level', 10.0, WAVE_TREND_HARD_LIMIT),
        FieldSpec('volume.spike_threshold', 1.0, 10.0, unit_scale=100.0),
        FieldSpec('volume.low_volume_threshold', 0.01, 1.0, unit_scale=100.0),
        FieldSpec('volatility.low', 0.005, 1.0, unit_scale=100.0),
        FieldSpec('volatility.high', 0.01, 1.0, unit_scale=100.0),
        FieldSpec('confidence.min_confidence', 0.01, 1.0, unit_scale=100.0),
        FieldSpec('confidence.strong_confidence', 0.01, 1.0, unit_scale=100.0),
    ]
}


def get_threshold_value(thresholds: AdaptiveThresholds, key: str) -> float:
    group, name = key.split('.')
    block = getattr(thresholds, group)
    if name == 'neutral_low':
        return float(block.neutral[0])
    if name == 'neutral_high':
        return float(block.neutral[1])
    return float(getattr(block, name))


def set_threshold_value(thresholds: AdaptiveThresholds, key: str, value: float) -> None:
    group, name = key.split('.')
    block = getattr(thresholds, group)
    if name == 'neutral_low':
        block.neutral = (value, block.neutral[1])
    elif name == 'neutral_high':
        block.neutral = (block.neutral[0], value)
    else:
        setattr(block, name, value)


class AdaptiveThresholdController:
    """
    Owns one engine instance's working thresholds.

    The controller is a no-op (returns the unchanged snapshot) when it has
    fewer than ``min_data_points`` candles or when its configuration or base
    thresholds are invalid.
    """

    def __init__(
        self,
        base_thresholds: Optional[AdaptiveThresholds] = None,
        config: Optional[ThresholdConfig] = None,
        events: Optional[EventCollector] = None,
    ):
        self.config = config or ThresholdConfig()
        self._base = (base_thresholds or AdaptiveThresholds()).copy()
        self._current = self._base.copy()
        self.events = events

        validation = validate_threshold_config(self.config)
        base_errors = self._validate_base(self._base)
        self.enabled = validation.is_valid() and not base_errors
        if not self.enabled:
            logger.error(
                f"Threshold controller disabled: {validation.summary()} {'; '.join(base_errors)}".strip()
            )

        capacity = self.config.history_capacity if validation.is_valid() else ThresholdConfig().history_capacity
        self._history: RingBuffer[ThresholdAdjustment] = RingBuffer(capacity)
        self._volatility_history: RingBuffer[float] = RingBuffer(VOLATILITY_TREND_WINDOW)
        self.last_effective_volatility: Optional[float] = None

    @staticmethod
    def _validate_base(base: AdaptiveThresholds) -> List[str]:
        errors = []
        for key, spec in FIELD_SPECS.items():
            value = get_threshold_value(base, key)
            if not is_finite(value) or not spec.lower <= value <= spec.upper:
                errors.append(f"base {key}={value} outside [{spec.lower}, {spec.upper}]")
        if base.rsi.oversold >= base.rsi.overbought:
            errors.append("base rsi.oversold must be below rsi.overbought")
        if base.volatility.low >= base.volatility.high:
            errors.append("base volatility.low must be below volatility.high")
        return errors

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_current_thresholds(self) -> AdaptiveThresholds:
        return self._current.copy()

    def get_base_thresholds(self) -> AdaptiveThresholds:
        return self._base.copy()

    def get_adjustment_history(self) -> List[ThresholdAdjustment]:
        return self._history.to_list()

    def reset(self) -> None:
        """Discard all history and restore the base thresholds."""
        self._current = self._base.copy()
        self._history.clear()
        self._volatility_history.clear()
        self.last_effective_volatility = None
        emit_event(self.events, 'thresholds_reset', source='thresholds')
        logger.info("Adaptive thresholds reset to base values")

    def update_config(self, **overrides) -> ThresholdConfig:
        """Hot-reload configuration; invalid updates are logged and ignored."""
        candidate = self.config.with_overrides(**overrides)
        validation = validate_threshold_config(candidate)
        if not validation.is_valid():
            logger.error(f"Rejected threshold config update: {validation.summary()}")
            return self.config

        if candidate.history_capacity != self._history.capacity:
            self._history.resize(candidate.history_capacity)
        self.config = candidate
        self.enabled = not self._validate_base(self._base)
        if self.enabled:
            self._clamp_to_envelope()
        return self.config

    def _clamp_to_envelope(self) -> int:
        """Pull every working field back inside its envelope after a config change."""
        moved = 0
        for key in FIELD_SPECS:
            lower, upper = self.envelope(key)
            value = get_threshold_value(self._current, key)
            if not lower <= value <= upper:
                set_threshold_value(self._current, key, clamp(value, lower, upper))
                moved += 1
        if moved:
            logger.info(f"Clamped {moved} thresholds into the updated adjustment envelope")
        return moved

    def envelope(self, key: str) -> Tuple[float, float]:
        """Allowed range for a field: base envelope intersected with hard bounds."""
        spec = FIELD_SPECS[key]
        base = get_threshold_value(self._base, key)
        margin = self.config.max_adjustment
        lower, upper = sorted((base * (1 - margin), base * (1 + margin)))
        lower, upper = max(lower, spec.lower), min(upper, spec.upper)
        if lower > upper:
            lower = upper = clamp(base, spec.lower, spec.upper)
        return lower, upper

    # ------------------------------------------------------------------
    # Update cycle
    # ------------------------------------------------------------------

    def update_thresholds(
        self,
        candles: Sequence[Candle],
        conditions: MarketConditions,
        indicator_history: Sequence[IndicatorSample] = (),
    ) -> AdaptiveThresholds:
        """
        Move the working thresholds toward targets implied by current conditions.

        Returns:
            A snapshot of the thresholds after the update.
        """
        if not self.enabled:
            return self.get_current_thresholds()
        if len(candles) < self.config.min_data_points:
            logger.debug(
                f"Threshold update skipped: {len(candles)} candles < {self.config.min_data_points}"
            )
            return self.get_current_thresholds()

        volatility = self._effective_volatility(candles, conditions)
        self.last_effective_volatility = volatility
        self._volatility_history.append(volatility)

        regime_multiplier = self.config.regime_adjustments.multiplier(conditions.regime_type)
        session_multiplier = self.config.session_adjustments.multiplier(conditions.session)
        context = (
            f"volatility {volatility:.2f}, {conditions.regime_type} regime"
            + (f", {conditions.session} session" if conditions.session else "")
        )

        targets = {}
        targets.update(self._rsi_targets(volatility, regime_multiplier, session_multiplier, indicator_history))
        targets.update(self._wave_trend_targets(volatility, regime_multiplier, session_multiplier, indicator_history))
        targets.update(self._volume_targets(candles, regime_multiplier, session_multiplier))
        targets.update(self._volatility_targets(conditions))
        targets.update(self._confidence_targets(volatility, conditions))

        recorded = 0
        for key, (target, factor, label) in targets.items():
            if self._apply(key, target, factor, f"{label}: {context} (factor {factor:.2f})"):
                recorded += 1

        emit_event(
            self.events, 'thresholds_updated', source='thresholds',
            volatility=volatility, regime=conditions.regime_type,
            session=conditions.session, adjustments=recorded,
        )
        return self.get_current_thresholds()

    def _effective_volatility(self, candles: Sequence[Candle], conditions: MarketConditions) -> float:
        window = self.config.volatility_window
        closes = [c.close for c in candles[-(window + 1):]]
        realized = annualized_volatility(closes, TRADING_PERIODS_PER_YEAR, default=REFERENCE_VOLATILITY)
        reported = conditions.volatility
        if is_finite(reported) and reported >= 0:
            return (realized + float(reported)) / 2.0
        return realized

    def _bounded_factor(self, factor: float) -> float:
        margin = self.config.max_adjustment
        return clamp(factor, 1.0 - margin, 1.0 + margin)

    def _rsi_targets(self, volatility, regime_multiplier, session_multiplier, indicator_history):
        factor = self._bounded_factor(
            (1.0 + (volatility - REFERENCE_VOLATILITY) * 0.5) * regime_multiplier * session_multiplier
        )
        base = self._base.rsi
        neutral_low, neutral_high = self._current.rsi.neutral
        # Stress widens the band: oversold moves down while overbought moves up.
        # Neither may cross into the neutral band.
        targets = {
            'rsi.oversold': (min(base.oversold * (2.0 - factor), neutral_low - 1.0), factor, "RSI oversold"),
            'rsi.overbought': (max(base.overbought * factor, neutral_high + 1.0), factor, "RSI overbought"),
        }

        rsi_values = [s.rsi for s in list(indicator_history)[-20:]]
        if len(rsi_values) >= 5:
            spread = self._bounded_factor(safe_divide(sample_std(rsi_values), 10.0, 1.0))
            centre = (base.neutral[0] + base.neutral[1]) / 2.0
            half_width = (base.neutral[1] - base.neutral[0]) / 2.0
            targets['rsi.neutral_low'] = (centre - half_width * spread, spread, "RSI neutral band")
            targets['rsi.neutral_high'] = (centre + half_width * spread, spread, "RSI neutral band")
        return targets

    def _wave_trend_targets(self, volatility, regime_multiplier, session_multiplier, indicator_history):
        factor = self._bounded_factor(
            (1.0 + (volatility - REFERENCE_VOLATILITY) * 0.3) * regime_multiplier * session_multiplier
        )
        base = self._base.wave_trend
        spreads = [abs(s.wave_trend.wt1 - s.wave_trend.wt2) for s in list(indicator_history)[-20:]]
        range_factor = 1.0 + min(0.5, safe_mean(spreads, 0.0) / 100.0)
        extreme_factor = self._bounded_factor(factor * range_factor)
        return {
            'wave_trend.buy_threshold': (base.buy_threshold * factor, factor, "WaveTrend buy level"),
            'wave_trend.sell_threshold': (base.sell_threshold * factor, factor, "WaveTrend sell level"),
            'wave_trend.extreme_level': (base.extreme_level * extreme_factor, extreme_factor, "WaveTrend extreme level"),
        }

    def _volume_targets(self, candles, regime_multiplier, session_multiplier):
        volumes = np.array([c.volume for c in candles[-self.config.volatility_window:]], dtype=float)
        volumes = volumes[np.isfinite(volumes)]
        if volumes.size < self.config.min_data_points:
            return {}

        volume_of_volume = min(2.0, safe_divide(float(np.std(volumes)), float(np.mean(volumes)), 0.0))
        base = self._base.volume
        spike_factor = self._bounded_factor((1.0 + volume_of_volume * 0.5) * session_multiplier * regime_multiplier)
        low_factor = self._bounded_factor(1.0 - volume_of_volume * 0.3)
        return {
            'volume.spike_threshold': (base.spike_threshold * spike_factor, spike_factor, "Volume spike ratio"),
            'volume.low_volume_threshold': (base.low_volume_threshold * low_factor, low_factor, "Low volume ratio"),
        }

    def _volatility_trend(self) -> float:
        history = self._volatility_history.to_list()
        if len(history) < 4:
            return 0.0
        half = len(history) // 2
        earlier, later = np.mean(history[:half]), np.mean(history[half:])
        return safe_divide(later - earlier, earlier, 0.0)

    def _volatility_targets(self, conditions: MarketConditions):
        base = self._base.volatility
        trend = self._volatility_trend()
        if trend > 0.1:
            low_factor = 1.2
        elif trend < -0.1:
            low_factor = 0.8
        else:
            low_factor = 1.0

        regime = conditions.regime_type
        if regime == RegimeType.BREAKOUT.value:
            high_factor = 1.3
        elif regime == RegimeType.RANGING.value:
            high_factor = 0.8
        else:
            high_factor = 1.0

        low_factor = self._bounded_factor(low_factor)
        high_factor = self._bounded_factor(high_factor)
        return {
            'volatility.low': (base.low * low_factor, low_factor, "Low volatility band"),
            'volatility.high': (base.high * high_factor, high_factor, "High volatility band"),
        }

    def _confidence_targets(self, volatility: float, conditions: MarketConditions):
        factor = 1.0
        if volatility > self._current.volatility.high:
            factor *= 1.2
        elif volatility < self._current.volatility.low:
            factor *= 0.9
        factor *= CONFIDENCE_REGIME_FACTORS.get(conditions.regime_type, 1.0)
        factor *= CONFIDENCE_SESSION_FACTORS.get(conditions.session, 1.0)
        factor = self._bounded_factor(factor)

        base = self._base.confidence
        return {
            'confidence.min_confidence': (
                min(CONFIDENCE_CAPS['confidence.min_confidence'], base.min_confidence * factor),
                factor, "Minimum confidence",
            ),
            'confidence.strong_confidence': (
                min(CONFIDENCE_CAPS['confidence.strong_confidence'], base.strong_confidence * factor),
                factor, "Strong confidence",
            ),
        }

    def _smooth(self, current: float, target: float) -> float:
        step = (target - current) * self.config.adaptation_speed
        cap = abs(current) * MAX_STEP_FRACTION
        return current + clamp(step, -cap, cap)

    def _apply(self, key: str, target: float, factor: float, reason: str) -> bool:
        """Smooth one field toward ``target``; returns True when the change was recorded."""
        lower, upper = self.envelope(key)
        current = get_threshold_value(self._current, key)
        target = clamp(finite_or_default(target, current), lower, upper)
        updated = clamp(self._smooth(current, target), lower, upper)
        set_threshold_value(self._current, key, updated)

        change_units = abs(updated - current) * FIELD_SPECS[key].unit_scale
        if change_units <= self.config.material_change:
            return False

        self._history.append(ThresholdAdjustment(
            indicator=key,
            original_value=current,
            adjusted_value=updated,
            adjustment_factor=safe_divide(updated, current, 1.0),
            reason=reason,
            timestamp=datetime.now(),
        ))
        logger.debug(f"Adjusted {key}: {current:.4f} -> {updated:.4f} ({reason})")
        return True

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_effectiveness_metrics(self) -> Dict[str, object]:
        history = self._history.to_list()
        if not history:
            return {
                'total_adjustments': 0,
                'average_adjustment': 0.0,
                'most_adjusted_indicator': 'none',
                'stability_score': 1.0,
            }

        deviations = [abs(item.adjustment_factor - 1.0) for item in history]
        counts = Counter(item.indicator for item in history)
        recent_factors = [item.adjustment_factor for item in history[-20:]]
        return {
            'total_adjustments': len(history),
            'average_adjustment': float(np.mean(deviations)),
            'most_adjusted_indicator': counts.most_common(1)[0][0],
            'stability_score': max(0.0, 1.0 - float(np.var(recent_factors))),
        }
