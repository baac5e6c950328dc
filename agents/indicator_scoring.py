"""
Indicator Scoring Matrix

Turns a rolling history of pre-computed indicator readings into normalized,
direction-tagged scores per indicator family, a pairwise correlation matrix
and a list of price/indicator divergences. Scores are read against the
engine's current adaptive thresholds, so the same RSI reading can be a strong
signal in a calm market and a weak one under stress.
"""

import logging
from itertools import combinations
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema

from config.engine_config import ScoringConfig
from config.constants import RSI_HARD_BOUNDS
from data.models import (
    AdaptiveThresholds,
    Candle,
    CorrelationMatrix,
    CorrelationPair,
    Divergence,
    IndicatorMatrix,
    IndicatorSample,
    IndicatorScore,
    MomentumState,
    Signal,
    Strength,
    TrendDirection,
    WaveSignal,
    indicators_to_frame,
)
from utils.config_validator import validate_scoring_config
from utils.error_handling import clamp, finite_or_default, is_finite, safe_divide
from utils.general_utils import consistency_ratio, linear_slope, pearson, safe_mean, sample_std, trend_fit
from utils.logging_utils import EventCollector, emit_event, log_performance

logger = logging.getLogger(__name__)

INDICATOR_FAMILIES = ['rsi', 'wave_trend', 'pvt', 'momentum', 'trend', 'volume']
CORRELATION_SERIES = ['rsi', 'wt1', 'wt2', 'pvt', 'volatility']

# Score multipliers applied when a same-direction divergence is present
DIVERGENCE_BOOST = {'rsi': 1.2, 'wave_trend': 1.3, 'pvt': 1.2}

VOLUME_LOOKBACK = 20


def _signal_from_trend(trend: TrendDirection) -> Signal:
    if trend == TrendDirection.BULLISH:
        return Signal.BULLISH
    if trend == TrendDirection.BEARISH:
        return Signal.BEARISH
    return Signal.NEUTRAL


class IndicatorScoringMatrix:
    """Scores indicator families and measures how much they agree."""

    def __init__(self, config: Optional[ScoringConfig] = None, events: Optional[EventCollector] = None):
        self.config = self._validated(config or ScoringConfig())
        self.events = events

    @staticmethod
    def _validated(config: ScoringConfig) -> ScoringConfig:
        validation = validate_scoring_config(config)
        if not validation.is_valid():
            logger.error(f"Invalid scoring configuration, using defaults: {validation.summary()}")
            return ScoringConfig()
        return config

    def update_config(self, **overrides) -> ScoringConfig:
        candidate = self.config.with_overrides(**overrides)
        validation = validate_scoring_config(candidate)
        if validation.is_valid():
            self.config = candidate
        else:
            logger.error(f"Rejected scoring config update: {validation.summary()}")
        return self.config

    # ------------------------------------------------------------------
    # Matrix
    # ------------------------------------------------------------------

    @log_performance(logger, threshold_ms=250)
    def calculate_indicator_matrix(
        self,
        current: Optional[IndicatorSample],
        history: Sequence[IndicatorSample],
        candles: Sequence[Candle] = (),
        thresholds: Optional[AdaptiveThresholds] = None,
    ) -> IndicatorMatrix:
        """
        Score every indicator family for the current sample.

        Args:
            current: Latest indicator reading. Defaults to the last history entry.
            history: Ordered indicator history, oldest first. May or may not
                already contain ``current``.
            candles: OHLCV candles aligned with the history tail.
            thresholds: Adaptive thresholds to interpret readings against.

        Returns:
            IndicatorMatrix with scores, correlation, divergences and the
            weighted dominant signal.
        """
        thresholds = thresholds or AdaptiveThresholds()
        samples = list(history)
        if current is None and samples:
            current = samples[-1]
        if current is not None and (not samples or samples[-1] is not current):
            samples.append(current)

        if current is None or len(samples) < self.config.min_data_points:
            logger.debug(
                f"Insufficient indicator history ({len(samples)} < {self.config.min_data_points}); "
                f"returning neutral matrix"
            )
            return self._neutral_matrix("Insufficient indicator history")

        candles = list(candles)
        divergences = self.detect_divergences(samples, candles)

        scorers: Dict[str, Callable[[], IndicatorScore]] = {
            'rsi': lambda: self.score_rsi(current, samples, thresholds, divergences),
            'wave_trend': lambda: self.score_wave_trend(current, samples, thresholds, divergences),
            'pvt': lambda: self.score_pvt(current, samples, divergences),
            'momentum': lambda: self.score_momentum(current, samples),
            'trend': lambda: self.score_trend(current, samples, candles),
            'volume': lambda: self.score_volume(candles, thresholds),
        }
        scores = tuple(self._score_safely(name, scorer) for name, scorer in scorers.items())

        correlation_matrix = self.calculate_correlation_matrix(samples)
        overall_score, dominant_signal = self._calculate_overall(scores)

        strong_agreement = safe_divide(
            sum(1 for pair in correlation_matrix.strong_pairs if pair.agreement),
            len(correlation_matrix.pairs),
            0.0,
        )
        confidence = clamp(overall_score * (0.7 + strong_agreement * 0.3), 0.0, 1.0)

        emit_event(
            self.events, 'indicator_matrix_calculated', source='scoring',
            dominant_signal=dominant_signal.value, overall_score=overall_score,
            divergences=len(divergences),
        )

        return IndicatorMatrix(
            scores=scores,
            correlation_matrix=correlation_matrix,
            divergences=tuple(divergences),
            overall_score=overall_score,
            dominant_signal=dominant_signal,
            confidence=confidence,
        )

    def _neutral_matrix(self, reason: str) -> IndicatorMatrix:
        scores = tuple(self._neutral_score(name, reason) for name in INDICATOR_FAMILIES)
        return IndicatorMatrix(
            scores=scores,
            correlation_matrix=CorrelationMatrix(),
            divergences=(),
            overall_score=0.5,
            dominant_signal=Signal.NEUTRAL,
            confidence=0.0,
        )

    @staticmethod
    def _neutral_score(indicator: str, reason: str) -> IndicatorScore:
        return IndicatorScore(
            indicator=indicator,
            score=0.5,
            signal=Signal.NEUTRAL,
            strength=Strength.WEAK,
            confidence=0.3,
            reasoning=(reason,),
        )

    def _score_safely(self, name: str, scorer: Callable[[], IndicatorScore]) -> IndicatorScore:
        try:
            score = scorer()
        except Exception as e:
            logger.error(f"Error scoring {name}: {e}")
            return self._neutral_score(name, f"Scoring failed: {e}")

        if not (is_finite(score.score) and is_finite(score.confidence)):
            logger.warning(f"Non-finite {name} score discarded")
            return self._neutral_score(name, "Score was not finite; using neutral default")
        return score

    @staticmethod
    def _make_score(indicator: str, score: float, signal: Signal, strength: Strength,
                    confidence: float, reasoning: List[str]) -> IndicatorScore:
        return IndicatorScore(
            indicator=indicator,
            score=clamp(score, 0.0, 1.0),
            signal=signal,
            strength=strength,
            confidence=clamp(confidence, 0.0, 1.0),
            reasoning=tuple(reasoning),
        )

    def _calculate_overall(self, scores: Sequence[IndicatorScore]) -> Tuple[float, Signal]:
        weights = self.config.indicator_weights
        total_weight = 0.0
        weighted_sum = 0.0
        bullish = 0.0
        bearish = 0.0

        for item in scores:
            weight = weights.weight(item.indicator)
            total_weight += weight
            weighted_sum += item.score * weight
            if item.signal == Signal.BULLISH:
                bullish += item.score * weight
            elif item.signal == Signal.BEARISH:
                bearish += item.score * weight

        overall = clamp(safe_divide(weighted_sum, total_weight, 0.5), 0.0, 1.0)

        ratio = self.config.dominance_ratio
        if bullish > bearish and bullish >= bearish * ratio:
            dominant = Signal.BULLISH
        elif bearish > bullish and bearish >= bullish * ratio:
            dominant = Signal.BEARISH
        else:
            dominant = Signal.NEUTRAL
        return overall, dominant

    @staticmethod
    def _boost_for_divergence(indicator: str, signal: Signal, score: float,
                              divergences: Sequence[Divergence], reasoning: List[str],
                              reported: Optional[Signal] = None) -> float:
        if signal == Signal.NEUTRAL:
            return score
        matching = [d for d in divergences if d.indicator == indicator and d.type == signal]
        if matching or reported == signal:
            boost = DIVERGENCE_BOOST.get(indicator, 1.2)
            reasoning.append(f"{signal.value.capitalize()} divergence confirms signal (x{boost})")
            return min(1.0, score * boost)
        return score

    # ------------------------------------------------------------------
    # Family scorers
    # ------------------------------------------------------------------

    def score_rsi(self, current: IndicatorSample, history: Sequence[IndicatorSample],
                  thresholds: AdaptiveThresholds, divergences: Sequence[Divergence] = ()) -> IndicatorScore:
        if not is_finite(current.rsi):
            logger.warning(f"Non-finite RSI reading {current.rsi}; scoring neutral")
            return self._neutral_score('rsi', "RSI reading is not finite")
        recent = [s.rsi for s in history[-10:] if is_finite(s.rsi)]
        rsi = float(current.rsi)
        std = sample_std(recent)
        lower_bound, upper_bound = RSI_HARD_BOUNDS

        # Volatile RSI histories need deeper excursions before they count
        widening = min(10.0, std * 0.25)
        oversold = clamp(thresholds.rsi.oversold - widening, lower_bound, upper_bound)
        overbought = clamp(thresholds.rsi.overbought + widening, lower_bound, upper_bound)
        neutral_low, neutral_high = thresholds.rsi.neutral

        reasoning = [f"RSI {rsi:.1f} against adaptive band {oversold:.1f}/{overbought:.1f}"]

        if rsi < oversold:
            depth = min(1.0, safe_divide(oversold - rsi, oversold))
            score = 0.8 + depth * 0.2
            signal = Signal.BULLISH
            strength = Strength.STRONG if rsi < 20 else Strength.MODERATE
            reasoning.append("Oversold")
        elif rsi > overbought:
            depth = min(1.0, safe_divide(rsi - overbought, 100.0 - overbought))
            score = 0.8 + depth * 0.2
            signal = Signal.BEARISH
            strength = Strength.STRONG if rsi > 80 else Strength.MODERATE
            reasoning.append("Overbought")
        elif neutral_low <= rsi <= neutral_high:
            momentum = (recent[-1] - recent[-3]) / 2.0 if len(recent) >= 3 else 0.0
            if abs(momentum) > 5:
                signal = Signal.BULLISH if momentum > 0 else Signal.BEARISH
                score = min(0.6, abs(momentum) / 10.0)
                reasoning.append(f"Neutral zone with momentum {momentum:+.1f}")
            else:
                signal = Signal.NEUTRAL
                score = 0.3
                reasoning.append("Neutral zone, flat momentum")
            strength = Strength.WEAK
        else:
            signal = Signal.BULLISH if rsi < neutral_low else Signal.BEARISH
            score = 0.5
            strength = Strength.WEAK
            reasoning.append(f"Leaning {signal.value} outside neutral band")

        score = self._boost_for_divergence('rsi', signal, score, divergences, reasoning)
        confidence = min(1.0, score * (1.0 - std / 100.0))
        return self._make_score('rsi', score, signal, strength, confidence, reasoning)

    def score_wave_trend(self, current: IndicatorSample, history: Sequence[IndicatorSample],
                         thresholds: AdaptiveThresholds, divergences: Sequence[Divergence] = ()) -> IndicatorScore:
        wt = current.wave_trend
        if not (is_finite(wt.wt1) and is_finite(wt.wt2)):
            logger.warning(f"Non-finite WaveTrend reading {wt.wt1}/{wt.wt2}; scoring neutral")
            return self._neutral_score('wave_trend', "WaveTrend reading is not finite")
        spread = abs(wt.wt1 - wt.wt2)
        levels = thresholds.wave_trend
        reasoning = [f"WT1 {wt.wt1:.1f} / WT2 {wt.wt2:.1f} ({wt.signal.value})"]

        if wt.signal == WaveSignal.BUY:
            signal = Signal.BULLISH
            score = 0.7 + min(0.3, spread / 100.0)
            strength = Strength.STRONG if wt.wt2 <= -levels.extreme_level else Strength.MODERATE
            if wt.wt2 < levels.buy_threshold:
                bonus = (abs(wt.wt2) - abs(levels.buy_threshold)) / 40.0 * 0.2
                score += max(0.0, bonus)
                reasoning.append("Buy cross below adaptive buy threshold")
        elif wt.signal == WaveSignal.SELL:
            signal = Signal.BEARISH
            score = 0.7 + min(0.3, spread / 100.0)
            strength = Strength.STRONG if wt.wt2 >= levels.extreme_level else Strength.MODERATE
            if wt.wt2 > levels.sell_threshold:
                bonus = (abs(wt.wt2) - abs(levels.sell_threshold)) / 40.0 * 0.2
                score += max(0.0, bonus)
                reasoning.append("Sell cross above adaptive sell threshold")
        else:
            signal = Signal.NEUTRAL
            score = 0.2 if spread < 10 else 0.4
            strength = Strength.WEAK
            reasoning.append("No crossover")

        score = self._boost_for_divergence(
            'wave_trend', signal, min(1.0, score), divergences, reasoning, reported=wt.divergence
        )

        recent_signals = [s.wave_trend.signal for s in history[-5:]]
        consistency = consistency_ratio(recent_signals, wt.signal)
        confidence = min(1.0, spread / 100.0) * (0.7 + consistency * 0.3)
        return self._make_score('wave_trend', score, signal, strength, confidence, reasoning)

    def score_pvt(self, current: IndicatorSample, history: Sequence[IndicatorSample],
                  divergences: Sequence[Divergence] = ()) -> IndicatorScore:
        if not is_finite(current.pvt):
            logger.warning(f"Non-finite PVT reading {current.pvt}; scoring neutral")
            return self._neutral_score('pvt', "PVT reading is not finite")
        values = [s.pvt for s in history[-10:] if is_finite(s.pvt)]
        if len(values) < 5:
            return self._make_score('pvt', 0.3, Signal.NEUTRAL, Strength.WEAK, 0.5,
                                    ["Not enough PVT samples for a trend"])

        scale = safe_mean([abs(v) for v in values], 0.0)
        trend = safe_divide(linear_slope(values) * len(values), scale, 0.0)
        momentum = safe_divide(values[-1] - values[-3], scale, 0.0)
        reasoning = [f"PVT trend {trend:+.3f}, momentum {momentum:+.3f}"]

        if trend > 0.1 or trend < -0.1:
            signal = Signal.BULLISH if trend > 0 else Signal.BEARISH
            score = 0.6 + min(0.4, abs(trend) / 0.5)
            strength = Strength.STRONG if abs(trend) > 0.3 else Strength.MODERATE
            if abs(momentum) > 0.1 and np.sign(momentum) == np.sign(trend):
                score += min(0.2, abs(momentum) / 0.5)
                reasoning.append("Momentum confirms volume trend")
        else:
            signal = Signal.NEUTRAL
            score = 0.3
            strength = Strength.WEAK
            reasoning.append("Flat volume-price trend")

        score = self._boost_for_divergence('pvt', signal, min(1.0, score), divergences, reasoning)
        confidence = min(1.0, abs(trend) * 2.0)
        return self._make_score('pvt', score, signal, strength, confidence, reasoning)

    def score_momentum(self, current: IndicatorSample, history: Sequence[IndicatorSample]) -> IndicatorScore:
        recent_states = [s.momentum for s in history[-5:]]
        consistency = consistency_ratio(recent_states, current.momentum)
        direction = _signal_from_trend(current.trend)

        if current.momentum == MomentumState.STRONG:
            score = 0.8 + consistency * 0.2
            signal = direction
            strength = Strength.STRONG
        elif current.momentum == MomentumState.WEAK:
            score = 0.3
            signal = Signal.NEUTRAL
            strength = Strength.WEAK
        else:
            score = 0.5
            signal = Signal.NEUTRAL
            strength = Strength.MODERATE

        reasoning = [f"Momentum {current.momentum.value}, {consistency:.0%} consistent over last {len(recent_states)}"]
        confidence = 0.5 + consistency * 0.5
        return self._make_score('momentum', score, signal, strength, confidence, reasoning)

    def score_trend(self, current: IndicatorSample, history: Sequence[IndicatorSample],
                    candles: Sequence[Candle] = ()) -> IndicatorScore:
        recent_trends = [s.trend for s in history[-5:]]
        consistency = consistency_ratio(recent_trends, current.trend)
        signal = _signal_from_trend(current.trend)

        # Price fit quality stands in for trend strength when candles are available
        closes = [c.close for c in candles[-20:]]
        if len(closes) >= 5:
            slope, r_squared = trend_fit(closes)
            agrees = (slope > 0 and signal == Signal.BULLISH) or (slope < 0 and signal == Signal.BEARISH)
            strength_value = r_squared if agrees else r_squared * 0.5
        else:
            strength_value = consistency_ratio([s.trend for s in history[-10:]], current.trend)

        if signal == Signal.NEUTRAL:
            score = 0.2
            strength = Strength.WEAK
        else:
            score = 0.7 + strength_value * 0.3
            strength = Strength.STRONG if strength_value > 0.7 else (
                Strength.MODERATE if strength_value > 0.4 else Strength.WEAK
            )

        score *= 0.7 + consistency * 0.3
        reasoning = [f"Trend {current.trend.value}, strength {strength_value:.2f}, consistency {consistency:.0%}"]
        confidence = 0.4 + consistency * 0.6
        return self._make_score('trend', score, signal, strength, confidence, reasoning)

    def score_volume(self, candles: Sequence[Candle], thresholds: AdaptiveThresholds) -> IndicatorScore:
        if len(candles) < VOLUME_LOOKBACK:
            return self._make_score('volume', 0.3, Signal.NEUTRAL, Strength.WEAK, 0.3,
                                    ["Insufficient volume data"])

        window = list(candles[-VOLUME_LOOKBACK:])
        volumes = [c.volume for c in window]
        baseline = safe_mean(volumes[:10], 0.0)
        recent = safe_mean(volumes[10:], 0.0)
        spike = safe_divide(volumes[-1], baseline, 1.0)
        volume_trend = safe_divide(recent - baseline, baseline, 0.0)
        price_change = window[-1].close - window[-2].close
        direction = Signal.BULLISH if price_change > 0 else Signal.BEARISH if price_change < 0 else Signal.NEUTRAL

        spike_threshold = thresholds.volume.spike_threshold
        low_threshold = thresholds.volume.low_volume_threshold
        reasoning = [f"Volume ratio {spike:.2f} (spike at {spike_threshold:.2f})"]

        if spike > spike_threshold:
            score = 0.6 + min(0.4, (spike - spike_threshold) / 2.0)
            signal = direction
            strength = Strength.STRONG if spike > spike_threshold * 1.5 else Strength.MODERATE
            reasoning.append(f"Volume spike on {direction.value} candle")
        elif spike < low_threshold:
            score = 0.3
            signal = Signal.NEUTRAL
            strength = Strength.WEAK
            reasoning.append("Thin volume")
        elif volume_trend > 0.1:
            score = 0.5 + min(0.3, volume_trend / 0.3)
            signal = direction
            strength = Strength.MODERATE
            reasoning.append(f"Rising volume ({volume_trend:+.0%})")
        elif volume_trend < -0.1:
            score = 0.4
            signal = Signal.NEUTRAL
            strength = Strength.WEAK
            reasoning.append(f"Declining volume ({volume_trend:+.0%})")
        else:
            score = 0.4
            signal = Signal.NEUTRAL
            strength = Strength.WEAK

        price_changes = np.diff([c.close for c in window])
        volume_changes = np.diff(volumes)
        pv_correlation = pearson(price_changes, volume_changes)
        if pv_correlation > 0.5:
            score *= 1.0 + abs(pv_correlation) * 0.2
            reasoning.append(f"Price/volume correlation {pv_correlation:.2f}")

        confidence = min(1.0, spike / 3.0)
        return self._make_score('volume', score, signal, strength, confidence, reasoning)

    # ------------------------------------------------------------------
    # Correlation and divergence
    # ------------------------------------------------------------------

    def _classify_correlation(self, value: float) -> Strength:
        magnitude = abs(value)
        if magnitude > self.config.strong_correlation:
            return Strength.STRONG
        if magnitude > self.config.moderate_correlation:
            return Strength.MODERATE
        return Strength.WEAK

    def calculate_correlation_matrix(self, history: Sequence[IndicatorSample]) -> CorrelationMatrix:
        """Pearson correlation between indicator series over the lookback window."""
        window = list(history)[-self.config.correlation_lookback:]
        if len(window) < self.config.min_data_points:
            return CorrelationMatrix()

        frame = indicators_to_frame(window).replace([np.inf, -np.inf], np.nan)
        corr = frame[CORRELATION_SERIES].corr()
        corr = pd.DataFrame(np.nan_to_num(corr.values, nan=0.0), index=corr.index, columns=corr.columns)

        pairs = []
        for a, b in combinations(CORRELATION_SERIES, 2):
            value = float(np.clip(corr.loc[a, b], -1.0, 1.0))
            pairs.append(CorrelationPair(
                a=a,
                b=b,
                correlation=value,
                strength=self._classify_correlation(value),
                agreement=value > 0,
            ))

        average = float(np.mean([abs(p.correlation) for p in pairs])) if pairs else 0.0
        return CorrelationMatrix(
            pairs=tuple(pairs),
            average_correlation=average,
            strong_pairs=tuple(p for p in pairs if p.strength == Strength.STRONG),
            weak_pairs=tuple(p for p in pairs if p.strength == Strength.WEAK),
        )

    def detect_divergences(self, history: Sequence[IndicatorSample],
                           candles: Sequence[Candle]) -> List[Divergence]:
        """Compare the last two price extrema with the indicator at the same points."""
        lookback = min(self.config.divergence_lookback, len(history), len(candles))
        spacing = self.config.divergence_min_spacing
        if lookback < 2 * spacing + 3:
            return []

        prices = np.array([c.close for c in candles[-lookback:]], dtype=float)
        series = {
            'rsi': np.array([s.rsi for s in history[-lookback:]], dtype=float),
            'wave_trend': np.array([s.wave_trend.wt1 for s in history[-lookback:]], dtype=float),
            'pvt': np.array([s.pvt for s in history[-lookback:]], dtype=float),
        }
        if not np.all(np.isfinite(prices)):
            return []

        lows = argrelextrema(prices, np.less, order=spacing)[0]
        highs = argrelextrema(prices, np.greater, order=spacing)[0]

        divergences = []
        for indicator, values in series.items():
            if not np.all(np.isfinite(values)):
                continue
            found = self._compare_extrema(indicator, prices, values, lows, spacing, Signal.BULLISH)
            if found is not None:
                divergences.append(found)
            found = self._compare_extrema(indicator, prices, values, highs, spacing, Signal.BEARISH)
            if found is not None:
                divergences.append(found)
        return divergences

    def _compare_extrema(self, indicator: str, prices: np.ndarray, values: np.ndarray,
                         points: np.ndarray, spacing: int, kind: Signal) -> Optional[Divergence]:
        if len(points) < 2:
            return None
        first, second = int(points[-2]), int(points[-1])

        def indicator_extreme(index: int) -> float:
            window = values[max(0, index - spacing):index + spacing + 1]
            return float(window.min() if kind == Signal.BULLISH else window.max())

        price_a, price_b = prices[first], prices[second]
        ind_a, ind_b = indicator_extreme(first), indicator_extreme(second)

        if kind == Signal.BULLISH:
            if not (price_b < price_a and ind_b > ind_a):
                return None
            price_action, indicator_action = "Lower low", "Higher low"
        else:
            if not (price_b > price_a and ind_b < ind_a):
                return None
            price_action, indicator_action = "Higher high", "Lower high"

        price_range = float(prices.max() - prices.min())
        indicator_range = float(values.max() - values.min())
        strength = clamp(
            0.5 * safe_divide(abs(price_b - price_a), price_range)
            + 0.5 * safe_divide(abs(ind_b - ind_a), indicator_range),
            0.0, 1.0,
        )
        if strength < self.config.min_divergence_strength:
            return None

        return Divergence(
            indicator=indicator,
            type=kind,
            strength=finite_or_default(strength, 0.0),
            price_action=f"{price_action} ({price_a:.2f} -> {price_b:.2f})",
            indicator_action=f"{indicator_action} ({ind_a:.2f} -> {ind_b:.2f})",
        )
