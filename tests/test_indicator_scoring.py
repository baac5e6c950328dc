"""
Unit tests for the indicator scoring matrix
"""

import unittest
from datetime import datetime, timedelta

from agents.indicator_scoring import INDICATOR_FAMILIES, IndicatorScoringMatrix
from config.engine_config import ScoringConfig
from data.models import (
    AdaptiveThresholds,
    IndicatorSample,
    IndicatorScore,
    MomentumState,
    Signal,
    Strength,
    TrendDirection,
    WaveSignal,
    WaveTrendData,
    create_candle,
)
from utils.error_handling import InvalidConfigurationError
from utils.logging_utils import EventCollector
from tests.market_data import make_candles, make_indicator_history


def _sample(i, rsi=50.0, wt1=0.0, wt2=0.0, signal=WaveSignal.NEUTRAL, pvt=0.0,
            trend=TrendDirection.SIDEWAYS, momentum=MomentumState.NEUTRAL, volatility=0.2):
    return IndicatorSample(
        timestamp=datetime(2024, 1, 2) + timedelta(hours=i),
        rsi=rsi,
        wave_trend=WaveTrendData(wt1=wt1, wt2=wt2, signal=signal),
        pvt=pvt,
        trend=trend,
        momentum=momentum,
        volatility=volatility,
    )


def _score(indicator, value, signal):
    return IndicatorScore(indicator=indicator, score=value, signal=signal, strength=Strength.MODERATE,
                          confidence=0.5, reasoning=())


class TestIndicatorScoringMatrix(unittest.TestCase):

    def setUp(self):
        self.events = EventCollector()
        self.matrix = IndicatorScoringMatrix(events=self.events)
        self.candles = make_candles(80, seed=11)
        self.history = make_indicator_history(self.candles)

    def test_insufficient_history_returns_neutral_matrix(self):
        result = self.matrix.calculate_indicator_matrix(None, self.history[:5], self.candles[:5])
        self.assertEqual(result.dominant_signal, Signal.NEUTRAL)
        self.assertEqual(result.overall_score, 0.5)
        self.assertEqual(result.confidence, 0.0)
        self.assertTrue(result.correlation_matrix.is_empty)
        self.assertEqual([s.indicator for s in result.scores], INDICATOR_FAMILIES)
        for score in result.scores:
            self.assertEqual(score.score, 0.5)
            self.assertEqual(score.confidence, 0.3)

    def test_full_matrix_scores_every_family(self):
        result = self.matrix.calculate_indicator_matrix(None, self.history, self.candles)
        self.assertEqual([s.indicator for s in result.scores], INDICATOR_FAMILIES)
        for score in result.scores:
            self.assertGreaterEqual(score.score, 0.0)
            self.assertLessEqual(score.score, 1.0)
            self.assertGreaterEqual(score.confidence, 0.0)
            self.assertLessEqual(score.confidence, 1.0)
            self.assertTrue(score.reasoning)
        self.assertGreaterEqual(result.confidence, 0.0)
        self.assertLessEqual(result.confidence, 1.0)
        self.assertIn('indicator_matrix_calculated', self.events.names())

    def test_current_sample_not_duplicated(self):
        current = self.history[-1]
        with_current = self.matrix.calculate_indicator_matrix(current, self.history, self.candles)
        without_current = self.matrix.calculate_indicator_matrix(current, self.history[:-1], self.candles)
        self.assertEqual(with_current.overall_score, without_current.overall_score)

    def test_rsi_oversold_is_bullish(self):
        history = [_sample(i, rsi=45.0 + (i % 3)) for i in range(15)] + [_sample(15, rsi=12.0)]
        score = self.matrix.score_rsi(history[-1], history, AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.BULLISH)
        self.assertEqual(score.strength, Strength.STRONG)
        self.assertGreaterEqual(score.score, 0.8)

    def test_rsi_overbought_is_bearish(self):
        history = [_sample(i, rsi=55.0) for i in range(15)] + [_sample(15, rsi=78.0)]
        score = self.matrix.score_rsi(history[-1], history, AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.BEARISH)
        self.assertEqual(score.strength, Strength.MODERATE)

    def test_rsi_reads_against_adaptive_thresholds(self):
        history = [_sample(i, rsi=50.0) for i in range(15)] + [_sample(15, rsi=28.0)]
        base = self.matrix.score_rsi(history[-1], history, AdaptiveThresholds())
        stressed = AdaptiveThresholds()
        stressed.rsi.oversold = 20.0
        widened = self.matrix.score_rsi(history[-1], history, stressed)
        self.assertEqual(base.signal, Signal.BULLISH)
        self.assertGreater(base.score, widened.score)

    def test_wave_trend_buy_signal(self):
        current = _sample(0, wt1=-55.0, wt2=-70.0, signal=WaveSignal.BUY)
        score = self.matrix.score_wave_trend(current, [current], AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.BULLISH)
        self.assertGreaterEqual(score.score, 0.7)

    def test_wave_trend_reported_divergence_boosts(self):
        plain = _sample(0, wt1=-20.0, wt2=-30.0, signal=WaveSignal.BUY)
        diverging = IndicatorSample(
            timestamp=plain.timestamp, rsi=50.0,
            wave_trend=WaveTrendData(wt1=-20.0, wt2=-30.0, signal=WaveSignal.BUY, divergence=Signal.BULLISH),
            pvt=0.0,
        )
        base = self.matrix.score_wave_trend(plain, [plain], AdaptiveThresholds())
        boosted = self.matrix.score_wave_trend(diverging, [diverging], AdaptiveThresholds())
        self.assertGreater(boosted.score, base.score)
        self.assertLessEqual(boosted.score, 1.0)

    def test_pvt_rising_is_bullish(self):
        history = [_sample(i, pvt=1000.0 + 200.0 * i) for i in range(12)]
        score = self.matrix.score_pvt(history[-1], history)
        self.assertEqual(score.signal, Signal.BULLISH)

    def test_trend_sideways_is_neutral(self):
        history = [_sample(i) for i in range(12)]
        score = self.matrix.score_trend(history[-1], history)
        self.assertEqual(score.signal, Signal.NEUTRAL)

    def test_volume_spike_follows_candle_direction(self):
        start = datetime(2024, 1, 2)
        candles = [create_candle(start + timedelta(hours=i), 100, 101, 99, 100, 1000) for i in range(19)]
        candles.append(create_candle(start + timedelta(hours=19), 100, 104, 99.5, 103, 5000))
        score = self.matrix.score_volume(candles, AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.BULLISH)
        self.assertGreaterEqual(score.score, 0.6)

    def test_volume_needs_twenty_candles(self):
        score = self.matrix.score_volume(self.candles[:10], AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.NEUTRAL)
        self.assertEqual(score.score, 0.3)

    def test_correlation_matrix_is_symmetric_pairs(self):
        correlation = self.matrix.calculate_correlation_matrix(self.history)
        self.assertEqual(len(correlation.pairs), 10)
        for pair in correlation.pairs:
            self.assertGreaterEqual(pair.correlation, -1.0)
            self.assertLessEqual(pair.correlation, 1.0)
            self.assertEqual(pair.agreement, pair.correlation > 0)
        self.assertGreaterEqual(correlation.average_correlation, 0.0)
        self.assertEqual(correlation.get('wt1', 'rsi'), correlation.get('rsi', 'wt1'))

    def test_constant_series_give_zero_correlation(self):
        history = [_sample(i) for i in range(20)]
        correlation = self.matrix.calculate_correlation_matrix(history)
        for pair in correlation.pairs:
            self.assertEqual(pair.correlation, 0.0)

    def test_bullish_divergence_detected(self):
        # Price: lower low at index 15; RSI: higher low at the same point
        prices = [110, 108, 106, 104, 102, 100, 102, 104, 106, 108, 106, 104, 102, 100, 98, 96,
                  98, 100, 102, 104]
        rsis = [50, 45, 40, 35, 30, 25, 30, 35, 40, 45, 42, 40, 38, 36, 34, 32, 36, 40, 44, 48]
        start = datetime(2024, 1, 2)
        candles = [create_candle(start + timedelta(hours=i), p, p + 0.5, p - 0.5, p, 1000)
                   for i, p in enumerate(prices)]
        history = [_sample(i, rsi=r) for i, r in enumerate(rsis)]
        divergences = self.matrix.detect_divergences(history, candles)
        rsi_divergences = [d for d in divergences if d.indicator == 'rsi']
        self.assertEqual(len(rsi_divergences), 1)
        self.assertEqual(rsi_divergences[0].type, Signal.BULLISH)
        self.assertGreater(rsi_divergences[0].strength, 0.0)

    def test_short_history_has_no_divergence(self):
        self.assertEqual(self.matrix.detect_divergences(self.history[:5], self.candles[:5]), [])

    def test_dominant_signal_requires_margin(self):
        bullish = self.matrix.score_rsi(_sample(1, rsi=10.0), [_sample(1, rsi=10.0)], AdaptiveThresholds())
        overall, dominant = self.matrix._calculate_overall([bullish])
        self.assertEqual(dominant, Signal.BULLISH)
        self.assertGreater(overall, 0.0)

    def test_dominance_margin_is_inclusive(self):
        matrix = IndicatorScoringMatrix(ScoringConfig(dominance_ratio=2.0))
        bullish = _score('rsi', 0.8, Signal.BULLISH)
        bearish = _score('rsi', 0.4, Signal.BEARISH)
        self.assertEqual(matrix._calculate_overall([bullish, bearish])[1], Signal.BULLISH)
        self.assertEqual(matrix._calculate_overall([_score('rsi', 0.39, Signal.BULLISH), bearish])[1],
                         Signal.NEUTRAL)

    def test_tied_sides_stay_neutral(self):
        matrix = IndicatorScoringMatrix(ScoringConfig(dominance_ratio=1.0))
        tied = [_score('rsi', 0.6, Signal.BULLISH), _score('rsi', 0.6, Signal.BEARISH)]
        self.assertEqual(matrix._calculate_overall(tied)[1], Signal.NEUTRAL)

    def test_nan_rsi_scores_neutral(self):
        history = [_sample(i, rsi=55.0) for i in range(15)] + [_sample(15, rsi=float('nan'))]
        score = self.matrix.score_rsi(history[-1], history, AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.NEUTRAL)
        self.assertEqual(score.score, 0.5)
        self.assertEqual(score.reasoning, ("RSI reading is not finite",))

    def test_nan_wave_trend_scores_neutral(self):
        current = _sample(0, wt1=float('nan'), wt2=-70.0, signal=WaveSignal.BUY)
        score = self.matrix.score_wave_trend(current, [current], AdaptiveThresholds())
        self.assertEqual(score.signal, Signal.NEUTRAL)
        self.assertEqual(score.reasoning, ("WaveTrend reading is not finite",))

    def test_nan_pvt_scores_neutral(self):
        history = [_sample(i, pvt=1000.0 + 200.0 * i) for i in range(11)] + [_sample(11, pvt=float('inf'))]
        score = self.matrix.score_pvt(history[-1], history)
        self.assertEqual(score.signal, Signal.NEUTRAL)
        self.assertEqual(score.reasoning, ("PVT reading is not finite",))

    def test_nan_readings_do_not_vote(self):
        history = list(self.history)
        last = history[-1]
        history[-1] = IndicatorSample(
            timestamp=last.timestamp,
            rsi=float('nan'),
            wave_trend=WaveTrendData(wt1=float('nan'), wt2=float('nan'), signal=WaveSignal.SELL),
            pvt=float('nan'),
            trend=TrendDirection.SIDEWAYS,
            momentum=MomentumState.NEUTRAL,
            volatility=last.volatility,
        )
        result = self.matrix.calculate_indicator_matrix(None, history, self.candles)
        by_name = {s.indicator: s for s in result.scores}
        for name in ('rsi', 'wave_trend', 'pvt'):
            self.assertEqual(by_name[name].signal, Signal.NEUTRAL, name)

    def test_invalid_config_falls_back_to_defaults(self):
        matrix = IndicatorScoringMatrix(ScoringConfig(strong_correlation=1.5))
        self.assertEqual(matrix.config, ScoringConfig())

    def test_update_config_rejects_unknown_keys(self):
        with self.assertRaises(InvalidConfigurationError):
            self.matrix.update_config(strong_corr=0.8)

    def test_update_config_applies_valid_values(self):
        self.matrix.update_config(dominance_ratio=1.5)
        self.assertEqual(self.matrix.config.dominance_ratio, 1.5)
        self.matrix.update_config(dominance_ratio=0.5)
        self.assertEqual(self.matrix.config.dominance_ratio, 1.5)


if __name__ == '__main__':
    unittest.main()
