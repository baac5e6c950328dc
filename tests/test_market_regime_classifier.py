"""
Tests for market regime classification and session/volume helpers.
"""

import math
import unittest
from datetime import datetime, timedelta, timezone

from agents.market_regime_classifier import (
    MarketRegimeClassifier,
    classify_session,
    classify_volume_profile,
    session_activity,
)
from data.models import MarketActivity, MarketRegime, RegimeType, TradingSession, VolumeProfile, create_candle
from tests.market_data import START, make_candles, make_linear_candles


def candles_from_closes(closes, wick=0.2, volumes=None):
    candles = []
    previous = closes[0]
    for i, close in enumerate(closes):
        volume = volumes[i] if volumes is not None else 1000.0
        candles.append(create_candle(
            START + timedelta(hours=i), previous, max(previous, close) + wick, min(previous, close) - wick,
            close, volume,
        ))
        previous = close
    return candles


class TestMarketRegimeClassifier(unittest.TestCase):

    def setUp(self):
        self.classifier = MarketRegimeClassifier()

    def test_linear_trend_is_trending(self):
        regime = self.classifier.classify(make_linear_candles(60))
        self.assertEqual(regime.type, RegimeType.TRENDING)
        self.assertAlmostEqual(regime.strength, 1.0, places=6)
        self.assertGreater(regime.confidence, 0.9)

    def test_oscillation_is_ranging(self):
        closes = [100 + 2 * math.sin(i * 0.8) for i in range(50)]
        regime = self.classifier.classify(candles_from_closes(closes))
        self.assertEqual(regime.type, RegimeType.RANGING)

    def test_range_expansion_is_breakout(self):
        closes = [100 + math.sin(i * 0.8) for i in range(45)]
        closes += [closes[-1] + 3 * (k + 1) for k in range(5)]
        candles = candles_from_closes(closes[:45])
        previous = closes[44]
        for i, close in enumerate(closes[45:], start=45):
            candles.append(create_candle(START + timedelta(hours=i), previous, close + 1, previous - 1, close, 3000))
            previous = close

        regime = self.classifier.classify(candles)
        self.assertEqual(regime.type, RegimeType.BREAKOUT)

    def test_peak_is_reversal(self):
        closes = [100.0 + i for i in range(25)] + [124.0 - i for i in range(25)]
        regime = self.classifier.classify(candles_from_closes(closes))
        self.assertEqual(regime.type, RegimeType.REVERSAL)

    def test_duration_counts_repeated_regimes(self):
        candles = make_linear_candles(60)
        self.assertEqual(self.classifier.classify(candles).duration, 0)
        self.assertEqual(self.classifier.classify(candles).duration, 1)
        self.assertEqual(self.classifier.classify(candles).duration, 2)

        closes = [100 + 2 * math.sin(i * 0.8) for i in range(50)]
        self.assertEqual(self.classifier.classify(candles_from_closes(closes)).duration, 0)

    def test_insufficient_data_returns_default(self):
        with self.assertLogs('agents.market_regime_classifier', level='WARNING'):
            regime = self.classifier.classify(make_candles(10))
        self.assertEqual(regime, MarketRegime())

    def test_build_market_conditions(self):
        conditions = self.classifier.build_market_conditions(make_linear_candles(60))

        self.assertEqual(conditions.regime.type, RegimeType.TRENDING)
        self.assertGreater(conditions.trend_strength, 0.0)
        self.assertLessEqual(conditions.trend_strength, 1.0)
        self.assertTrue(math.isfinite(conditions.volatility))
        self.assertGreater(conditions.volatility, 0.0)
        self.assertEqual(conditions.time_of_day, TradingSession.LONDON)
        self.assertEqual(conditions.market_session, MarketActivity.ACTIVE)

    def test_explicit_session_is_kept(self):
        conditions = self.classifier.build_market_conditions(make_candles(40), TradingSession.ASIAN)
        self.assertEqual(conditions.time_of_day, TradingSession.ASIAN)
        self.assertEqual(conditions.market_session, MarketActivity.QUIET)


class TestSessionAndVolume(unittest.TestCase):

    def test_session_boundaries(self):
        day = datetime(2024, 1, 2)
        self.assertEqual(classify_session(day.replace(hour=3)), TradingSession.ASIAN)
        self.assertEqual(classify_session(day.replace(hour=8)), TradingSession.LONDON)
        self.assertEqual(classify_session(day.replace(hour=15)), TradingSession.NEWYORK)
        self.assertEqual(classify_session(day.replace(hour=22)), TradingSession.OVERLAP)

    def test_session_uses_utc(self):
        local = datetime(2024, 1, 2, 10, tzinfo=timezone(timedelta(hours=5)))
        self.assertEqual(classify_session(local), TradingSession.ASIAN)

    def test_session_activity(self):
        self.assertEqual(session_activity(TradingSession.ASIAN), MarketActivity.QUIET)
        self.assertEqual(session_activity(TradingSession.NEWYORK), MarketActivity.ACTIVE)

    def test_volume_profile(self):
        closes = [100.0] * 30
        self.assertEqual(classify_volume_profile(candles_from_closes(closes[:15])), VolumeProfile.MEDIUM)
        self.assertEqual(
            classify_volume_profile(candles_from_closes(closes, volumes=[1000.0] * 20 + [2000.0] * 10)),
            VolumeProfile.HIGH,
        )
        self.assertEqual(
            classify_volume_profile(candles_from_closes(closes, volumes=[1000.0] * 20 + [500.0] * 10)),
            VolumeProfile.LOW,
        )
        self.assertEqual(
            classify_volume_profile(candles_from_closes(closes, volumes=[1000.0] * 30)),
            VolumeProfile.MEDIUM,
        )


if __name__ == '__main__':
    unittest.main()
