import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

import numpy as np

from config.constants import REFERENCE_VOLATILITY, TRADING_PERIODS_PER_YEAR
from data.models import (
    Candle,
    MarketActivity,
    MarketConditions,
    MarketRegime,
    RegimeType,
    TradingSession,
    VolumeProfile,
)
from utils.error_handling import clamp, safe_divide
from utils.general_utils import annualized_volatility, safe_mean, trend_fit

logger = logging.getLogger(__name__)


def classify_session(timestamp: Optional[datetime]) -> TradingSession:
    """Trading session from the UTC hour of ``timestamp``."""
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    elif timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)

    hour = timestamp.hour
    if hour < 8:
        return TradingSession.ASIAN
    if hour < 13:
        return TradingSession.LONDON
    if hour < 21:
        return TradingSession.NEWYORK
    return TradingSession.OVERLAP


def session_activity(session: TradingSession) -> MarketActivity:
    return MarketActivity.QUIET if session == TradingSession.ASIAN else MarketActivity.ACTIVE


def classify_volume_profile(candles: Sequence[Candle]) -> VolumeProfile:
    """Recent 10-candle volume against the 20 candles before it."""
    if len(candles) < 20:
        return VolumeProfile.MEDIUM

    recent = safe_mean([c.volume for c in candles[-10:]])
    historical = safe_mean([c.volume for c in candles[-30:-10]])
    ratio = safe_divide(recent, historical, 1.0)

    if ratio > 1.5:
        return VolumeProfile.HIGH
    if ratio < 0.7:
        return VolumeProfile.LOW
    return VolumeProfile.MEDIUM


class MarketRegimeClassifier:
    """
    Classifies the current regime from candle closes.

    Trending vs ranging comes from a straight-line fit over the lookback
    window. A recent range expansion with a close outside the prior range is
    a breakout; opposite-sign fits over the two halves of the window is a
    reversal. Duration counts consecutive calls returning the same type.
    """

    def __init__(self, lookback_period: int = 50, min_data_points: int = 20,
                 trend_r_squared: float = 0.6, min_trend_move: float = 0.02,
                 breakout_ratio: float = 1.8):
        self.lookback_period = lookback_period
        self.min_data_points = min_data_points
        self.trend_r_squared = trend_r_squared
        self.min_trend_move = min_trend_move
        self.breakout_ratio = breakout_ratio
        self._last_type: Optional[RegimeType] = None
        self._duration = 0

    def classify(self, candles: Sequence[Candle]) -> MarketRegime:
        candles = list(candles)[-self.lookback_period:]
        if len(candles) < self.min_data_points:
            logger.warning(
                f"Insufficient data for regime classification. Required: {self.min_data_points}, Got: {len(candles)}"
            )
            return MarketRegime()

        closes = np.array([c.close for c in candles], dtype=float)
        normalized = closes / closes[0] if closes[0] > 0 else closes
        slope, r_squared = trend_fit(normalized)
        total_move = slope * (len(normalized) - 1)

        regime_type, strength, confidence = self._classify_features(candles, normalized, total_move, r_squared)

        if regime_type == self._last_type:
            self._duration += 1
        else:
            self._duration = 0
            self._last_type = regime_type

        return MarketRegime(
            type=regime_type,
            strength=clamp(strength, 0.0, 1.0),
            duration=self._duration,
            confidence=clamp(confidence, 0.0, 1.0),
        )

    def _classify_features(self, candles, normalized, total_move, r_squared):
        breakout = self._breakout_ratio(candles)
        if breakout is not None and breakout >= self.breakout_ratio:
            return RegimeType.BREAKOUT, breakout / (2 * self.breakout_ratio), 0.6

        half = len(normalized) // 2
        first_slope, first_r2 = trend_fit(normalized[:half])
        second_slope, second_r2 = trend_fit(normalized[half:])
        half_move = self.min_trend_move / 2
        if (
            first_slope * second_slope < 0
            and min(first_r2, second_r2) >= 0.5
            and abs(first_slope) * half >= half_move
            and abs(second_slope) * (len(normalized) - half) >= half_move
        ):
            return RegimeType.REVERSAL, (first_r2 + second_r2) / 2, 0.55

        if r_squared >= self.trend_r_squared and abs(total_move) >= self.min_trend_move:
            return RegimeType.TRENDING, r_squared, 0.5 + r_squared / 2

        return RegimeType.RANGING, 1.0 - r_squared, 0.5 + (1.0 - r_squared) / 4

    @staticmethod
    def _breakout_ratio(candles: Sequence[Candle]) -> Optional[float]:
        """Recent 5-candle average range over the earlier average, if price left the prior range."""
        if len(candles) < 15:
            return None
        prior, recent = candles[:-5], candles[-5:]
        prior_high = max(c.high for c in prior)
        prior_low = min(c.low for c in prior)
        last_close = recent[-1].close
        if prior_low <= last_close <= prior_high:
            return None
        ratio = safe_divide(safe_mean([c.range for c in recent]), safe_mean([c.range for c in prior]), 0.0)
        return ratio

    def build_market_conditions(self, candles: Sequence[Candle],
                                time_of_day: Optional[TradingSession] = None) -> MarketConditions:
        """Full ``MarketConditions`` for the latest candle."""
        candles = list(candles)
        regime = self.classify(candles)

        closes = [c.close for c in candles[-self.lookback_period:]]
        volatility = annualized_volatility(closes, TRADING_PERIODS_PER_YEAR, REFERENCE_VOLATILITY)
        trend_strength = 0.0
        if len(closes) >= 3 and closes[0] > 0:
            slope, r_squared = trend_fit(np.asarray(closes) / closes[0])
            # Signed, in [-1, 1]
            trend_strength = float(np.tanh(slope * (len(closes) - 1) * 10)) * r_squared

        if time_of_day is None:
            time_of_day = classify_session(candles[-1].timestamp if candles else None)

        return MarketConditions(
            volatility=volatility,
            regime=regime,
            trend_strength=trend_strength,
            volume_profile=classify_volume_profile(candles),
            time_of_day=time_of_day,
            market_session=session_activity(time_of_day),
        )
