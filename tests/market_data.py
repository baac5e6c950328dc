"""
Deterministic synthetic market data for tests.
"""

from datetime import datetime, timedelta
from typing import List, Optional

import numpy as np
import pandas as pd

from data.models import (
    Candle,
    IndicatorSample,
    MarketActivity,
    MarketConditions,
    MarketRegime,
    MomentumState,
    RegimeType,
    TradingSession,
    TrendDirection,
    VolumeProfile,
    WaveSignal,
    WaveTrendData,
    create_candle,
)

START = datetime(2024, 1, 2, 0, 0)


def make_candles(n: int = 120, drift: float = 0.0005, volatility: float = 0.01, seed: int = 7,
                 start_price: float = 100.0, base_volume: float = 1000.0,
                 start: datetime = START, interval: timedelta = timedelta(hours=1),
                 symbol: str = "TEST") -> List[Candle]:
    """Geometric random walk with consistent OHLC and positive volume."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(drift, volatility, n)
    wicks = np.abs(rng.normal(0.0, volatility / 2, (n, 2)))
    volumes = base_volume * (1.0 + 0.2 * np.abs(rng.normal(0.0, 1.0, n)))

    candles = []
    price = start_price
    for i in range(n):
        open_price = price
        close = open_price * float(np.exp(returns[i]))
        high = max(open_price, close) * (1 + wicks[i, 0])
        low = min(open_price, close) * (1 - wicks[i, 1])
        candles.append(create_candle(start + interval * i, open_price, high, low, close, volumes[i],
                                     symbol=symbol))
        price = close
    return candles


def make_linear_candles(n: int = 60, start_price: float = 100.0, step: float = 0.5,
                        volume: float = 1000.0, start: datetime = START) -> List[Candle]:
    """Straight-line closes with a small fixed wick."""
    candles = []
    for i in range(n):
        open_price = start_price + step * (i - 1) if i else start_price
        close = start_price + step * i
        high = max(open_price, close) + 0.2
        low = min(open_price, close) - 0.2
        candles.append(create_candle(start + timedelta(hours=i), open_price, high, low, close, volume))
    return candles


def make_indicator_history(candles: List[Candle]) -> List[IndicatorSample]:
    """One indicator sample per candle derived from the candle closes."""
    closes = pd.Series([c.close for c in candles], dtype=float)
    volumes = pd.Series([c.volume for c in candles], dtype=float)

    delta = closes.diff()
    gain = delta.clip(lower=0).rolling(window=14, min_periods=1).mean()
    loss = (-delta.clip(upper=0)).rolling(window=14, min_periods=1).mean()
    rsi = (100 - 100 / (1 + gain / loss.replace(0, np.nan))).fillna(50.0).clip(1, 99)

    mean = closes.rolling(window=10, min_periods=1).mean()
    std = closes.rolling(window=10, min_periods=2).std().fillna(1.0).replace(0, 1.0)
    wt1 = (60 * np.tanh((closes - mean) / std)).fillna(0.0)
    wt2 = wt1.rolling(window=4, min_periods=1).mean()

    returns = (closes / closes.shift(1) - 1).fillna(0.0)
    pvt = (returns * volumes).cumsum()
    volatility = (returns.rolling(window=10, min_periods=2).std() * np.sqrt(252)).fillna(0.0)
    momentum = (closes / closes.shift(5) - 1).fillna(0.0)

    history = []
    for i, candle in enumerate(candles):
        if i > 0 and wt1[i - 1] <= wt2[i - 1] and wt1[i] > wt2[i] and wt2[i] < 0:
            signal = WaveSignal.BUY
        elif i > 0 and wt1[i - 1] >= wt2[i - 1] and wt1[i] < wt2[i] and wt2[i] > 0:
            signal = WaveSignal.SELL
        else:
            signal = WaveSignal.NEUTRAL

        if closes[i] > mean[i] * 1.002:
            trend = TrendDirection.BULLISH
        elif closes[i] < mean[i] * 0.998:
            trend = TrendDirection.BEARISH
        else:
            trend = TrendDirection.SIDEWAYS

        if abs(momentum[i]) > 0.02:
            momentum_state = MomentumState.STRONG
        elif abs(momentum[i]) < 0.005:
            momentum_state = MomentumState.WEAK
        else:
            momentum_state = MomentumState.NEUTRAL

        history.append(IndicatorSample(
            timestamp=candle.timestamp,
            rsi=float(rsi[i]),
            wave_trend=WaveTrendData(wt1=float(wt1[i]), wt2=float(wt2[i]), signal=signal),
            pvt=float(pvt[i]),
            trend=trend,
            momentum=momentum_state,
            volatility=float(volatility[i]),
        ))
    return history


def make_conditions(volatility: float = 0.2, regime: RegimeType = RegimeType.RANGING,
                    session: Optional[TradingSession] = None,
                    volume_profile: VolumeProfile = VolumeProfile.MEDIUM,
                    activity: Optional[MarketActivity] = None,
                    strength: float = 0.5, confidence: float = 0.5) -> MarketConditions:
    return MarketConditions(
        volatility=volatility,
        regime=MarketRegime(type=regime, strength=strength, duration=5, confidence=confidence),
        trend_strength=0.0,
        volume_profile=volume_profile,
        time_of_day=session,
        market_session=activity,
    )


def stress_conditions() -> MarketConditions:
    return make_conditions(volatility=0.6, regime=RegimeType.BREAKOUT, session=TradingSession.OVERLAP,
                           volume_profile=VolumeProfile.HIGH, activity=MarketActivity.ACTIVE)


def calm_conditions() -> MarketConditions:
    return make_conditions(volatility=0.08, regime=RegimeType.RANGING, session=TradingSession.ASIAN,
                           volume_profile=VolumeProfile.LOW, activity=MarketActivity.QUIET)
