from copy import deepcopy
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config.constants import (
    CONFIDENCE_FLOORS,
    RSI_NEUTRAL_BAND,
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    VOLATILITY_BANDS,
    VOLUME_THRESHOLDS,
    WAVE_TREND_THRESHOLDS,
)
from config.engine_config import ConfidenceWeights


class Signal(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Strength(Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class WaveSignal(Enum):
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"


class TrendDirection(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    SIDEWAYS = "sideways"


class MomentumState(Enum):
    STRONG = "strong"
    WEAK = "weak"
    NEUTRAL = "neutral"


class RegimeType(Enum):
    TRENDING = "trending"
    RANGING = "ranging"
    BREAKOUT = "breakout"
    REVERSAL = "reversal"


class VolumeProfile(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TradingSession(Enum):
    ASIAN = "asian"
    LONDON = "london"
    NEWYORK = "newyork"
    OVERLAP = "overlap"


class MarketActivity(Enum):
    ACTIVE = "active"
    QUIET = "quiet"


class ZoneType(Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _enum_value(value) -> Optional[str]:
    if value is None:
        return None
    return value.value if isinstance(value, Enum) else str(value)


@dataclass(frozen=True)
class Candle:
    symbol: str
    timeframe: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low


def create_candle(
    timestamp: datetime,
    open_price: float,
    high: float,
    low: float,
    close: float,
    volume: float,
    symbol: str = "UNKNOWN",
    timeframe: str = "1h",
) -> Candle:

    return Candle(
        symbol=symbol,
        timeframe=timeframe,
        timestamp=timestamp,
        open=float(open_price),
        high=float(high),
        low=float(low),
        close=float(close),
        volume=float(volume),
    )


def validate_candle(candle: Candle) -> bool:
    """Check that OHLCV values are finite and internally consistent."""
    values = [candle.open, candle.high, candle.low, candle.close, candle.volume]
    if not all(np.isfinite(v) for v in values):
        return False
    if candle.volume < 0 or candle.low <= 0:
        return False
    return candle.high >= max(candle.open, candle.close) and candle.low <= min(candle.open, candle.close)


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """OHLCV DataFrame indexed by timestamp."""
    if not candles:
        return pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume'])
    frame = pd.DataFrame(
        {
            'open': [c.open for c in candles],
            'high': [c.high for c in candles],
            'low': [c.low for c in candles],
            'close': [c.close for c in candles],
            'volume': [c.volume for c in candles],
        },
        index=pd.Index([c.timestamp for c in candles], name='timestamp'),
    )
    return frame.astype(float)


def candle_interval(candles: Sequence[Candle], default: timedelta = timedelta(hours=1)) -> timedelta:
    """Spacing between the last two candles."""
    if len(candles) < 2:
        return default
    interval = candles[-1].timestamp - candles[-2].timestamp
    return interval if interval > timedelta(0) else default


@dataclass(frozen=True)
class WaveTrendData:
    wt1: float
    wt2: float
    signal: WaveSignal = WaveSignal.NEUTRAL
    divergence: Optional[Signal] = None


@dataclass(frozen=True)
class IndicatorSample:
    timestamp: datetime
    rsi: float
    wave_trend: WaveTrendData
    pvt: float
    trend: TrendDirection = TrendDirection.SIDEWAYS
    momentum: MomentumState = MomentumState.NEUTRAL
    volatility: float = 0.0


def indicators_to_frame(history: Sequence[IndicatorSample]) -> pd.DataFrame:
    """Numeric indicator columns (rsi, wt1, wt2, pvt, volatility) indexed by timestamp."""
    return pd.DataFrame(
        {
            'rsi': [s.rsi for s in history],
            'wt1': [s.wave_trend.wt1 for s in history],
            'wt2': [s.wave_trend.wt2 for s in history],
            'pvt': [s.pvt for s in history],
            'volatility': [s.volatility for s in history],
        },
        index=pd.Index([s.timestamp for s in history], name='timestamp'),
        dtype=float,
    )


@dataclass(frozen=True)
class IndicatorScore:
    indicator: str
    score: float
    signal: Signal
    strength: Strength
    confidence: float
    reasoning: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CorrelationPair:
    a: str
    b: str
    correlation: float
    strength: Strength
    agreement: bool


@dataclass(frozen=True)
class CorrelationMatrix:
    pairs: Tuple[CorrelationPair, ...] = ()
    average_correlation: float = 0.0
    strong_pairs: Tuple[CorrelationPair, ...] = ()
    weak_pairs: Tuple[CorrelationPair, ...] = ()

    @property
    def is_empty(self) -> bool:
        return len(self.pairs) == 0

    def agreement_ratio(self) -> float:
        if not self.pairs:
            return 0.0
        return sum(1 for pair in self.pairs if pair.agreement) / len(self.pairs)

    def get(self, a: str, b: str) -> Optional[float]:
        for pair in self.pairs:
            if {pair.a, pair.b} == {a, b}:
                return pair.correlation
        return None


@dataclass(frozen=True)
class Divergence:
    indicator: str
    type: Signal
    strength: float
    price_action: str
    indicator_action: str


@dataclass(frozen=True)
class IndicatorMatrix:
    scores: Tuple[IndicatorScore, ...]
    correlation_matrix: CorrelationMatrix
    divergences: Tuple[Divergence, ...]
    overall_score: float
    dominant_signal: Signal
    confidence: float

    def score_for(self, indicator: str) -> Optional[IndicatorScore]:
        for score in self.scores:
            if score.indicator == indicator:
                return score
        return None


@dataclass
class RSIThresholds:
    oversold: float = RSI_OVERSOLD
    overbought: float = RSI_OVERBOUGHT
    neutral: Tuple[float, float] = RSI_NEUTRAL_BAND


@dataclass
class WaveTrendThresholds:
    buy_threshold: float = WAVE_TREND_THRESHOLDS['buy_threshold']
    sell_threshold: float = WAVE_TREND_THRESHOLDS['sell_threshold']
    extreme_level: float = WAVE_TREND_THRESHOLDS['extreme_level']


@dataclass
class VolumeThresholds:
    spike_threshold: float = VOLUME_THRESHOLDS['spike_threshold']
    low_volume_threshold: float = VOLUME_THRESHOLDS['low_volume_threshold']


@dataclass
class VolatilityThresholds:
    low: float = VOLATILITY_BANDS['low']
    high: float = VOLATILITY_BANDS['high']


@dataclass
class ConfidenceThresholds:
    min_confidence: float = CONFIDENCE_FLOORS['min_confidence']
    strong_confidence: float = CONFIDENCE_FLOORS['strong_confidence']


@dataclass
class AdaptiveThresholds:
    """Working set of interpretation thresholds. Also used for the base set."""

    rsi: RSIThresholds = field(default_factory=RSIThresholds)
    wave_trend: WaveTrendThresholds = field(default_factory=WaveTrendThresholds)
    volume: VolumeThresholds = field(default_factory=VolumeThresholds)
    volatility: VolatilityThresholds = field(default_factory=VolatilityThresholds)
    confidence: ConfidenceThresholds = field(default_factory=ConfidenceThresholds)

    def copy(self) -> 'AdaptiveThresholds':
        return deepcopy(self)

    def flatten(self) -> Dict[str, float]:
        """Scalar view keyed ``group.field`` (the neutral band as ``rsi.neutral_low/high``)."""
        flat = {}
        for group in fields(self):
            block = getattr(self, group.name)
            for item in fields(block):
                value = getattr(block, item.name)
                if isinstance(value, tuple):
                    flat[f"{group.name}.{item.name}_low"] = float(value[0])
                    flat[f"{group.name}.{item.name}_high"] = float(value[1])
                else:
                    flat[f"{group.name}.{item.name}"] = float(value)
        return flat

    @classmethod
    def from_dict(cls, data: Dict) -> 'AdaptiveThresholds':
        rsi_data = dict(data.get('rsi', {}))
        if 'neutral' in rsi_data:
            rsi_data['neutral'] = tuple(rsi_data['neutral'])
        return cls(
            rsi=RSIThresholds(**rsi_data),
            wave_trend=WaveTrendThresholds(**data.get('wave_trend', {})),
            volume=VolumeThresholds(**data.get('volume', {})),
            volatility=VolatilityThresholds(**data.get('volatility', {})),
            confidence=ConfidenceThresholds(**data.get('confidence', {})),
        )


@dataclass(frozen=True)
class ThresholdAdjustment:
    indicator: str
    original_value: float
    adjusted_value: float
    adjustment_factor: float
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class MarketRegime:
    type: RegimeType = RegimeType.RANGING
    strength: float = 0.5
    duration: int = 0
    confidence: float = 0.5


@dataclass(frozen=True)
class MarketConditions:
    volatility: float = 0.2
    regime: MarketRegime = field(default_factory=MarketRegime)
    trend_strength: float = 0.0
    volume_profile: VolumeProfile = VolumeProfile.MEDIUM
    time_of_day: Optional[TradingSession] = None
    market_session: Optional[MarketActivity] = None

    @property
    def regime_type(self) -> str:
        return _enum_value(self.regime.type)

    @property
    def session(self) -> Optional[str]:
        return _enum_value(self.time_of_day)


@dataclass(frozen=True)
class ConfluenceZone:
    price_level: float
    strength: float
    type: ZoneType
    reliability: float
    factors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NKNPrediction:
    timestamp: datetime
    horizon: int
    predicted_price: float
    probability: float
    confidence: float


@dataclass(frozen=True)
class NKNPatternResult:
    pattern_type: str
    probability: float
    confidence: float
    timeframe: timedelta
    description: str


@dataclass(frozen=True)
class ConfidenceFactors:
    technical_confidence: float = 0.3
    pattern_confidence: float = 0.4
    volume_confidence: float = 0.4
    timeframe_confidence: float = 0.6
    correlation_confidence: float = 0.5
    market_regime_confidence: float = 0.5
    volatility_confidence: float = 0.5
    liquidity_confidence: float = 0.6

    def values(self) -> List[float]:
        return [getattr(self, f.name) for f in fields(self)]

    def as_dict(self) -> Dict[str, float]:
        """Keyed by weight name (``technical``, ``pattern`` ...)."""
        return {f.name[:-len('_confidence')]: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ConfidenceAdjustment:
    type: str
    factor: str
    original_value: float
    adjusted_value: float
    reason: str


@dataclass(frozen=True)
class WeightedConfidence:
    overall_confidence: float
    factors: ConfidenceFactors
    weights: ConfidenceWeights
    adjustments: Tuple[ConfidenceAdjustment, ...]
    reliability: float
    risk_level: RiskLevel
    timestamp: datetime = field(default_factory=datetime.now)
