"""
Data models for the confluence engine.
Candles, indicator readings, thresholds and the engine's result types.
"""

from .models import (
    # Enums
    Signal,
    Strength,
    WaveSignal,
    TrendDirection,
    MomentumState,
    RegimeType,
    VolumeProfile,
    TradingSession,
    MarketActivity,
    ZoneType,
    RiskLevel,

    # Market data
    Candle,
    create_candle,
    validate_candle,
    candles_to_frame,
    candle_interval,
    WaveTrendData,
    IndicatorSample,
    indicators_to_frame,

    # Scoring
    IndicatorScore,
    CorrelationPair,
    CorrelationMatrix,
    Divergence,
    IndicatorMatrix,

    # Thresholds
    RSIThresholds,
    WaveTrendThresholds,
    VolumeThresholds,
    VolatilityThresholds,
    ConfidenceThresholds,
    AdaptiveThresholds,
    ThresholdAdjustment,

    # Market context
    MarketRegime,
    MarketConditions,
    ConfluenceZone,

    # Predictor and fusion outputs
    NKNPrediction,
    NKNPatternResult,
    ConfidenceFactors,
    ConfidenceAdjustment,
    WeightedConfidence,
)

__all__ = [
    'Signal',
    'Strength',
    'WaveSignal',
    'TrendDirection',
    'MomentumState',
    'RegimeType',
    'VolumeProfile',
    'TradingSession',
    'MarketActivity',
    'ZoneType',
    'RiskLevel',
    'Candle',
    'create_candle',
    'validate_candle',
    'candles_to_frame',
    'candle_interval',
    'WaveTrendData',
    'IndicatorSample',
    'indicators_to_frame',
    'IndicatorScore',
    'CorrelationPair',
    'CorrelationMatrix',
    'Divergence',
    'IndicatorMatrix',
    'RSIThresholds',
    'WaveTrendThresholds',
    'VolumeThresholds',
    'VolatilityThresholds',
    'ConfidenceThresholds',
    'AdaptiveThresholds',
    'ThresholdAdjustment',
    'MarketRegime',
    'MarketConditions',
    'ConfluenceZone',
    'NKNPrediction',
    'NKNPatternResult',
    'ConfidenceFactors',
    'ConfidenceAdjustment',
    'WeightedConfidence',
]
