import os

CONSTANTS_MAPPINGS = [
    ("LOG_LEVEL", "log_level"),
    ("LOG_FORMAT", "log_format"),
    ("LOG_FILE", "log_file"),
    ("RSI_OVERSOLD", "rsi_oversold"),
    ("RSI_OVERBOUGHT", "rsi_overbought"),
    ("RSI_NEUTRAL_BAND", "rsi_neutral_band"),
    ("RSI_HARD_BOUNDS", "rsi_hard_bounds"),
    ("WAVE_TREND_THRESHOLDS", "wave_trend_thresholds"),
    ("WAVE_TREND_HARD_LIMIT", "wave_trend_hard_limit"),
    ("VOLUME_THRESHOLDS", "volume_thresholds"),
    ("VOLATILITY_BANDS", "volatility_bands"),
    ("CONFIDENCE_FLOORS", "confidence_floors"),
    ("SESSION_MULTIPLIERS", "session_multipliers"),
    ("REGIME_MULTIPLIERS", "regime_multipliers"),
    ("INDICATOR_WEIGHTS", "indicator_weights"),
    ("BASE_CONFIDENCE_WEIGHTS", "base_confidence_weights"),
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = os.getenv("CONFLUENCE_LOG_FILE", "logs/confluence_engine.log")

# Base interpretation thresholds
RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
RSI_NEUTRAL_BAND = (40.0, 60.0)
RSI_HARD_BOUNDS = (15.0, 85.0)
WAVE_TREND_THRESHOLDS = {'buy_threshold': -60.0, 'sell_threshold': 60.0, 'extreme_level': 80.0}
WAVE_TREND_HARD_LIMIT = 100.0
VOLUME_THRESHOLDS = {'spike_threshold': 2.0, 'low_volume_threshold': 0.5}
VOLATILITY_BANDS = {'low': 0.1, 'high': 0.4}
CONFIDENCE_FLOORS = {'min_confidence': 0.3, 'strong_confidence': 0.8}

SESSION_MULTIPLIERS = {'asian': 0.8, 'london': 1.2, 'newyork': 1.1, 'overlap': 1.3}
REGIME_MULTIPLIERS = {'trending': 1.1, 'ranging': 0.9, 'breakout': 1.4, 'reversal': 0.8}

# Annualized volatility treated as "normal" when scaling thresholds
REFERENCE_VOLATILITY = 0.2
TRADING_PERIODS_PER_YEAR = 252

INDICATOR_WEIGHTS = {
    'rsi': 0.20,
    'wave_trend': 0.25,
    'pvt': 0.15,
    'momentum': 0.15,
    'trend': 0.15,
    'volume': 0.10,
}

BASE_CONFIDENCE_WEIGHTS = {
    'technical': 0.25,
    'pattern': 0.20,
    'volume': 0.15,
    'timeframe': 0.10,
    'correlation': 0.10,
    'market_regime': 0.10,
    'volatility': 0.05,
    'liquidity': 0.05,
}
