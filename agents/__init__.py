

from .indicator_scoring import IndicatorScoringMatrix
from .adaptive_thresholds import AdaptiveThresholdController
from .nkn_predictor import NKNPredictor, NetworkState, NeuralLayer, TrainingResult
from .market_regime_classifier import (
    MarketRegimeClassifier,
    classify_session,
    classify_volume_profile
)

__all__ = [
    "IndicatorScoringMatrix",
    "AdaptiveThresholdController",
    "NKNPredictor",
    "NetworkState",
    "NeuralLayer",
    "TrainingResult",
    "MarketRegimeClassifier",
    "classify_session",
    "classify_volume_profile"
]
