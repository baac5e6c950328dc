import os

ML_MAPPINGS = [
    ("NKN_ENABLED", "nkn_enabled"),
    ("NKN_NETWORK_DEPTH", "nkn_network_depth"),
    ("NKN_TRAINING_PERIOD", "nkn_training_period"),
    ("NKN_PREDICTION_HORIZON", "nkn_prediction_horizon"),
    ("NKN_CONFIDENCE_THRESHOLD", "nkn_confidence_threshold"),
    ("NKN_FEATURE_WINDOW", "nkn_feature_window"),
    ("NKN_LEARNING_RATE", "nkn_learning_rate"),
    ("NKN_MAX_EPOCHS", "nkn_max_epochs"),
    ("NKN_BATCH_SIZE", "nkn_batch_size"),
    ("NKN_TARGET_ERROR", "nkn_target_error"),
    ("NKN_HIDDEN_SIZES", "nkn_hidden_sizes"),
    ("NKN_PATTERN_TYPES", "nkn_pattern_types"),
]

NKN_ENABLED = os.getenv("NKN_ENABLED", "true").lower() == "true"
NKN_NETWORK_DEPTH = int(os.getenv("NKN_NETWORK_DEPTH", "3"))
NKN_TRAINING_PERIOD = int(os.getenv("NKN_TRAINING_PERIOD", "100"))
NKN_PREDICTION_HORIZON = int(os.getenv("NKN_PREDICTION_HORIZON", "10"))
NKN_CONFIDENCE_THRESHOLD = 0.6
NKN_FEATURE_WINDOW = 20
NKN_LEARNING_RATE = 0.05
NKN_MAX_EPOCHS = int(os.getenv("NKN_MAX_EPOCHS", "200"))
NKN_BATCH_SIZE = 32
NKN_TARGET_ERROR = 0.001
NKN_VALIDATION_SPLIT = 0.2
NKN_CONFIDENCE_DECAY = 0.1
NKN_HIDDEN_SIZES = [32, 16, 8]
NKN_MIN_HIDDEN_SIZE = 4
# Scale applied to next-step returns before the logistic target
NKN_TARGET_SCALE = 10.0

NKN_PATTERN_TYPES = [
    'trend_continuation',
    'trend_reversal',
    'breakout',
    'consolidation',
    'momentum_shift',
    'volatility_expansion',
    'volatility_contraction',
]
NKN_PATTERN_COMPLEXITY = {
    'trend_continuation': 0.9,
    'trend_reversal': 0.7,
    'breakout': 0.8,
    'consolidation': 0.85,
    'momentum_shift': 0.75,
    'volatility_expansion': 0.8,
    'volatility_contraction': 0.8,
}
NKN_PATTERN_TIMEFRAMES = {
    'trend_continuation': 5,
    'trend_reversal': 3,
    'breakout': 2,
    'consolidation': 8,
    'momentum_shift': 3,
    'volatility_expansion': 4,
    'volatility_contraction': 6,
}
