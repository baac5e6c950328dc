"""
Neural Kolmogorov-Arnold Network (NKN) predictor.

A compact feed-forward network written directly in numpy. Hidden layers use a
monotone piecewise-cubic ("spline") activation on a clamped input range and
the single output unit is logistic. The network is trained on engineered
price/volume features to predict the direction and size of the next-step
return, and the same network scores a fixed set of pattern types by appending
a one-hot pattern tag to the feature vector.

Training rows carry an all-zero tag, so the tag rows of the first layer keep
their seeded initial weights and a pattern probability is the trained
direction network evaluated with that fixed per-pattern input.

Training works on a private copy of the network and commits it atomically
when it finishes, so inference always reads the last committed state and is
never blocked by a running training job.
"""

import asyncio
import functools
import logging
import math
import threading
import time
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from config.engine_config import PredictorConfig
from config.ml_config import (
    NKN_HIDDEN_SIZES,
    NKN_MIN_HIDDEN_SIZE,
    NKN_PATTERN_COMPLEXITY,
    NKN_PATTERN_TIMEFRAMES,
    NKN_PATTERN_TYPES,
    NKN_TARGET_SCALE,
)
from data.models import Candle, NKNPatternResult, NKNPrediction, candle_interval, candles_to_frame
from utils.config_validator import validate_predictor_config
from utils.error_handling import InsufficientDataError, clamp, finite_or_default
from utils.general_utils import sample_std
from utils.logging_utils import EventCollector, emit_event, log_performance

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    'last_price', 'mean', 'std', 'high', 'low',
    'rsi', 'macd', 'band_position',
    'volume_mean', 'volume_ratio',
    'trend_strength', 'volatility', 'momentum',
    'doji', 'hammer', 'engulfing',
]

PATTERN_DESCRIPTIONS = {
    'trend_continuation': 'trend continuation expected',
    'trend_reversal': 'trend reversal forming',
    'breakout': 'breakout from current range',
    'consolidation': 'price consolidating',
    'momentum_shift': 'momentum shifting',
    'volatility_expansion': 'volatility expanding',
    'volatility_contraction': 'volatility contracting',
}

# Spline activation: piecewise cubic over SPLINE_SEGMENTS equal segments of
# [-SPLINE_RANGE, SPLINE_RANGE]. The bump term vanishes at every knot and the
# function stays monotone while SPLINE_BUMP < 3.
SPLINE_RANGE = 3.0
SPLINE_SEGMENTS = 6
SPLINE_BUMP = 0.9

VALIDATION_CHECK_INTERVAL = 10
LR_SHRINK = 0.9


def spline_activation(x: np.ndarray) -> np.ndarray:
    clipped = np.clip(x, -SPLINE_RANGE, SPLINE_RANGE)
    segment = 2 * SPLINE_RANGE / SPLINE_SEGMENTS
    t = np.mod(clipped + SPLINE_RANGE, segment) / segment
    return clipped / SPLINE_RANGE + SPLINE_BUMP * segment / SPLINE_RANGE * (t ** 3 - 2 * t ** 2 + t)


def spline_derivative(x: np.ndarray) -> np.ndarray:
    segment = 2 * SPLINE_RANGE / SPLINE_SEGMENTS
    clipped = np.clip(x, -SPLINE_RANGE, SPLINE_RANGE)
    t = np.mod(clipped + SPLINE_RANGE, segment) / segment
    slope = 1.0 / SPLINE_RANGE + SPLINE_BUMP / SPLINE_RANGE * (3 * t ** 2 - 4 * t + 1)
    return np.where(np.abs(x) < SPLINE_RANGE, slope, 0.0)


def sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -50, 50)))


def build_feature_frame(candles: Sequence[Candle], window: int) -> pd.DataFrame:
    """
    One row of engineered features per candle that closes a full trailing
    window. Rows may contain NaN where the data is degenerate.
    """
    df = candles_to_frame(candles)
    if len(df) < window:
        return pd.DataFrame(columns=FEATURE_NAMES)

    open_, high, low, close, volume = df['open'], df['high'], df['low'], df['close'], df['volume']
    feats = pd.DataFrame(index=df.index)

    rolling_close = close.rolling(window=window)
    mean = rolling_close.mean()
    std = rolling_close.std()
    feats['last_price'] = close
    feats['mean'] = mean
    feats['std'] = std
    feats['high'] = high.rolling(window=window).max()
    feats['low'] = low.rolling(window=window).min()

    delta = close.diff()
    gain = delta.clip(lower=0).rolling(window=14).mean()
    loss = (-delta.clip(upper=0)).rolling(window=14).mean()
    rsi = 100 - (100 / (1 + gain / loss))
    feats['rsi'] = rsi.where(loss > 0, np.where(gain > 0, 100.0, 50.0))

    feats['macd'] = close.ewm(span=12, adjust=False).mean() - close.ewm(span=26, adjust=False).mean()
    band_width = 4 * std
    feats['band_position'] = ((close - (mean - 2 * std)) / band_width).where(band_width > 0, 0.5)

    feats['volume_mean'] = volume.rolling(window=window).mean()
    recent_volume = volume.rolling(window=5).mean()
    prior_volume = volume.shift(5).rolling(window=10).mean()
    feats['volume_ratio'] = (recent_volume / prior_volume).where(prior_volume > 0, 1.0)

    returns = close / close.shift(1) - 1
    feats['trend_strength'] = np.tanh((close / close.shift(window - 1) - 1) * 10)
    feats['volatility'] = returns.rolling(window=window, min_periods=window - 1).std()
    feats['momentum'] = close / close.shift(10) - 1

    body = (close - open_).abs()
    candle_range = high - low
    lower_shadow = np.minimum(open_, close) - low
    upper_shadow = high - np.maximum(open_, close)
    feats['doji'] = (1 - (body / candle_range * 10).clip(upper=1)).where(candle_range > 0, 1.0)
    is_hammer = (lower_shadow > 2 * body) & (upper_shadow <= body) & (candle_range > 0)
    feats['hammer'] = (lower_shadow / candle_range).where(is_hammer, 0.0)

    prev_open, prev_close = open_.shift(1), close.shift(1)
    bullish_engulfing = (close > open_) & (prev_close < prev_open) & (close >= prev_open) & (open_ <= prev_close)
    bearish_engulfing = (close < open_) & (prev_close > prev_open) & (open_ >= prev_close) & (close <= prev_open)
    feats['engulfing'] = bullish_engulfing.astype(float) - bearish_engulfing.astype(float)

    feats = feats[FEATURE_NAMES].iloc[window - 1:]
    return feats.replace([np.inf, -np.inf], np.nan)


@dataclass
class NeuralLayer:
    weights: np.ndarray  # shape (inputs, outputs)
    biases: np.ndarray
    activation: str  # 'spline' or 'sigmoid'

    @property
    def size(self) -> int:
        return int(self.biases.shape[0])


@dataclass
class NetworkState:
    layers: List[NeuralLayer]
    training_epochs: int = 0
    last_error: float = float('inf')
    validation_error: float = float('inf')
    convergence_rate: float = 0.0
    error_history: List[float] = field(default_factory=list)


@dataclass
class TrainingResult:
    epochs: int
    final_error: float
    validation_error: float
    convergence_rate: float
    training_time: float
    learning_rate: float
    committed: bool
    cancelled: bool = False
    skipped: bool = False
    reason: str = ''

    @classmethod
    def skipped_result(cls, reason: str) -> 'TrainingResult':
        return cls(
            epochs=0, final_error=0.0, validation_error=0.0, convergence_rate=0.0,
            training_time=0.0, learning_rate=0.0, committed=False, skipped=True, reason=reason,
        )


class NKNPredictor:
    """Trainable multi-horizon price/pattern predictor."""

    def __init__(self, config: Optional[PredictorConfig] = None, events: Optional[EventCollector] = None):
        self.config = config or PredictorConfig()
        self.events = events
        self._config_valid = self._check_config(self.config)
        self._state: Optional[NetworkState] = None
        self._scaler: Optional[StandardScaler] = None
        self._state_lock = threading.Lock()
        self._scaler_lock = threading.Lock()
        self._rng = np.random.default_rng(self.config.random_seed)

    @staticmethod
    def _check_config(config: PredictorConfig) -> bool:
        validation = validate_predictor_config(config)
        if not validation.is_valid():
            logger.error(f"NKN predictor disabled by invalid configuration: {validation.summary()}")
        return validation.is_valid()

    @property
    def is_operational(self) -> bool:
        return bool(self.config.enabled) and self._config_valid

    @property
    def is_trained(self) -> bool:
        return self._state is not None

    @property
    def input_size(self) -> int:
        return len(FEATURE_NAMES) + len(NKN_PATTERN_TYPES)

    def hidden_sizes(self) -> List[int]:
        sizes = []
        for depth in range(self.config.network_depth):
            if depth < len(NKN_HIDDEN_SIZES):
                sizes.append(NKN_HIDDEN_SIZES[depth])
            else:
                sizes.append(max(NKN_MIN_HIDDEN_SIZE, sizes[-1] // 2))
        return sizes

    def update_config(self, **overrides) -> PredictorConfig:
        """
        Hot-reload configuration. Changing the architecture (depth or feature
        window) discards the committed network and the fitted scaler.
        """
        candidate = self.config.with_overrides(**overrides)
        if not self._check_config(candidate):
            logger.error("Rejected predictor config update")
            return self.config

        architecture_changed = (
            candidate.network_depth != self.config.network_depth
            or candidate.feature_window != self.config.feature_window
        )
        self.config = candidate
        self._config_valid = True
        if candidate.random_seed is not None and 'random_seed' in overrides:
            self._rng = np.random.default_rng(candidate.random_seed)
        if architecture_changed and self._state is not None:
            logger.warning("Predictor architecture changed; discarding trained network")
            with self._state_lock:
                self._state = None
            with self._scaler_lock:
                self._scaler = None
        return self.config

    def reset(self) -> None:
        """Discard the trained network and the fitted scaler."""
        with self._state_lock:
            self._state = None
        with self._scaler_lock:
            self._scaler = None
        logger.info("NKN predictor state discarded")

    # ------------------------------------------------------------------
    # Network plumbing
    # ------------------------------------------------------------------

    def _initialize_state(self, rng: np.random.Generator) -> NetworkState:
        sizes = [self.input_size] + self.hidden_sizes() + [1]
        layers = []
        for index in range(len(sizes) - 1):
            fan_in, fan_out = sizes[index], sizes[index + 1]
            limit = math.sqrt(6.0 / (fan_in + fan_out))
            is_output = index == len(sizes) - 2
            layers.append(NeuralLayer(
                weights=rng.uniform(-limit, limit, size=(fan_in, fan_out)),
                biases=rng.uniform(-0.1, 0.1, size=fan_out),
                activation='sigmoid' if is_output else 'spline',
            ))
        logger.info(f"Initialized NKN network with layer sizes {sizes}")
        return NetworkState(layers=layers)

    @staticmethod
    def _forward(layers: Sequence[NeuralLayer], inputs: np.ndarray) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        pre_activations = []
        activations = [inputs]
        current = inputs
        for layer in layers:
            z = current @ layer.weights + layer.biases
            current = sigmoid(z) if layer.activation == 'sigmoid' else spline_activation(z)
            pre_activations.append(z)
            activations.append(current)
        return pre_activations, activations

    def _backward_step(self, layers: List[NeuralLayer], inputs: np.ndarray, targets: np.ndarray,
                       learning_rate: float) -> None:
        pre, acts = self._forward(layers, inputs)
        output = acts[-1]
        # dL/dz for MSE loss through the logistic output
        delta = 2.0 * (output - targets) / len(inputs) * output * (1.0 - output)

        last = len(layers) - 1
        for index in range(last, -1, -1):
            layer = layers[index]
            grad_w = acts[index].T @ delta
            grad_b = delta.sum(axis=0)
            if index > 0:
                delta = (delta @ layer.weights.T) * spline_derivative(pre[index - 1])

            if self.config.full_backprop or index == last:
                layer.weights -= learning_rate * grad_w
                layer.biases -= learning_rate * grad_b

            if not self.config.full_backprop:
                # Output-layer-only mode: earlier layers stay as initialized
                break

    @staticmethod
    def _mse(layers: Sequence[NeuralLayer], inputs: np.ndarray, targets: np.ndarray) -> float:
        if len(inputs) == 0:
            return 0.0
        _, acts = NKNPredictor._forward(layers, inputs)
        return float(np.mean((acts[-1] - targets) ** 2))

    def _scale(self, features: np.ndarray) -> np.ndarray:
        """Normalize with the scaler fitted on first use."""
        with self._scaler_lock:
            if self._scaler is None:
                self._scaler = StandardScaler()
                self._scaler.fit(features)
                logger.debug(f"Fitted NKN feature scaler on {len(features)} rows")
            scaler = self._scaler
        return np.nan_to_num(scaler.transform(features), nan=0.0, posinf=0.0, neginf=0.0)

    def _network_inputs(self, scaled: np.ndarray, pattern_index: Optional[int] = None) -> np.ndarray:
        tags = np.zeros((len(scaled), len(NKN_PATTERN_TYPES)))
        if pattern_index is not None:
            tags[:, pattern_index] = 1.0
        return np.hstack([scaled, tags])

    def _training_pairs(self, candles: Sequence[Candle]) -> Tuple[np.ndarray, np.ndarray]:
        window = self.config.feature_window
        features = build_feature_frame(candles, window)
        closes = np.array([c.close for c in candles], dtype=float)
        with np.errstate(divide='ignore', invalid='ignore'):
            next_returns = closes[1:] / closes[:-1] - 1.0
        # Feature row k closes the window ending at candle k + window - 1
        row_returns = np.full(len(features), np.nan)
        usable = min(len(features), len(next_returns) - (window - 1))
        if usable > 0:
            row_returns[:usable] = next_returns[window - 1:window - 1 + usable]

        values = features.to_numpy(dtype=float)
        mask = np.all(np.isfinite(values), axis=1) & np.isfinite(row_returns)
        targets = sigmoid(row_returns[mask] * NKN_TARGET_SCALE).reshape(-1, 1)
        return values[mask], targets

    def _latest_features(self, candles: Sequence[Candle]) -> Optional[np.ndarray]:
        window = self.config.feature_window
        frame = build_feature_frame(list(candles)[-(window + 30):], window)
        if frame.empty:
            return None
        return np.nan_to_num(frame.to_numpy(dtype=float)[-1:], nan=0.0)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    @log_performance(logger, threshold_ms=5000)
    def train_network(
        self,
        candles: Sequence[Candle],
        max_epochs: Optional[int] = None,
        time_budget: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> TrainingResult:
        """
        Train on next-step returns and commit the result atomically.

        Args:
            candles: Ordered candle history, at least ``training_period`` long.
            max_epochs: Epoch budget; defaults to the configured ``max_epochs``.
            time_budget: Wall-clock budget in seconds; defaults to the config.
            cancel_event: Checked once per epoch. A cancelled run is discarded.

        Raises:
            InsufficientDataError: fewer candles than ``training_period``, or
                too few usable training pairs.
        """
        if not self.is_operational:
            return TrainingResult.skipped_result("Predictor disabled")

        candles = list(candles)
        period = self.config.training_period
        if len(candles) < period:
            raise InsufficientDataError(
                f"Insufficient data for NKN training. Need at least {period} candles, got {len(candles)}",
                required=period, received=len(candles),
            )

        features, targets = self._training_pairs(candles)
        if len(features) < 5:
            raise InsufficientDataError(
                f"Insufficient data for NKN training: only {len(features)} usable samples",
                required=5, received=len(features),
            )

        start = time.monotonic()
        inputs = self._network_inputs(self._scale(features))
        split = int(round(len(inputs) * (1 - self.config.validation_split)))
        split = min(max(split, 1), len(inputs) - 1)
        train_x, train_y = inputs[:split], targets[:split]
        val_x, val_y = inputs[split:], targets[split:]

        rng = np.random.default_rng(self._rng.integers(0, 2 ** 32))
        committed_state = self._state
        state = deepcopy(committed_state) if committed_state is not None else self._initialize_state(rng)

        epoch_budget = max_epochs if max_epochs is not None else self.config.max_epochs
        budget_seconds = time_budget if time_budget is not None else self.config.time_budget
        learning_rate = self.config.learning_rate
        batch_size = self.config.batch_size

        errors: List[float] = []
        train_error = self._mse(state.layers, train_x, train_y)
        val_error = self._mse(state.layers, val_x, val_y)
        cancelled = False
        epochs_run = 0

        for epoch in range(epoch_budget):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            if budget_seconds is not None and time.monotonic() - start > budget_seconds:
                logger.info(f"NKN training stopped by time budget after {epochs_run} epochs")
                break

            order = rng.permutation(len(train_x))
            for offset in range(0, len(order), batch_size):
                batch = order[offset:offset + batch_size]
                self._backward_step(state.layers, train_x[batch], train_y[batch], learning_rate)

            epochs_run += 1
            train_error = self._mse(state.layers, train_x, train_y)
            val_error = self._mse(state.layers, val_x, val_y)
            errors.append(train_error)

            if epochs_run % VALIDATION_CHECK_INTERVAL == 0 and val_error > 2 * train_error:
                learning_rate *= LR_SHRINK
                logger.debug(f"Validation error {val_error:.5f} > 2x training error; lr -> {learning_rate:.5f}")
            learning_rate *= (1 - self.config.lr_decay)

            if not np.isfinite(train_error):
                logger.warning("NKN training diverged; discarding run")
                cancelled = True
                break
            if train_error < self.config.target_error:
                break

        convergence_rate = 0.0
        if len(errors) >= 20:
            previous, recent = np.mean(errors[-20:-10]), np.mean(errors[-10:])
            convergence_rate = finite_or_default((previous - recent) / previous, 0.0) if previous > 0 else 0.0

        state.training_epochs += epochs_run
        state.last_error = float(train_error)
        state.validation_error = float(val_error)
        state.convergence_rate = convergence_rate
        state.error_history = (state.error_history + errors)[-50:]

        committed = not cancelled
        if committed:
            with self._state_lock:
                self._state = state
        elapsed = time.monotonic() - start

        emit_event(
            self.events, 'nkn_training_completed' if committed else 'nkn_training_cancelled',
            source='predictor', epochs=epochs_run, final_error=float(train_error),
            validation_error=float(val_error), training_time=elapsed,
        )
        logger.info(
            f"NKN training {'committed' if committed else 'discarded'}: {epochs_run} epochs, "
            f"train error {train_error:.5f}, validation error {val_error:.5f}"
        )

        return TrainingResult(
            epochs=epochs_run,
            final_error=float(train_error),
            validation_error=float(val_error),
            convergence_rate=convergence_rate,
            training_time=elapsed,
            learning_rate=learning_rate,
            committed=committed,
            cancelled=cancelled,
        )

    def start_training_task(self, candles: Sequence[Candle], max_epochs: Optional[int] = None,
                            time_budget: Optional[float] = None, executor=None) -> 'asyncio.Task':
        """
        Run ``train_network`` in an executor as a cancellable asyncio task.
        Cancelling the task signals the worker, which stops at the next epoch
        boundary without committing.
        """
        loop = asyncio.get_running_loop()
        cancel_event = threading.Event()
        future = loop.run_in_executor(
            executor,
            functools.partial(self.train_network, list(candles), max_epochs, time_budget, cancel_event),
        )

        async def _run() -> TrainingResult:
            try:
                return await future
            except asyncio.CancelledError:
                cancel_event.set()
                raise

        return asyncio.ensure_future(_run())

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def _require_history(self, candles: Sequence[Candle]) -> None:
        period = self.config.training_period
        if len(candles) < period:
            raise InsufficientDataError(
                f"Insufficient data for NKN predictions. Need at least {period} candles, got {len(candles)}",
                required=period, received=len(candles),
            )

    def predict_probability(self, candles: Sequence[Candle], state: Optional[NetworkState] = None) -> Optional[float]:
        """Probability that the next candle closes higher, or None when unavailable."""
        state = state or self._state
        if state is None:
            return None
        features = self._latest_features(candles)
        if features is None:
            return None
        _, acts = self._forward(state.layers, self._network_inputs(self._scale(features)))
        return clamp(finite_or_default(acts[-1][0, 0], 0.5), 0.0, 1.0)

    def generate_predictions(self, candles: Sequence[Candle], horizon: Optional[int] = None) -> List[NKNPrediction]:
        """One prediction per horizon step with geometrically decaying confidence."""
        if not self.is_operational:
            return []
        candles = list(candles)
        self._require_history(candles)

        state = self._state
        if state is None:
            logger.debug("NKN network not trained yet; no predictions")
            return []

        probability = self.predict_probability(candles, state)
        if probability is None:
            return []

        steps = self.config.prediction_horizon if horizon is None else int(horizon)
        last_close = candles[-1].close
        window_std = sample_std([c.close for c in candles[-self.config.feature_window:]])
        interval = candle_interval(candles)
        directional = max(probability, 1.0 - probability)

        predictions = []
        for step in range(1, steps + 1):
            predicted_price = last_close + (2 * probability - 1) * window_std * math.sqrt(step)
            predictions.append(NKNPrediction(
                timestamp=candles[-1].timestamp + interval * step,
                horizon=step,
                predicted_price=finite_or_default(predicted_price, last_close),
                probability=probability,
                confidence=clamp(directional * math.exp(-step * self.config.confidence_decay), 0.0, 1.0),
            ))
        return predictions

    def _pattern_probabilities(self, state: NetworkState, features: np.ndarray) -> np.ndarray:
        scaled = self._scale(features)
        batch = np.vstack([self._network_inputs(scaled, index) for index in range(len(NKN_PATTERN_TYPES))])
        _, acts = self._forward(state.layers, batch)
        return np.clip(np.nan_to_num(acts[-1][:, 0], nan=0.0), 0.0, 1.0)

    def recognize_patterns(self, candles: Sequence[Candle]) -> List[NKNPatternResult]:
        """Patterns whose probability exceeds ``confidence_threshold``, most likely first."""
        if not self.is_operational:
            return []
        state = self._state
        candles = list(candles)
        if state is None or len(candles) < self.config.feature_window:
            return []

        features = self._latest_features(candles)
        if features is None:
            return []

        probabilities = self._pattern_probabilities(state, features)
        interval = candle_interval(candles)
        results = []
        for pattern_type, probability in zip(NKN_PATTERN_TYPES, probabilities):
            probability = float(probability)
            if probability <= self.config.confidence_threshold:
                continue
            if probability > 0.8:
                prefix = 'Strong'
            elif probability > 0.6:
                prefix = 'Moderate'
            else:
                prefix = 'Weak'
            results.append(NKNPatternResult(
                pattern_type=pattern_type,
                probability=probability,
                confidence=probability * NKN_PATTERN_COMPLEXITY[pattern_type],
                timeframe=interval * NKN_PATTERN_TIMEFRAMES[pattern_type],
                description=f"{prefix} {PATTERN_DESCRIPTIONS[pattern_type]}",
            ))

        results.sort(key=lambda item: item.probability, reverse=True)
        return results

    def _recent_accuracy(self, state: NetworkState, candles: Sequence[Candle], lookback: int = 50) -> float:
        features, targets = self._training_pairs(list(candles))
        if len(features) < 5:
            return 0.5
        features, targets = features[-lookback:], targets[-lookback:]
        _, acts = self._forward(state.layers, self._network_inputs(self._scale(features)))
        predicted_up = acts[-1][:, 0] > 0.5
        actual_up = targets[:, 0] > 0.5
        return float(np.mean(predicted_up == actual_up))

    def calculate_confidence_score(self, candles: Sequence[Candle]) -> float:
        """Scalar confidence contribution in [0, 1]; zero when disabled or untrained."""
        if not self.is_operational:
            return 0.0
        state = self._state
        if state is None:
            return 0.0

        try:
            training_quality = 1.0 - min(1.0, math.sqrt(max(state.last_error, 0.0)) * 2.0)
            data_quality = min(1.0, len(candles) / (2.0 * self.config.training_period))
            recent_errors = state.error_history[-10:]
            if len(recent_errors) >= 2 and np.mean(recent_errors) > 0:
                stability = 1.0 - min(1.0, float(np.std(recent_errors) / np.mean(recent_errors)))
            else:
                stability = 0.5
            accuracy = self._recent_accuracy(state, candles)
        except Exception as e:
            logger.error(f"Error calculating NKN confidence: {e}")
            return 0.0

        score = training_quality * 0.3 + data_quality * 0.2 + stability * 0.2 + accuracy * 0.3
        return clamp(score, 0.0, 1.0)

    def get_network_stats(self) -> Dict[str, object]:
        state = self._state
        if state is None:
            return {
                'initialized': False,
                'enabled': self.is_operational,
                'training_epochs': 0,
                'last_error': None,
                'convergence_rate': 0.0,
                'layer_count': 0,
                'layer_sizes': [],
                'parameter_count': 0,
            }
        return {
            'initialized': True,
            'enabled': self.is_operational,
            'training_epochs': state.training_epochs,
            'last_error': state.last_error,
            'validation_error': state.validation_error,
            'convergence_rate': state.convergence_rate,
            'layer_count': len(state.layers),
            'layer_sizes': [layer.size for layer in state.layers],
            'parameter_count': int(sum(layer.weights.size + layer.biases.size for layer in state.layers)),
        }
