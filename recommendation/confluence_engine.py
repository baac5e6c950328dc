"""
Per-symbol confluence engine.

Wires the threshold controller, the indicator scoring matrix, the NKN
predictor and the confluence fusion layer into a single asynchronous
evaluation cycle. One engine exists per symbol/timeframe pair; cycles on the
same engine never overlap.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agents.adaptive_thresholds import AdaptiveThresholdController
from agents.indicator_scoring import IndicatorScoringMatrix
from agents.nkn_predictor import NKNPredictor, TrainingResult
from config.engine_config import EngineConfig
from data.models import (
    AdaptiveThresholds,
    Candle,
    ConfluenceZone,
    IndicatorMatrix,
    IndicatorSample,
    MarketConditions,
    NKNPatternResult,
    NKNPrediction,
    WeightedConfidence,
)
from recommendation.confluence_fusion import ConfluenceFusion
from utils.config_validator import validate_engine_config
from utils.error_handling import InsufficientDataError, MissingInputError
from utils.logging_utils import EventCollector, emit_event
from utils.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfluenceDecision:
    """Everything one evaluation cycle produced."""

    symbol: str
    timeframe: str
    cycle: int
    thresholds: AdaptiveThresholds
    matrix: IndicatorMatrix
    confidence: WeightedConfidence
    predictions: Tuple[NKNPrediction, ...] = ()
    patterns: Tuple[NKNPatternResult, ...] = ()
    predictor_confidence: Optional[float] = None
    notes: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def overall_confidence(self) -> float:
        return self.confidence.overall_confidence

    @property
    def dominant_signal(self):
        return self.matrix.dominant_signal


async def _resolve(source: Any) -> List[Any]:
    """Accept a sequence, or a zero-argument callable (sync or async) returning one."""
    if source is None:
        return []
    if callable(source):
        source = source()
        if inspect.isawaitable(source):
            source = await source
    return list(source or [])


class ConfluenceEngine:
    """
    Runs the confluence pipeline for one symbol and timeframe.

    A cycle updates the adaptive thresholds, scores the indicator matrix
    against them, asks the predictor for its outlook and fuses everything
    into a ``ConfluenceDecision``.
    """

    def __init__(
        self,
        symbol: str,
        timeframe: str,
        config: Optional[EngineConfig] = None,
        base_thresholds: Optional[AdaptiveThresholds] = None,
        events: Optional[EventCollector] = None,
    ):
        self.symbol = symbol
        self.timeframe = timeframe
        self.events = events
        config = config or EngineConfig()

        validation = validate_engine_config(config)
        if validation.has_warnings() or not validation.is_valid():
            logger.warning(f"{symbol} {timeframe} engine config: {validation.summary()}")

        self.thresholds = AdaptiveThresholdController(base_thresholds, config.thresholds, events)
        self.scoring = IndicatorScoringMatrix(config.scoring, events)
        self.predictor = NKNPredictor(config.predictor, events)
        self.fusion = ConfluenceFusion(config.fusion, events)

        history_size = config.decision_history if config.decision_history > 0 else EngineConfig().decision_history
        self._decisions: RingBuffer[ConfluenceDecision] = RingBuffer(history_size)
        self._decision_history_size = history_size
        self._cycle_lock = asyncio.Lock()
        self._cycles = 0
        self._training_task: Optional[asyncio.Task] = None

    @property
    def config(self) -> EngineConfig:
        return EngineConfig(
            thresholds=self.thresholds.config,
            scoring=self.scoring.config,
            predictor=self.predictor.config,
            fusion=self.fusion.config,
            decision_history=self._decision_history_size,
        )

    @property
    def cycles(self) -> int:
        return self._cycles

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        candles_source: Any,
        indicators_source: Any,
        market_conditions: MarketConditions,
        confluence_zones: Sequence[ConfluenceZone] = (),
        now: Optional[datetime] = None,
    ) -> ConfluenceDecision:
        """
        Run one evaluation cycle.

        Args:
            candles_source: Candle history, or a callable returning it.
            indicators_source: Indicator history (oldest first, the last entry
                is the current reading), or a callable returning it.
            market_conditions: Current market context.
            confluence_zones: Confluence zones near the current price.
            now: Reference time for staleness decay.

        Raises:
            MissingInputError: no candles or no indicator history at all.
        """
        async with self._cycle_lock:
            candles: List[Candle] = await _resolve(candles_source)
            history: List[IndicatorSample] = await _resolve(indicators_source)
            if not candles:
                raise MissingInputError(f"No candles supplied for {self.symbol} {self.timeframe}")
            if not history:
                raise MissingInputError(f"No indicator history supplied for {self.symbol} {self.timeframe}")

            self._cycles += 1
            notes: List[str] = []
            current = history[-1]

            thresholds = self.thresholds.update_thresholds(candles, market_conditions, history)
            matrix = self.scoring.calculate_indicator_matrix(current, history, candles, thresholds)
            predictions, patterns, predictor_confidence = self._run_predictor(candles, notes)

            confidence = self.fusion.calculate_weighted_confidence(
                candles,
                matrix,
                market_conditions,
                confluence_zones=confluence_zones,
                thresholds=thresholds,
                indicators=current,
                predictor_confidence=predictor_confidence,
                now=now,
                indicator_weights=self.scoring.config.indicator_weights,
            )

            decision = ConfluenceDecision(
                symbol=self.symbol,
                timeframe=self.timeframe,
                cycle=self._cycles,
                thresholds=thresholds,
                matrix=matrix,
                confidence=confidence,
                predictions=tuple(predictions),
                patterns=tuple(patterns),
                predictor_confidence=predictor_confidence,
                notes=tuple(notes),
            )
            self._decisions.append(decision)

            emit_event(
                self.events, 'decision_made', source='engine',
                symbol=self.symbol, timeframe=self.timeframe, cycle=self._cycles,
                signal=matrix.dominant_signal.value, confidence=confidence.overall_confidence,
                risk_level=confidence.risk_level.value,
            )
            logger.info(
                f"{self.symbol} {self.timeframe} cycle {self._cycles}: {matrix.dominant_signal.value} "
                f"at {confidence.overall_confidence:.2f} confidence ({confidence.risk_level.value} risk)"
            )
            return decision

    def _run_predictor(self, candles: List[Candle], notes: List[str]):
        if not self.predictor.is_operational:
            return [], [], None
        try:
            predictions = self.predictor.generate_predictions(candles)
            patterns = self.predictor.recognize_patterns(candles)
        except InsufficientDataError as e:
            notes.append(str(e))
            emit_event(self.events, 'predictor_skipped', source='engine', reason=str(e))
            logger.debug(f"Predictor skipped for {self.symbol}: {e}")
            return [], [], None

        if not self.predictor.is_trained:
            notes.append("Predictor not trained yet")
            return predictions, patterns, None
        return predictions, patterns, self.predictor.calculate_confidence_score(candles)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    @property
    def training_in_progress(self) -> bool:
        return self._training_task is not None and not self._training_task.done()

    def start_background_training(self, candles: Sequence[Candle], max_epochs: Optional[int] = None,
                                  time_budget: Optional[float] = None) -> 'asyncio.Task[TrainingResult]':
        """Start predictor training in the background, or return the run already in progress."""
        if self.training_in_progress:
            logger.info(f"Training already running for {self.symbol} {self.timeframe}")
            return self._training_task

        self._training_task = self.predictor.start_training_task(candles, max_epochs, time_budget)
        emit_event(self.events, 'training_started', source='engine', symbol=self.symbol, candles=len(candles))
        return self._training_task

    def cancel_training(self) -> bool:
        if not self.training_in_progress:
            return False
        self._training_task.cancel()
        logger.info(f"Cancelled predictor training for {self.symbol} {self.timeframe}")
        return True

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_decision_history(self) -> List[ConfluenceDecision]:
        return self._decisions.to_list()

    def reset(self, reset_predictor: bool = False) -> None:
        """Restore base thresholds and clear histories. The trained network survives unless asked."""
        self.thresholds.reset()
        self.fusion.reset()
        self._decisions.clear()
        if reset_predictor:
            self.predictor.reset()
        emit_event(self.events, 'engine_reset', source='engine', symbol=self.symbol)

    def update_config(self, **overrides) -> EngineConfig:
        """
        Hot-reload any configuration section, e.g.
        ``update_config(fusion={'decay_rate': 0.1}, decision_history=20)``.
        Unknown keys raise ``InvalidConfigurationError``.
        """
        # Rejects unknown keys before any component changes
        self.config.with_overrides(**overrides)

        section_updaters = {
            'thresholds': self.thresholds.update_config,
            'scoring': self.scoring.update_config,
            'predictor': self.predictor.update_config,
            'fusion': self.fusion.update_config,
        }
        for section, updater in section_updaters.items():
            if section in overrides:
                section_overrides = overrides[section]
                if hasattr(section_overrides, 'to_dict'):
                    section_overrides = section_overrides.to_dict()
                updater(**dict(section_overrides))

        history_size = overrides.get('decision_history')
        if history_size is not None:
            if int(history_size) > 0:
                self._decisions.resize(int(history_size))
                self._decision_history_size = int(history_size)
            else:
                logger.error(f"Rejected decision_history {history_size}; must be positive")
        return self.config

    def get_status(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'cycles': self._cycles,
            'decisions': len(self._decisions),
            'thresholds_enabled': self.thresholds.enabled,
            'threshold_effectiveness': self.thresholds.get_effectiveness_metrics(),
            'predictor': self.predictor.get_network_stats(),
            'training_in_progress': self.training_in_progress,
            'confidence_statistics': self.fusion.get_confidence_statistics(),
        }
