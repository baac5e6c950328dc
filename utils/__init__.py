

from .logging_utils import (
    setup_logging,
    log_performance,
    EngineEvent,
    EventCollector,
    emit_event
)

from .error_handling import (
    ConfluenceEngineError,
    InsufficientDataError,
    InvalidConfigurationError,
    NumericInstabilityError,
    MissingInputError,
    is_finite,
    finite_or_default,
    clamp,
    safe_divide,
    guarded_factor
)

from .ring_buffer import RingBuffer

from .config_validator import (
    ConfigValidationResult,
    validate_threshold_config,
    validate_scoring_config,
    validate_predictor_config,
    validate_fusion_config,
    validate_engine_config
)

__all__ = [
    # Logging utilities
    "setup_logging",
    "log_performance",
    "EngineEvent",
    "EventCollector",
    "emit_event",

    # Error handling
    "ConfluenceEngineError",
    "InsufficientDataError",
    "InvalidConfigurationError",
    "NumericInstabilityError",
    "MissingInputError",
    "is_finite",
    "finite_or_default",
    "clamp",
    "safe_divide",
    "guarded_factor",

    # Containers
    "RingBuffer",

    # Configuration validation
    "ConfigValidationResult",
    "validate_threshold_config",
    "validate_scoring_config",
    "validate_predictor_config",
    "validate_fusion_config",
    "validate_engine_config"
]
