import functools
import logging
import math
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ConfluenceEngineError(Exception):
    """Base exception for confluence engine errors."""
    pass


class InsufficientDataError(ConfluenceEngineError):
    """Raised when a computation needs more history than was supplied."""

    def __init__(self, message: str, required: Optional[int] = None, received: Optional[int] = None):
        self.required = required
        self.received = received
        super().__init__(message)


class InvalidConfigurationError(ConfluenceEngineError):
    """Exception for malformed or out-of-range configuration."""
    pass


class NumericInstabilityError(ConfluenceEngineError):
    """Exception for NaN or infinite intermediates."""
    pass


class MissingInputError(ConfluenceEngineError):
    """Raised when a required collaborator input is entirely absent."""
    pass


def is_finite(value: Any) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def finite_or_default(value: Any, default: float = 0.0) -> float:
    """Return ``value`` as a float, or ``default`` when it is NaN, infinite or not numeric."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp to [lower, upper]; non-finite input collapses to ``lower``."""
    value = finite_or_default(value, lower)
    return max(lower, min(upper, value))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers, returning default if the result is not finite."""
    try:
        if denominator == 0:
            return default
        return finite_or_default(numerator / denominator, default)
    except (TypeError, ZeroDivisionError):
        return default


def guarded_factor(name: str, default: float, lower: float = 0.0, upper: float = 1.0):
    """
    Decorator for factor computations that must never leak an exception or a
    non-finite value. The wrapped function returns the computed value; on
    failure the default is returned instead and the reason is logged.

    The wrapper returns ``(value, failure_reason)`` where the reason is None
    on success.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                value = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error computing {name} factor: {e}")
                return default, f"{name} factor failed ({e}); using default {default:.2f}"

            if not is_finite(value):
                logger.warning(f"Non-finite {name} factor ({value}); using default {default:.2f}")
                return default, f"{name} factor was not finite; using default {default:.2f}"
            return clamp(value, lower, upper), None
        return wrapper
    return decorator
