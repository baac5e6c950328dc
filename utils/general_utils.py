from typing import Iterable, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

from .error_handling import finite_or_default, safe_divide

Number = Union[float, int]


def to_array(values: Iterable[Number]) -> np.ndarray:
    """Float array with non-finite entries dropped."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return arr
    return arr[np.isfinite(arr)]


def linear_slope(values: Sequence[Number]) -> float:
    """Least-squares slope per step; 0.0 for fewer than two points."""
    arr = to_array(values)
    if arr.size < 2 or np.allclose(arr, arr[0]):
        return 0.0
    result = stats.linregress(np.arange(arr.size, dtype=float), arr)
    return finite_or_default(result.slope, 0.0)


def trend_fit(values: Sequence[Number]):
    """Return (slope, r_squared) for a straight-line fit."""
    arr = to_array(values)
    if arr.size < 3 or np.allclose(arr, arr[0]):
        return 0.0, 0.0
    result = stats.linregress(np.arange(arr.size, dtype=float), arr)
    return finite_or_default(result.slope, 0.0), finite_or_default(result.rvalue ** 2, 0.0)


def log_returns(prices: Sequence[Number]) -> np.ndarray:
    arr = np.asarray(list(prices), dtype=float)
    if arr.size < 2:
        return np.array([])
    with np.errstate(divide='ignore', invalid='ignore'):
        returns = np.diff(np.log(arr))
    return returns[np.isfinite(returns)]


def annualized_volatility(prices: Sequence[Number], periods_per_year: int = 252,
                          default: float = 0.2) -> float:
    """Sample stdev of log returns scaled by sqrt(periods_per_year)."""
    returns = log_returns(prices)
    if returns.size < 2:
        return default
    return finite_or_default(float(np.std(returns, ddof=1) * np.sqrt(periods_per_year)), default)


def sample_std(values: Sequence[Number]) -> float:
    arr = to_array(values)
    if arr.size < 2:
        return 0.0
    return finite_or_default(float(np.std(arr, ddof=1)), 0.0)


def safe_mean(values: Sequence[Number], default: float = 0.0) -> float:
    arr = to_array(values)
    if arr.size == 0:
        return default
    return finite_or_default(float(arr.mean()), default)


def pearson(a: Sequence[Number], b: Sequence[Number]) -> float:
    """Pearson correlation of two aligned series; 0.0 when undefined."""
    frame = pd.DataFrame({'a': list(a), 'b': list(b)}).replace([np.inf, -np.inf], np.nan).dropna()
    if len(frame) < 3:
        return 0.0
    return finite_or_default(frame['a'].corr(frame['b']), 0.0)



def consistency_ratio(labels: Sequence[str], target: str) -> float:
    """Share of ``labels`` equal to ``target``."""
    labels = list(labels)
    if not labels:
        return 0.0
    return sum(1 for label in labels if label == target) / len(labels)


def rolling_stability(values: Sequence[Number], window: int = 10) -> float:
    """
    1 minus the coefficient of variation of a rolling stdev series, floored at 0.
    Steady dispersion gives values near 1.
    """
    series = pd.Series(to_array(values))
    if len(series) < window + 2:
        return 0.5
    rolling = series.rolling(window=window).std().dropna()
    mean = rolling.mean()
    if not np.isfinite(mean) or mean <= 0:
        return 1.0
    return float(np.clip(1.0 - rolling.std() / mean, 0.0, 1.0))
