import pytest

from tests.market_data import (
    calm_conditions,
    make_candles,
    make_conditions,
    make_indicator_history,
    stress_conditions,
)


@pytest.fixture
def candles():
    """150 hourly candles with a mild upward drift."""
    return make_candles(150)


@pytest.fixture
def indicator_history(candles):
    return make_indicator_history(candles)


@pytest.fixture
def conditions():
    return make_conditions()


@pytest.fixture
def stress():
    return stress_conditions()


@pytest.fixture
def calm():
    return calm_conditions()
