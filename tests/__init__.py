"""
Test Suite Module

Unit and integration tests for the confluence engine.

Test Categories:
- Configuration value objects and validation
- Ring buffer and numeric helpers
- Indicator scoring, adaptive thresholds and regime classification
- NKN predictor training and inference
- Confluence fusion and the per-symbol engine

Usage:
    # Run all tests
    python -m pytest tests/

    # Run a single module
    python -m pytest tests/test_adaptive_thresholds.py
"""
