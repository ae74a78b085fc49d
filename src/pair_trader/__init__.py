"""Pair Trader - rolling-indicator market monitor with risk-bounded execution."""

__version__ = "0.1.0"
