"""Backtesting engine and candidate evaluation tools for strategy research.
Provides the bar-replay engine, performance metrics, fold builders, ranking and portfolio weighting.
"""
