"""Repair Price Estimator: pricing rules and quote workflow for a repair counter."""

__version__ = "1.0.0"
