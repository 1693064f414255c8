"""Resilient ISBN metadata resolution for a personal library tracker."""

__version__ = "1.0.0"
