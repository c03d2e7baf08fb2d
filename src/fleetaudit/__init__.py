"""Ecosystem compliance audit engine."""

__version__ = "1.0.0"
