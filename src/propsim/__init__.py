"""Property and tenant management simulation engine."""

__version__ = "0.1.0"
