"""Hedera swap engine: route validation, preconditions, building and monitoring."""

__version__ = "0.1.0"
