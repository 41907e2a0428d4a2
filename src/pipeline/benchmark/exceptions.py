"""Exceptions raised by the benchmark pipeline."""

class ImputationError(Exception):
    """An imputation method could not complete the data."""
