"""Treasury Tracker: budget hierarchy and transaction linking pipeline."""

__version__ = "0.1.0"
