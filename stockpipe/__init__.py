"""stockpipe: market data ingestion, idempotent merge and derived metrics."""

__version__ = "1.0.0"
