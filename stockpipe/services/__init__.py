"""Business logic services."""

from .fetch_orchestrator import FetchOrchestrator, FetchReport
from .ingestion import IngestionReport, IngestionService
from .metrics import MetricsReport, MetricsService
from .pipeline import ClosingPipeline, PipelineReport
from .portfolio import PortfolioReport, PortfolioService
from .stock_service import StockService


__all__ = [
    "FetchOrchestrator",
    "FetchReport",
    "IngestionReport",
    "IngestionService",
    "MetricsReport",
    "MetricsService",
    "ClosingPipeline",
    "PipelineReport",
    "PortfolioReport",
    "PortfolioService",
    "StockService",
]
