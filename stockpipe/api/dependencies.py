"""FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from stockpipe.services.stock_service import StockService


@lru_cache
def get_stock_service() -> StockService:
    return StockService()
