"""Collectors package."""

from coffee_futures.ingestion.collectors.base_collector import BaseCollector
from coffee_futures.ingestion.collectors.exchange_rate_collector import ExchangeRateCollector
from coffee_futures.ingestion.collectors.futures_quote_collector import (
    FuturesQuoteCollector,
    extract_snapshot,
)

__all__ = ["BaseCollector", "ExchangeRateCollector", "FuturesQuoteCollector", "extract_snapshot"]
