"""Shared utilities and configuration."""

from coffee_futures.shared.config import INSTRUMENTS, Config, validate_instrument
from coffee_futures.shared.exceptions import (
    AggregationError,
    ConversionFailure,
    ExtractionError,
    PersistenceError,
    PipelineError,
)
from coffee_futures.shared.utils import setup_logger, to_trade_date, utc_now

__all__ = [
    "Config",
    "INSTRUMENTS",
    "validate_instrument",
    "setup_logger",
    "to_trade_date",
    "utc_now",
    "PipelineError",
    "ExtractionError",
    "ConversionFailure",
    "PersistenceError",
    "AggregationError",
]
