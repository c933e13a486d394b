"""Shared utility functions for the coffee futures pipeline."""

import logging
import math
from datetime import date, datetime, timezone
from pathlib import Path

import pandas as pd
import pytz


def setup_logger(
    name: str, log_file: Path | None = None, level: int | str = logging.INFO
) -> logging.Logger:
    """Set up logger with console and file handlers.

    Handlers are attached on the first call for a given name only, so
    repeated construction of the same component does not duplicate output.

    Args:
        name: Logger name
        log_file: Optional path to log file
        level: Logging level (int constant or string name like 'DEBUG', 'INFO')

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Convert string level to int if needed
    if isinstance(level, str):
        numeric_level = getattr(logging, level.upper(), logging.INFO)
        logger.setLevel(numeric_level)
    else:
        logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


_DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%m/%d/%y", "%m/%d/%Y")


def to_trade_date(value: object, exchange_tz: str) -> date:
    """Resolve a source-reported trade time into the exchange trading day.

    Accepts plain dates (``YYYY-MM-DD``, ``YYYYMMDD``, ``MM/DD/YY``, ``MM/DD/YYYY``),
    ISO datetimes and Unix epoch seconds. Epoch values and zone-aware
    datetimes are shifted to ``exchange_tz`` before the date is taken;
    naive values are read as already local to the exchange.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Unparseable trade date: {value!r}")

    tz = pytz.timezone(exchange_tz)

    if isinstance(value, datetime):
        ts = pd.Timestamp(value)
    elif isinstance(value, date):
        return value
    elif isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value) or value <= 0:
            raise ValueError(f"Unparseable trade date: {value!r}")
        ts = pd.Timestamp(value, unit="s", tz="UTC")
    elif isinstance(value, str):
        text = value.strip()
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        if text.isdigit():
            return to_trade_date(int(text), exchange_tz)
        try:
            ts = pd.Timestamp(text)
        except ValueError as exc:
            raise ValueError(f"Unparseable trade date: {value!r}") from exc
    else:
        raise ValueError(f"Unparseable trade date: {value!r}")

    if pd.isna(ts):
        raise ValueError(f"Unparseable trade date: {value!r}")
    if ts.tzinfo is not None:
        ts = ts.tz_convert(tz)
    return ts.date()
