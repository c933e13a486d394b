"""
Trailing Moving Average

Mean closing price over the most recent persisted records of one
instrument. History is always read back from the store, so the record
being ingested counts once it has been written.
"""

from datetime import date

import pandas as pd

from coffee_futures.shared.config import Config
from coffee_futures.shared.db.storage import MarketDataStore
from coffee_futures.shared.exceptions import AggregationError


def compute_moving_average_30(
    store: MarketDataStore,
    instrument: str,
    as_of: date,
    window: int = Config.MOVING_AVERAGE_WINDOW,
) -> float | None:
    """
    Mean ``usd_price`` of up to ``window`` records with ``trade_date <= as_of``.

    Fewer records than ``window`` average over what exists; no records
    returns None.

    Raises:
        AggregationError: a historical price is missing or not numeric.
        PersistenceError: the store cannot be read.
    """

    records = store.query_recent(instrument, as_of, limit=window)
    return mean_close(records, instrument)


def mean_close(records: list[dict], instrument: str | None = None) -> float | None:
    """
    Arithmetic mean of the records' ``usd_price`` (``close`` when unset).
    """

    if not records:
        return None

    prices = pd.Series(
        [r.get("usd_price") if r.get("usd_price") is not None else r.get("close") for r in records],
        dtype=object,
    )

    try:
        numeric = pd.to_numeric(prices, errors="raise")
    except (TypeError, ValueError) as exc:
        raise AggregationError(
            f"Non-numeric price in history: {exc}", instrument=instrument
        ) from exc

    if numeric.isna().any():
        missing = [str(r.get("trade_date")) for r, bad in zip(records, numeric.isna()) if bad]
        raise AggregationError(
            f"Missing price in history for {', '.join(missing)}", instrument=instrument
        )

    return float(numeric.mean())
