"""
Root pytest configuration.

Shared fixtures: an in-memory SQLite store per test, builders for the quote
API payload, and fake collectors for pipeline tests. No test touches the
network or starts a browser.
"""

from datetime import date

import pytest

from coffee_futures.pipelines.price.validate import QuoteSnapshot
from coffee_futures.shared.db.storage import MarketDataStore


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    """Fresh in-memory database with all tables."""
    s = MarketDataStore.from_url("sqlite://")
    s.create_schema()
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Quote payloads
# ---------------------------------------------------------------------------


def _quote(
    symbol: str,
    active: bool = False,
    trade_time: object = "2025-10-17",
    open_price: object = 4510.0,
    high: object = 4580.0,
    low: object = 4490.0,
    last: object = 4550.0,
    volume: object = 12873,
) -> dict:
    return {
        "symbol": symbol,
        "contractName": f"Coffee ({symbol})",
        "lastPrice": f"{last}s",
        "raw": {
            "symbol": symbol,
            "openPrice": open_price,
            "highPrice": high,
            "lowPrice": low,
            "lastPrice": last,
            "volume": volume,
            "tradeTime": trade_time,
            "isActive": active,
        },
    }


@pytest.fixture
def make_quote():
    """Builder for a single quote entry as returned by the quote API."""
    return _quote


@pytest.fixture
def quote_payload():
    """Three RM contracts with the January contract marked active."""
    return {
        "count": 3,
        "total": 3,
        "data": [
            _quote("RMX25", last=4600.0, high=4650.0),
            _quote("RMF26", active=True),
            _quote("RMH26", last=4400.0, low=4380.0, high=4450.0),
        ],
    }


# ---------------------------------------------------------------------------
# Fake collectors
# ---------------------------------------------------------------------------


def make_snapshot(
    instrument: str = "RM",
    trade_date: date = date(2025, 10, 17),
    close: float = 4550.0,
    symbol: str | None = None,
) -> QuoteSnapshot:
    return QuoteSnapshot(
        instrument=instrument,
        symbol=symbol or f"{instrument}F26",
        trade_date=trade_date,
        open=close - 40,
        high=close + 30,
        low=close - 60,
        close=close,
        volume=10_000.0,
    )


class FakeQuoteCollector:
    """Returns a configured snapshot (or raises) per instrument."""

    def __init__(self, outcomes: dict | None = None) -> None:
        self.outcomes = outcomes or {}
        self.calls: list[str] = []

    def collect(self, instrument: str) -> QuoteSnapshot:
        self.calls.append(instrument)
        outcome = self.outcomes.get(instrument) or make_snapshot(instrument)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeRateCollector:
    def __init__(self, rate: float = 16250.0) -> None:
        self.rate = rate
        self.calls = 0

    def get_usd_to_idr_rate(self) -> float:
        self.calls += 1
        return self.rate


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def fake_quotes():
    return FakeQuoteCollector()


@pytest.fixture
def fake_rates():
    return FakeRateCollector()
