"""Tests for the trailing moving average."""

from datetime import date, timedelta

import pytest

from coffee_futures.pipelines.price.moving_average import compute_moving_average_30, mean_close
from coffee_futures.shared.exceptions import AggregationError

AS_OF = date(2025, 10, 17)


def _seed(store, instrument: str, prices: list[float], end: date = AS_OF) -> None:
    """Persist one record per price, the last price on ``end``."""
    for offset, price in enumerate(reversed(prices)):
        store.upsert_market_data(
            instrument,
            end - timedelta(days=offset),
            {
                "open": price,
                "high": price,
                "low": price,
                "close": price,
                "volume": 100,
                "usd_price": price,
                "idr_rate": 16000.0,
                "idr_price": price * 16000.0,
            },
        )


class TestComputeMovingAverage:
    def test_uses_latest_thirty_records(self, store):
        _seed(store, "RM", [float(p) for p in range(1, 36)])

        # Latest 30 closes are 6..35
        assert compute_moving_average_30(store, "RM", AS_OF) == pytest.approx(20.5)

    def test_partial_history_averages_what_exists(self, store):
        _seed(store, "RM", [1.0, 2.0, 3.0, 4.0, 5.0])

        assert compute_moving_average_30(store, "RM", AS_OF) == pytest.approx(3.0)

    def test_no_history_returns_none(self, store):
        assert compute_moving_average_30(store, "KC", AS_OF) is None

    def test_ignores_records_after_as_of(self, store):
        _seed(store, "RM", [10.0, 20.0, 1000.0], end=AS_OF + timedelta(days=1))

        assert compute_moving_average_30(store, "RM", AS_OF) == pytest.approx(15.0)

    def test_ignores_other_instrument(self, store):
        _seed(store, "RM", [4500.0, 4600.0])
        _seed(store, "KC", [380.0])

        assert compute_moving_average_30(store, "KC", AS_OF) == pytest.approx(380.0)

    def test_custom_window(self, store):
        _seed(store, "RM", [1.0, 2.0, 3.0, 4.0])

        assert compute_moving_average_30(store, "RM", AS_OF, window=2) == pytest.approx(3.5)


class TestMeanClose:
    def test_empty(self):
        assert mean_close([]) is None

    def test_falls_back_to_close(self):
        records = [{"usd_price": None, "close": 10.0}, {"usd_price": 20.0, "close": 99.0}]
        assert mean_close(records) == pytest.approx(15.0)

    def test_non_numeric_price_raises(self):
        records = [{"usd_price": 10.0, "trade_date": AS_OF}, {"usd_price": "abc", "trade_date": AS_OF}]

        with pytest.raises(AggregationError, match="Non-numeric"):
            mean_close(records, "RM")

    def test_missing_price_raises(self):
        records = [
            {"usd_price": 10.0, "trade_date": AS_OF},
            {"usd_price": None, "close": None, "trade_date": AS_OF - timedelta(days=1)},
        ]

        with pytest.raises(AggregationError, match="2025-10-16") as excinfo:
            mean_close(records, "KC")

        assert excinfo.value.instrument == "KC"
