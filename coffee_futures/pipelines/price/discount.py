"""
Moving-Average Discount Values

One derived value per configured discount setting:

    value = moving_average_30 * (1 - discount_ratio)

The computation is pure; persistence replaces any earlier value for the
same (trade_date, setting) pair.
"""

import math

from coffee_futures.shared.db.storage import MarketDataStore
from coffee_futures.shared.exceptions import AggregationError
from coffee_futures.shared.utils import setup_logger

logger = setup_logger(__name__)


def compute_discount_value(moving_average: float, discount_ratio: float) -> float:
    """Deterministic discount value for one setting."""
    for name, number in (("moving_average", moving_average), ("discount_ratio", discount_ratio)):
        if isinstance(number, bool) or not isinstance(number, (int, float)) or math.isnan(number):
            raise AggregationError(f"{name} must be numeric, got {number!r}")
    return moving_average * (1 - discount_ratio)


def generate_discount_values(
    store: MarketDataStore,
    record: dict,
    settings: list[dict],
) -> list[dict]:
    """
    Compute and store one discount value per setting for ``record``.

    Args:
        store: Target store.
        record: Persisted market data record with ``moving_average_30`` set.
        settings: Discount settings of the record's instrument.

    Returns:
        The stored discount value rows (empty when no settings exist).

    Raises:
        AggregationError: the record has no moving average, or a setting
            belongs to another instrument or has a non-numeric ratio.
    """

    instrument = record["instrument"]
    moving_average = record.get("moving_average_30")

    if not settings:
        logger.info("%s %s: no discount settings configured", instrument, record["trade_date"])
        return []

    if moving_average is None:
        raise AggregationError(
            f"Record {instrument} {record['trade_date']} has no moving average",
            instrument=instrument,
        )

    # Validate every setting before writing any value.
    computed = []
    for setting in settings:
        if setting["instrument"] != instrument:
            raise AggregationError(
                f"Setting {setting['id']} belongs to {setting['instrument']}, not {instrument}",
                instrument=instrument,
            )
        computed.append((setting, compute_discount_value(moving_average, setting["discount_ratio"])))

    stored = []
    for setting, value in computed:
        row = store.replace_discount_values(record["trade_date"], setting["id"], value)
        logger.debug(
            "%s %s: %s (ratio %.4f) -> %.4f",
            instrument,
            record["trade_date"],
            setting["label"],
            setting["discount_ratio"],
            value,
        )
        stored.append(row)

    return stored
