"""
Quote Payload Validation

The intercepted response is an external schema this system does not
control. Every field is checked before it is trusted; anything off-shape
is rejected with ExtractionError instead of being patched up.
"""

import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

from coffee_futures.pipelines.price.schema import (
    QUOTE_ACTIVE_FIELD,
    QUOTE_DATE_FIELD,
    QUOTE_FIELD_MAP,
    QUOTE_LIST_FIELD,
    QUOTE_SYMBOL_FIELD,
)
from coffee_futures.shared.config import INSTRUMENTS
from coffee_futures.shared.exceptions import ExtractionError
from coffee_futures.shared.utils import setup_logger, to_trade_date

logger = setup_logger(__name__)


@dataclass(frozen=True)
class QuoteSnapshot:
    """OHLCV snapshot of the active contract for one trading day."""

    instrument: str
    symbol: str
    trade_date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# -----------------------------
# Payload -> Snapshot
# -----------------------------

def parse_quote_payload(payload: Any, instrument: str) -> QuoteSnapshot:
    """
    Validate a captured quote payload and map its active contract.

    Raises:
        ExtractionError: payload shape is unexpected, no active contract is
            marked, or a required field is missing or invalid.
    """

    quotes = _validate_quote_list(payload, instrument)
    active = select_active_contract(quotes, instrument)
    return _to_snapshot(active, instrument)


def select_active_contract(quotes: list[dict[str, Any]], instrument: str) -> dict[str, Any]:
    """
    Return the quote the exchange treats as front-month.

    The marker may sit on the quote itself or inside its ``raw`` object and
    must be the boolean ``True``.
    """

    active = [quote for quote in quotes if _is_active(quote)]

    if not active:
        raise ExtractionError(
            f"No active contract found among {len(quotes)} quotes", instrument=instrument
        )

    if len(active) > 1:
        logger.warning(
            "%s: %d contracts marked active (%s), using %s",
            instrument,
            len(active),
            ", ".join(str(q.get(QUOTE_SYMBOL_FIELD)) for q in active),
            active[0].get(QUOTE_SYMBOL_FIELD),
        )

    return active[0]


# -----------------------------
# Internal Helpers
# -----------------------------

def _validate_quote_list(payload: Any, instrument: str) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        quotes = payload
    elif isinstance(payload, dict):
        quotes = payload.get(QUOTE_LIST_FIELD)
    else:
        raise ExtractionError(
            f"Quote payload must be an object or list, got {type(payload).__name__}",
            instrument=instrument,
        )

    if not isinstance(quotes, list):
        raise ExtractionError("Quote payload has no 'data' list", instrument=instrument)
    if not quotes:
        raise ExtractionError("Quote payload contains no quotes", instrument=instrument)

    for index, quote in enumerate(quotes):
        if not isinstance(quote, dict):
            raise ExtractionError(
                f"Quote #{index} is not an object", instrument=instrument
            )

    return quotes


def _is_active(quote: dict[str, Any]) -> bool:
    if quote.get(QUOTE_ACTIVE_FIELD) is True:
        return True
    raw = quote.get("raw")
    return isinstance(raw, dict) and raw.get(QUOTE_ACTIVE_FIELD) is True


def _to_snapshot(quote: dict[str, Any], instrument: str) -> QuoteSnapshot:
    symbol = quote.get(QUOTE_SYMBOL_FIELD)
    if not isinstance(symbol, str) or not symbol.strip():
        raise ExtractionError("Active contract has no symbol", instrument=instrument)

    raw = quote.get("raw")
    if not isinstance(raw, dict):
        raise ExtractionError(
            f"Active contract {symbol} has no 'raw' object", instrument=instrument
        )

    values = {
        field: _number(raw, key, symbol, instrument) for field, key in QUOTE_FIELD_MAP.items()
    }

    if values["low"] > values["high"]:
        raise ExtractionError(
            f"{symbol}: low {values['low']} above high {values['high']}", instrument=instrument
        )

    if QUOTE_DATE_FIELD not in raw:
        raise ExtractionError(f"{symbol}: missing '{QUOTE_DATE_FIELD}'", instrument=instrument)
    try:
        trade_date = to_trade_date(raw[QUOTE_DATE_FIELD], INSTRUMENTS[instrument]["timezone"])
    except ValueError as exc:
        raise ExtractionError(f"{symbol}: {exc}", instrument=instrument) from exc

    return QuoteSnapshot(
        instrument=instrument,
        symbol=symbol.strip(),
        trade_date=trade_date,
        **values,
    )


def _number(raw: dict[str, Any], key: str, symbol: str, instrument: str) -> float:
    if key not in raw:
        raise ExtractionError(f"{symbol}: missing '{key}'", instrument=instrument)

    value = raw[key]
    if isinstance(value, bool) or value is None:
        raise ExtractionError(f"{symbol}: '{key}' is not numeric ({value!r})", instrument=instrument)

    if isinstance(value, str):
        value = value.replace(",", "").strip()

    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ExtractionError(
            f"{symbol}: '{key}' is not numeric ({raw[key]!r})", instrument=instrument
        ) from exc

    if math.isnan(number) or math.isinf(number) or number < 0:
        raise ExtractionError(f"{symbol}: '{key}' out of range ({number})", instrument=instrument)

    return number
