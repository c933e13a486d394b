"""
Futures Quote Data Schema

Shape of the intercepted quote API payload and of the snapshot handed to
the ingestion pipeline.
"""

# -----------------------------
# Source payload
# -----------------------------

#: Key of the quote list when the response wraps it (``{"data": [...]}``);
#: a bare top-level list is accepted as well.
QUOTE_LIST_FIELD = "data"

#: Snapshot field -> key inside each quote's ``raw`` object.
QUOTE_FIELD_MAP = {
    "open": "openPrice",
    "high": "highPrice",
    "low": "lowPrice",
    "close": "lastPrice",
    "volume": "volume",
}

QUOTE_DATE_FIELD = "tradeTime"
QUOTE_SYMBOL_FIELD = "symbol"
QUOTE_ACTIVE_FIELD = "isActive"
