"""
SQLAlchemy storage layer for coffee futures market data.

The store is an explicit handle: build it once per process (or per test),
pass it to the pipeline, and close it to release the connection pool.

Example:

    from datetime import date
    from coffee_futures.shared.db.storage import MarketDataStore

    with MarketDataStore.from_url("sqlite:///data/coffee.db") as store:
        store.create_schema()
        store.upsert_market_data(
            "RM",
            date(2025, 10, 17),
            {
                "open": 4510.0,
                "high": 4580.0,
                "low": 4490.0,
                "close": 4550.0,
                "volume": 12873,
                "usd_price": 4550.0,
                "idr_rate": 16250.0,
                "idr_price": 73937500.0,
            },
        )
        recent = store.query_recent("RM", date(2025, 10, 17), limit=30)
"""

from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Iterator

import pandas as pd
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from coffee_futures.shared.exceptions import PersistenceError

from .base import Base
from .engine import create_db_engine
from .models import MaDiscountSetting, MaDiscountValue, MarketData
from .session import get_db, make_session_factory

ALLOWED_TABLES = {
    MarketData.__tablename__,
    MaDiscountSetting.__tablename__,
    MaDiscountValue.__tablename__,
}

#: Columns callers may write on a market data record.
MARKET_DATA_FIELDS = {
    "open",
    "high",
    "low",
    "close",
    "volume",
    "usd_price",
    "idr_rate",
    "idr_price",
    "moving_average_30",
}


class MarketDataStore:
    """Durable store for market records, discount settings and discount values.

    Market records are upserted by ``(instrument, trade_date)``; discount
    values are replaced by ``(trade_date, setting_id)``. Every method runs in
    its own transaction and returns plain dicts. Database errors surface as
    :class:`PersistenceError`.
    """

    def __init__(self, engine: Engine, session_factory: sessionmaker | None = None) -> None:
        self.engine = engine
        self._session_factory = session_factory or make_session_factory(engine)

    @classmethod
    def from_url(cls, url: str | None = None, echo: bool = False) -> "MarketDataStore":
        """Create a store with its own engine (default: configured database URL)."""
        return cls(create_db_engine(url, echo=echo))

    def __enter__(self) -> "MarketDataStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying connection pool."""
        self.engine.dispose()

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with get_db(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{action} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def create_schema(self) -> None:
        """Create missing tables."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Schema creation failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    def upsert_market_data(
        self, instrument: str, trade_date: date, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Insert or update the record for ``(instrument, trade_date)`` in place."""
        values = _market_fields(fields)
        with self._session(f"Upsert {instrument} {trade_date}") as session:
            record = _find_market_data(session, instrument, trade_date)
            if record is None:
                record = MarketData(instrument=instrument, trade_date=trade_date, **values)
                session.add(record)
            else:
                for key, value in values.items():
                    setattr(record, key, value)
                record.updated_at = datetime.now(timezone.utc)
            session.flush()
            return record.to_dict()

    def update_market_data(
        self, instrument: str, trade_date: date, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Apply a partial update to an existing record."""
        values = _market_fields(fields)
        with self._session(f"Update {instrument} {trade_date}") as session:
            record = _find_market_data(session, instrument, trade_date)
            if record is None:
                raise PersistenceError(
                    f"No market data for {instrument} on {trade_date}", instrument=instrument
                )
            for key, value in values.items():
                setattr(record, key, value)
            record.updated_at = datetime.now(timezone.utc)
            session.flush()
            return record.to_dict()

    def get_market_data(self, instrument: str, trade_date: date) -> dict[str, Any] | None:
        with self._session(f"Read {instrument} {trade_date}") as session:
            record = _find_market_data(session, instrument, trade_date)
            return record.to_dict() if record is not None else None

    def query_recent(self, instrument: str, as_of: date, limit: int) -> list[dict[str, Any]]:
        """Return up to ``limit`` records with ``trade_date <= as_of``, newest first."""
        with self._session(f"Query recent {instrument}") as session:
            rows = (
                session.query(MarketData)
                .filter(MarketData.instrument == instrument, MarketData.trade_date <= as_of)
                .order_by(MarketData.trade_date.desc())
                .limit(limit)
                .all()
            )
            return [row.to_dict() for row in rows]

    # ------------------------------------------------------------------
    # Discount settings (managed out-of-band)
    # ------------------------------------------------------------------

    def list_discount_settings(self, instrument: str) -> list[dict[str, Any]]:
        with self._session(f"List discount settings {instrument}") as session:
            rows = (
                session.query(MaDiscountSetting)
                .filter(MaDiscountSetting.instrument == instrument)
                .order_by(MaDiscountSetting.id)
                .all()
            )
            return [row.to_dict() for row in rows]

    def add_discount_setting(
        self, instrument: str, label: str, discount_ratio: float
    ) -> dict[str, Any]:
        with self._session(f"Add discount setting {instrument}/{label}") as session:
            setting = MaDiscountSetting(
                instrument=instrument, label=label, discount_ratio=float(discount_ratio)
            )
            session.add(setting)
            session.flush()
            return setting.to_dict()

    # ------------------------------------------------------------------
    # Discount values
    # ------------------------------------------------------------------

    def replace_discount_values(
        self, trade_date: date, setting_id: int, value: float
    ) -> dict[str, Any]:
        """Replace the value for ``(trade_date, setting_id)`` with a fresh row."""
        with self._session(f"Replace discount value {trade_date}/{setting_id}") as session:
            setting = session.get(MaDiscountSetting, setting_id)
            if setting is None:
                raise PersistenceError(f"Unknown discount setting id {setting_id}")

            record = _find_market_data(session, setting.instrument, trade_date)
            if record is None:
                raise PersistenceError(
                    f"No market data for {setting.instrument} on {trade_date}",
                    instrument=setting.instrument,
                )

            session.query(MaDiscountValue).filter(
                MaDiscountValue.trade_date == trade_date,
                MaDiscountValue.setting_id == setting_id,
            ).delete(synchronize_session=False)
            session.flush()

            row = MaDiscountValue(
                market_data_id=record.id,
                setting_id=setting_id,
                instrument=setting.instrument,
                trade_date=trade_date,
                value=float(value),
            )
            session.add(row)
            session.flush()
            return row.to_dict()

    def list_discount_values(self, instrument: str, trade_date: date) -> list[dict[str, Any]]:
        with self._session(f"List discount values {instrument} {trade_date}") as session:
            rows = (
                session.query(MaDiscountValue)
                .filter(
                    MaDiscountValue.instrument == instrument,
                    MaDiscountValue.trade_date == trade_date,
                )
                .order_by(MaDiscountValue.setting_id)
                .all()
            )
            return [row.to_dict() for row in rows]

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_to_csv(self, table_name: str, output_path: str) -> int:
        """
        Export a whitelisted table to a CSV file.

        Example:
            store.export_to_csv("market_data", "market_data.csv")

        Returns:
            Number of exported rows.

        Raises:
            ValueError: If the table name is not in ALLOWED_TABLES.
        """
        if table_name not in ALLOWED_TABLES:
            raise ValueError(f"Invalid table name: {table_name!r}")

        table = Base.metadata.tables[table_name]
        try:
            with self.engine.connect() as conn:
                df = pd.read_sql(table.select().order_by(table.c.id), conn)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Export of {table_name} failed: {exc}") from exc

        df.to_csv(output_path, index=False, encoding="utf-8")
        return len(df)


def _find_market_data(session: Session, instrument: str, trade_date: date) -> MarketData | None:
    return (
        session.query(MarketData)
        .filter(MarketData.instrument == instrument, MarketData.trade_date == trade_date)
        .one_or_none()
    )


def _market_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - MARKET_DATA_FIELDS
    if unknown:
        raise ValueError(f"Unknown market data fields: {sorted(unknown)}")
    return dict(fields)
