from datetime import datetime, timezone

from sqlalchemy import (
    TIMESTAMP,
    Column,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketData(Base):
    __tablename__ = "market_data"

    id = Column(Integer, primary_key=True)
    instrument = Column(String(10), nullable=False)
    trade_date = Column(Date, nullable=False)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(Float, nullable=False)
    usd_price = Column(Float, nullable=False)
    idr_rate = Column(Float, nullable=False)
    idr_price = Column(Float, nullable=False)
    moving_average_30 = Column(Float)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("instrument", "trade_date", name="uq_market_data_instrument_date"),
        Index("idx_market_data_instrument_date", "instrument", "trade_date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instrument": self.instrument,
            "trade_date": self.trade_date,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "usd_price": self.usd_price,
            "idr_rate": self.idr_rate,
            "idr_price": self.idr_price,
            "moving_average_30": self.moving_average_30,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class MaDiscountSetting(Base):
    __tablename__ = "ma_discount_settings"

    id = Column(Integer, primary_key=True)
    instrument = Column(String(10), nullable=False)
    label = Column(String(100), nullable=False)
    discount_ratio = Column(Float, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("instrument", "label", name="uq_ma_discount_settings_label"),
        Index("idx_ma_discount_settings_instrument", "instrument"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instrument": self.instrument,
            "label": self.label,
            "discount_ratio": self.discount_ratio,
            "created_at": self.created_at,
        }


class MaDiscountValue(Base):
    __tablename__ = "ma_discount_values"

    id = Column(Integer, primary_key=True)
    market_data_id = Column(Integer, ForeignKey("market_data.id"), nullable=False)
    setting_id = Column(Integer, ForeignKey("ma_discount_settings.id"), nullable=False)
    instrument = Column(String(10), nullable=False)
    trade_date = Column(Date, nullable=False)
    value = Column(Float, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("trade_date", "setting_id", name="uq_ma_discount_values_date_setting"),
        Index("idx_ma_discount_values_instrument_date", "instrument", "trade_date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "market_data_id": self.market_data_id,
            "setting_id": self.setting_id,
            "instrument": self.instrument,
            "trade_date": self.trade_date,
            "value": self.value,
            "created_at": self.created_at,
        }
