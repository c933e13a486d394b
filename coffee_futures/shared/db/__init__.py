"""Database engine, session factory, ORM models, and storage."""

from .base import Base
from .engine import create_db_engine
from .models import MaDiscountSetting, MaDiscountValue, MarketData
from .session import get_db, make_session_factory
from .storage import ALLOWED_TABLES, MARKET_DATA_FIELDS, MarketDataStore

__all__ = [
    # ORM infrastructure
    "Base",
    "create_db_engine",
    "make_session_factory",
    "get_db",
    # ORM models
    "MarketData",
    "MaDiscountSetting",
    "MaDiscountValue",
    # Storage
    "MarketDataStore",
    "ALLOWED_TABLES",
    "MARKET_DATA_FIELDS",
]
