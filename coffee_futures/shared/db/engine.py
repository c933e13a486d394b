from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool

from coffee_futures.shared.config import config


def create_db_engine(url: str | None = None, echo: bool = False) -> Engine:
    """Build an engine for ``url`` (default: the configured database URL).

    In-memory SQLite shares one connection so every session sees the same
    database; server databases get a bounded connection pool.
    """
    url = url or config.database_url

    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=echo,
            )
        return create_engine(url, connect_args={"check_same_thread": False}, echo=echo)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )
