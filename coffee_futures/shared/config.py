"""Configuration management for the coffee futures pipeline."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


#: Tracked instruments. ``timezone`` is the exchange zone used to turn a
#: quote's trade time into a trading day; ``symbol`` is the source-site root.
INSTRUMENTS: dict[str, dict[str, str]] = {
    "RM": {
        "name": "Robusta Coffee",
        "exchange": "ICE Futures Europe",
        "timezone": "Europe/London",
        "symbol": "RM",
    },
    "KC": {
        "name": "Arabica Coffee",
        "exchange": "ICE Futures U.S.",
        "timezone": "America/New_York",
        "symbol": "KC",
    },
}

#: Ingestion order used by the combined task.
INGESTION_ORDER = ("RM", "KC")


def validate_instrument(instrument: str) -> str:
    """Return the canonical instrument code or raise ValueError."""
    code = str(instrument).strip().upper()
    if code not in INSTRUMENTS:
        raise ValueError(
            f"Unsupported instrument: {instrument!r} (expected one of {', '.join(INSTRUMENTS)})"
        )
    return code


class Config:
    """Application configuration."""

    # Project paths
    ROOT_DIR = Path(__file__).resolve().parents[2]
    DATA_DIR = ROOT_DIR / "data"
    LOGS_DIR = ROOT_DIR / "logs"

    # Database
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
    DB_NAME: str = os.getenv("DB_NAME", "coffee_futures")
    DB_USER: str = os.getenv("DB_USER", "postgres")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")

    # Source site (rendered page + intercepted quote API)
    QUOTE_PAGE_URL: str = os.getenv(
        "QUOTE_PAGE_URL", "https://www.barchart.com/futures/quotes/{symbol}*0/futures-prices"
    )
    QUOTE_API_PATTERN: str = os.getenv("QUOTE_API_PATTERN", "/proxies/core-api/v1/quotes/get")
    EXTRACTION_TIMEOUT: float = float(os.getenv("EXTRACTION_TIMEOUT", "45"))
    PAGE_LOAD_TIMEOUT: int = int(os.getenv("PAGE_LOAD_TIMEOUT", "30"))
    BROWSER_HEADLESS: bool = os.getenv("BROWSER_HEADLESS", "true").lower() in ("1", "true", "yes")
    CHROMEDRIVER_PATH: str | None = os.getenv("CHROMEDRIVER_PATH")

    # Rate service
    RATE_API_URL: str = os.getenv("RATE_API_URL", "https://open.er-api.com/v6/latest/USD")
    RATE_TIMEOUT: float = float(os.getenv("RATE_TIMEOUT", "10"))
    FALLBACK_IDR_RATE: float = float(os.getenv("FALLBACK_IDR_RATE", "16000"))

    # Aggregation
    MOVING_AVERAGE_WINDOW: int = int(os.getenv("MOVING_AVERAGE_WINDOW", "30"))

    @classmethod
    def validate(cls) -> None:
        """Validate numeric configuration."""
        if cls.EXTRACTION_TIMEOUT <= 0 or cls.PAGE_LOAD_TIMEOUT <= 0 or cls.RATE_TIMEOUT <= 0:
            raise ValueError("Timeouts must be positive")
        if cls.FALLBACK_IDR_RATE <= 0:
            raise ValueError("FALLBACK_IDR_RATE must be positive")
        if cls.MOVING_AVERAGE_WINDOW < 1:
            raise ValueError("MOVING_AVERAGE_WINDOW must be at least 1")
        if "{symbol}" not in cls.QUOTE_PAGE_URL:
            raise ValueError("QUOTE_PAGE_URL must contain a {symbol} placeholder")

    @property
    def database_url(self) -> str:
        """Construct database URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


config = Config()
