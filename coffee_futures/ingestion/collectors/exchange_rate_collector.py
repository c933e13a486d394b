"""USD→IDR exchange rate collector.

Queries an external rate service (open.er-api.com style payload) with a
bounded timeout. A missing rate must never block price ingestion, so every
failure degrades to the configured fallback rate instead of raising.

Expected payload::

    {"result": "success", "base_code": "USD", "rates": {"IDR": 16250.5, ...}}
"""

from pathlib import Path
from typing import Any

import requests

from coffee_futures.ingestion.collectors.base_collector import BaseCollector
from coffee_futures.shared.config import Config
from coffee_futures.shared.exceptions import ConversionFailure


class ExchangeRateCollector(BaseCollector):
    """Collector for the USD→IDR conversion rate.

    ``get_usd_to_idr_rate()`` never raises: network errors, timeouts,
    malformed bodies and non-positive rates all return ``fallback_rate``.
    """

    SOURCE_NAME = "exchange_rate"
    TARGET_CURRENCY = "IDR"

    def __init__(
        self,
        api_url: str | None = None,
        timeout: float | None = None,
        fallback_rate: float | None = None,
        log_file: Path | None = None,
    ) -> None:
        super().__init__(
            log_file=log_file or Config.LOGS_DIR / "collectors" / "exchange_rate_collector.log"
        )
        self.api_url = api_url or Config.RATE_API_URL
        self.timeout = timeout if timeout is not None else Config.RATE_TIMEOUT
        self.fallback_rate = fallback_rate if fallback_rate is not None else Config.FALLBACK_IDR_RATE
        self._session = requests.Session()

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def collect(self) -> dict[str, Any]:
        """Fetch the rate, reporting whether the fallback was used."""
        try:
            rate = self._fetch_rate()
            is_fallback = False
        except ConversionFailure as exc:
            self.logger.warning("USD/IDR rate unavailable (%s), using fallback %s", exc, self.fallback_rate)
            rate = self.fallback_rate
            is_fallback = True
        return {"pair": f"USD{self.TARGET_CURRENCY}", "rate": rate, "is_fallback": is_fallback}

    def close(self) -> None:
        """Release the HTTP session."""
        self._session.close()

    def health_check(self) -> bool:
        """Check whether the rate service returns a usable rate."""
        try:
            self._fetch_rate()
            return True
        except ConversionFailure as exc:
            self.logger.error("Rate service health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def get_usd_to_idr_rate(self) -> float:
        """Return a positive USD→IDR rate, or the fallback on any failure."""
        return self.collect()["rate"]

    def _fetch_rate(self) -> float:
        try:
            response = self._session.get(self.api_url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as exc:
            raise ConversionFailure(f"rate service request failed: {exc}") from exc
        except ValueError as exc:
            raise ConversionFailure(f"rate service returned invalid JSON: {exc}") from exc

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or self.TARGET_CURRENCY not in rates:
            raise ConversionFailure(f"rate payload has no rates.{self.TARGET_CURRENCY}")

        value = rates[self.TARGET_CURRENCY]
        if isinstance(value, bool):
            raise ConversionFailure(f"non-numeric rate {value!r}")
        try:
            rate = float(value)
        except (TypeError, ValueError) as exc:
            raise ConversionFailure(f"non-numeric rate {value!r}") from exc

        if not rate > 0 or rate == float("inf"):
            raise ConversionFailure(f"non-positive rate {rate}")

        self.logger.info("USD/%s rate: %s", self.TARGET_CURRENCY, rate)
        return rate
