"""
Price Ingestion Pipeline Runner

Per instrument, in order:

    extract snapshot -> convert currency -> upsert market data
    -> recompute moving average from the store -> update record
    -> replace discount values

``ingest_all()`` runs RM then KC sequentially; a failure in one does not
stop the other. Nothing is retried and partial writes are not rolled back:
every write is keyed, so the next successful run converges.
"""

import json
import threading
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from coffee_futures.ingestion.collectors.exchange_rate_collector import ExchangeRateCollector
from coffee_futures.ingestion.collectors.futures_quote_collector import FuturesQuoteCollector
from coffee_futures.pipelines.price.discount import generate_discount_values
from coffee_futures.pipelines.price.moving_average import compute_moving_average_30
from coffee_futures.shared.config import INGESTION_ORDER, Config, validate_instrument
from coffee_futures.shared.db.storage import MarketDataStore
from coffee_futures.shared.exceptions import PipelineError
from coffee_futures.shared.utils import setup_logger, utc_now


# -----------------------------
# Run state & results
# -----------------------------

class IngestionStage(str, Enum):
    PENDING = "PENDING"
    EXTRACTING = "EXTRACTING"
    CONVERTING = "CONVERTING"
    PERSISTING = "PERSISTING"
    AVERAGING = "AVERAGING"
    DISCOUNTING = "DISCOUNTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class IngestionResult:
    """Outcome of one instrument's ingestion run.

    On failure ``stage`` is the stage that failed, not ``FAILED``.
    """

    instrument: str
    success: bool
    stage: IngestionStage
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    trade_date: date | None = None
    discount_values: int = 0
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["stage"] = self.stage.value
        data["timestamp"] = self.timestamp.isoformat()
        data["trade_date"] = self.trade_date.isoformat() if self.trade_date else None
        return data


@dataclass
class IngestionReport:
    """Combined outcome of ``ingest_all()``."""

    success: bool
    message: str
    results: dict[str, IngestionResult]
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_result(cls, result: IngestionResult) -> "IngestionReport":
        """Report for a single-instrument run."""
        return cls(
            success=result.success,
            message=result.message,
            results={result.instrument: result},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "results": {code: result.to_dict() for code, result in self.results.items()},
        }


# -----------------------------
# Pipeline
# -----------------------------

#: Per-instrument run locks shared by every pipeline in the process.
_INSTRUMENT_LOCKS = {code: threading.Lock() for code in INGESTION_ORDER}


class PriceIngestionPipeline:
    """Composes extraction, conversion, persistence and aggregation.

    Collaborators are injected; defaults are built from ``Config``. A
    process-wide per-instrument lock rejects a second run for the same
    instrument while one is in progress, whichever pipeline object started it.
    """

    def __init__(
        self,
        store: MarketDataStore,
        quote_collector: FuturesQuoteCollector | None = None,
        rate_collector: ExchangeRateCollector | None = None,
        window: int = Config.MOVING_AVERAGE_WINDOW,
        log_file: Path | None = None,
    ) -> None:
        self.store = store
        self._owned_collectors = []
        if quote_collector is None:
            quote_collector = FuturesQuoteCollector()
            self._owned_collectors.append(quote_collector)
        if rate_collector is None:
            rate_collector = ExchangeRateCollector()
            self._owned_collectors.append(rate_collector)
        self.quote_collector = quote_collector
        self.rate_collector = rate_collector
        self.window = window
        self.logger = setup_logger(
            "PriceIngestionPipeline",
            log_file or Config.LOGS_DIR / "pipelines" / "price_pipeline.log",
        )

    def ingest(self, instrument: str) -> IngestionResult:
        """Ingest today's snapshot for one instrument.

        Raises:
            ValueError: Unknown instrument. Every other failure is returned
                as a failed IngestionResult.
        """
        instrument = validate_instrument(instrument)
        lock = _INSTRUMENT_LOCKS[instrument]

        if not lock.acquire(blocking=False):
            self.logger.warning("%s: ingestion already in progress, skipping", instrument)
            return IngestionResult(
                instrument=instrument,
                success=False,
                stage=IngestionStage.PENDING,
                message=f"{instrument} ingestion already in progress",
                error_type="ConcurrentRun",
            )

        try:
            return self._run(instrument)
        finally:
            lock.release()

    def close(self) -> None:
        """Close the collectors this pipeline built itself."""
        for collector in self._owned_collectors:
            collector.close()

    def ingest_all(self) -> IngestionReport:
        """Ingest RM then KC, isolating failures per instrument."""
        results: dict[str, IngestionResult] = {}

        for instrument in INGESTION_ORDER:
            results[instrument] = self.ingest(instrument)

        succeeded = [code for code, result in results.items() if result.success]
        failed = [code for code, result in results.items() if not result.success]

        if not failed:
            message = f"Ingested {', '.join(succeeded)}"
        elif not succeeded:
            message = "All instruments failed: " + "; ".join(
                f"{code} ({results[code].message})" for code in failed
            )
        else:
            message = f"Ingested {', '.join(succeeded)}; failed " + "; ".join(
                f"{code} ({results[code].message})" for code in failed
            )

        report = IngestionReport(success=not failed, message=message, results=results)
        self.logger.info("Combined ingestion finished: %s", message)
        return report

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(self, instrument: str) -> IngestionResult:
        stage = IngestionStage.PENDING
        trade_date = None

        try:
            stage = self._enter(instrument, IngestionStage.EXTRACTING)
            snapshot = self.quote_collector.collect(instrument)
            trade_date = snapshot.trade_date

            stage = self._enter(instrument, IngestionStage.CONVERTING)
            idr_rate = self.rate_collector.get_usd_to_idr_rate()

            stage = self._enter(instrument, IngestionStage.PERSISTING)
            usd_price = snapshot.close
            self.store.upsert_market_data(
                instrument,
                trade_date,
                {
                    "open": snapshot.open,
                    "high": snapshot.high,
                    "low": snapshot.low,
                    "close": snapshot.close,
                    "volume": snapshot.volume,
                    "usd_price": usd_price,
                    "idr_rate": idr_rate,
                    "idr_price": usd_price * idr_rate,
                    "moving_average_30": None,
                },
            )

            stage = self._enter(instrument, IngestionStage.AVERAGING)
            moving_average = compute_moving_average_30(
                self.store, instrument, trade_date, window=self.window
            )
            record = self.store.update_market_data(
                instrument, trade_date, {"moving_average_30": moving_average}
            )

            stage = self._enter(instrument, IngestionStage.DISCOUNTING)
            settings = self.store.list_discount_settings(instrument)
            values = generate_discount_values(self.store, record, settings)

        except PipelineError as exc:
            return self._failed(instrument, stage, trade_date, exc)
        except Exception as exc:
            self.logger.exception("%s: unexpected error during %s", instrument, stage.value)
            return self._failed(instrument, stage, trade_date, exc)

        self._enter(instrument, IngestionStage.DONE)
        message = (
            f"{instrument} {trade_date}: close={usd_price:.4f} USD, idr_rate={idr_rate:.2f}, "
            f"ma30={_fmt(moving_average)}, {len(values)} discount values"
        )
        self.logger.info(message)
        return IngestionResult(
            instrument=instrument,
            success=True,
            stage=IngestionStage.DONE,
            message=message,
            trade_date=trade_date,
            discount_values=len(values),
        )

    def _enter(self, instrument: str, stage: IngestionStage) -> IngestionStage:
        self.logger.info("%s: %s", instrument, stage.value)
        return stage

    def _failed(
        self,
        instrument: str,
        stage: IngestionStage,
        trade_date: date | None,
        exc: Exception,
    ) -> IngestionResult:
        self.logger.error(
            "%s: %s failed at %s: %s", instrument, type(exc).__name__, stage.value, exc
        )
        return IngestionResult(
            instrument=instrument,
            success=False,
            stage=stage,
            message=f"{stage.value.lower()} failed: {exc}",
            trade_date=trade_date,
            error_type=type(exc).__name__,
        )


def _fmt(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.4f}"


# -----------------------------
# Manifest
# -----------------------------

MANIFEST_DIR = Config.DATA_DIR / "manifests"


def write_manifest(report: IngestionReport, manifest_dir: Path = MANIFEST_DIR) -> Path:
    """Persist the run report as JSON and return its path."""
    manifest_dir.mkdir(parents=True, exist_ok=True)
    run_time = report.timestamp.isoformat().replace(":", "-")
    path = manifest_dir / f"price_run_{run_time}.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
    return path


# -----------------------------
# Pipeline Runner
# -----------------------------

def run(database_url: str | None = None, manifest: bool = True) -> IngestionReport:
    """Combined task: ensure schema, ingest RM and KC, optionally write manifest."""
    with MarketDataStore.from_url(database_url) as store:
        store.create_schema()
        pipeline = PriceIngestionPipeline(store)
        try:
            report = pipeline.ingest_all()
        finally:
            pipeline.close()

    if manifest:
        path = write_manifest(report)
        print(f"Manifest written to {path}")

    print(report.message)
    return report


if __name__ == "__main__":
    run()
