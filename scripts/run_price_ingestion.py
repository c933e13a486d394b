"""Coffee futures price ingestion trigger.

Runs the price pipeline for one instrument or for both (RM then KC). Meant
to be invoked by cron or by hand; every run is idempotent per trading day.

Usage:
    # Combined task (RM then KC)
    python scripts/run_price_ingestion.py

    # Single instrument
    python scripts/run_price_ingestion.py --instrument KC

    # Create tables first, then ingest and write a JSON manifest
    python scripts/run_price_ingestion.py --init-db --manifest

    # Check the quote source and the rate service only
    python scripts/run_price_ingestion.py --health-check

    # Export a table
    python scripts/run_price_ingestion.py --export market_data data/market_data.csv

Example:
    $ python scripts/run_price_ingestion.py --instrument all --manifest
    [INFO] RM: EXTRACTING
    [INFO] RM: active contract RMF26 on 2025-10-17 close=4550.0000 volume=12873
    ...
    [INFO] Combined ingestion finished: Ingested RM, KC
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from coffee_futures.ingestion.collectors.exchange_rate_collector import ExchangeRateCollector
from coffee_futures.ingestion.collectors.futures_quote_collector import FuturesQuoteCollector
from coffee_futures.pipelines.price.run_price_pipeline import (
    IngestionReport,
    PriceIngestionPipeline,
    write_manifest,
)
from coffee_futures.shared.config import INSTRUMENTS, Config
from coffee_futures.shared.db.storage import ALLOWED_TABLES, MarketDataStore
from coffee_futures.shared.exceptions import PersistenceError
from coffee_futures.shared.utils import setup_logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Ingest RM/KC coffee futures prices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--instrument",
        choices=[*INSTRUMENTS, "all"],
        default="all",
        help="Instrument to ingest (default: all, i.e. RM then KC)",
    )

    parser.add_argument(
        "--database-url",
        type=str,
        help="SQLAlchemy database URL (default: from environment)",
        metavar="URL",
    )

    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before ingesting",
    )

    parser.add_argument(
        "--health-check",
        action="store_true",
        help="Run source health checks only and exit",
    )

    parser.add_argument(
        "--export",
        nargs=2,
        metavar=("TABLE", "PATH"),
        help=f"Export a table to CSV and exit ({', '.join(sorted(ALLOWED_TABLES))})",
    )

    parser.add_argument(
        "--manifest",
        action="store_true",
        help="Write a JSON run manifest to data/manifests/",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main ingestion script."""
    args = parse_args(argv)

    logger = setup_logger(
        "run_price_ingestion",
        level="DEBUG" if args.verbose else "INFO",
    )

    try:
        Config.validate()

        if args.health_check:
            quote_collector = FuturesQuoteCollector()
            rate_collector = ExchangeRateCollector()
            try:
                quote_ok = quote_collector.health_check()
                rate_ok = rate_collector.health_check()
            finally:
                quote_collector.close()
                rate_collector.close()
            logger.info("Quote source: %s", "PASSED" if quote_ok else "FAILED")
            logger.info("Rate service: %s", "PASSED" if rate_ok else "FAILED (fallback rate will be used)")
            return 0 if quote_ok else 1

        with MarketDataStore.from_url(args.database_url) as store:
            if args.init_db:
                store.create_schema()
                logger.info("Database schema ready")

            if args.export:
                table, path = args.export
                rows = store.export_to_csv(table, path)
                logger.info("Exported %d rows from %s to %s", rows, table, path)
                return 0

            pipeline = PriceIngestionPipeline(store)
            try:
                if args.instrument == "all":
                    report = pipeline.ingest_all()
                else:
                    report = IngestionReport.from_result(pipeline.ingest(args.instrument))
            finally:
                pipeline.close()

        results = list(report.results.values())
        logger.info("=" * 60)
        for result in results:
            status = "OK" if result.success else f"FAILED at {result.stage.value}"
            logger.info("%s: %s - %s", result.instrument, status, result.message)
        logger.info("=" * 60)

        if args.manifest:
            path = write_manifest(report)
            logger.info("Manifest written to %s", path)

        return 0 if report.success else 1

    except ValueError as e:
        logger.error("%s", e)
        return 2

    except PersistenceError as e:
        logger.error("Database error: %s", e)
        return 1

    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
