"""Manage moving-average discount settings.

Discount settings are configuration: the ingestion pipeline only reads
them. This script is the out-of-band way to inspect and add them.

Usage:
    # List settings for an instrument
    python scripts/manage_discount_settings.py --list RM

    # Add a setting (ratio 0.05 -> value = ma30 * 0.95)
    python scripts/manage_discount_settings.py --add RM "grade-4 buyer" 0.05
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from coffee_futures.shared.config import validate_instrument
from coffee_futures.shared.db.storage import MarketDataStore
from coffee_futures.shared.exceptions import PersistenceError
from coffee_futures.shared.utils import setup_logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Manage MA discount settings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--list", metavar="INSTRUMENT", help="List settings for an instrument")
    group.add_argument(
        "--add",
        nargs=3,
        metavar=("INSTRUMENT", "LABEL", "RATIO"),
        help="Add a discount setting",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        help="SQLAlchemy database URL (default: from environment)",
        metavar="URL",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logger = setup_logger("manage_discount_settings")

    try:
        with MarketDataStore.from_url(args.database_url) as store:
            store.create_schema()

            if args.list:
                instrument = validate_instrument(args.list)
                settings = store.list_discount_settings(instrument)
                if not settings:
                    logger.info("No discount settings for %s", instrument)
                for s in settings:
                    logger.info(
                        "[%d] %s %s ratio=%.4f", s["id"], s["instrument"], s["label"], s["discount_ratio"]
                    )
                return 0

            code, label, ratio = args.add
            setting = store.add_discount_setting(validate_instrument(code), label, float(ratio))
            logger.info(
                "Added setting %d: %s %s ratio=%.4f",
                setting["id"],
                setting["instrument"],
                setting["label"],
                setting["discount_ratio"],
            )
            return 0

    except ValueError as e:
        logger.error("%s", e)
        return 2

    except PersistenceError as e:
        logger.error("Database error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
