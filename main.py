#!/usr/bin/env python3
"""
Saleor Catalog Sync - CLI Entry Point

Mirrors the curated catalog (catalog_curated.json) into a Saleor instance:
wipes existing products/categories/product types, rebuilds the category tree
and imports every product with its default variant, channel listing and price.

Settings come from the environment (or a .env file); command-line options
override them.
"""

import argparse
import logging
import os
import signal
import sys
import threading

# Add current directory to path for imports
sys.path.insert(0, os.path.dirname(__file__))

from sync_modules.catalog import load_catalog
from sync_modules.config import (
    SCRIPT_VERSION,
    build_run_config,
    load_config,
    setup_logging,
)
from sync_modules.errors import SyncCancelled
from sync_modules.sync import check_catalog, run_sync


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Saleor Catalog Sync - mirror the curated catalog into Saleor via GraphQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s --skip-reset --concurrency 4
  %(prog)s --skip-reset --offset 200 --limit 100
  %(prog)s --validate-only --catalog catalog_curated.json
        """
    )

    parser.add_argument(
        "--catalog", "-i",
        help="Path to the curated catalog JSON (default: CATALOG_FILE or catalog_curated.json)"
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file with Saleor settings"
    )
    parser.add_argument(
        "--skip-reset",
        action="store_true",
        default=None,
        help="Keep existing remote data instead of deleting it first (SKIP_RESET)"
    )
    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        help="Number of import workers (IMPORT_CONCURRENCY, default 1)"
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        help="Pause after each imported product, in milliseconds (IMPORT_DELAY_MS)"
    )
    parser.add_argument(
        "--offset",
        type=int,
        help="Index of the first product to import (IMPORT_OFFSET, default: resume from checkpoint)"
    )
    parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of products to import (IMPORT_LIMIT)"
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Only load and validate the catalog, do not contact Saleor"
    )
    parser.add_argument(
        "--log", "-l",
        help="Path to log file (optional)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {SCRIPT_VERSION}"
    )
    return parser


def apply_cli_overrides(cfg, args):
    """Copy command-line options over the environment settings."""
    if args.catalog:
        cfg["CATALOG_FILE"] = args.catalog
    if args.log:
        cfg["LOG_FILE"] = args.log
    if args.skip_reset:
        cfg["SKIP_RESET"] = "true"
    if args.concurrency is not None:
        cfg["IMPORT_CONCURRENCY"] = args.concurrency
    if args.delay_ms is not None:
        cfg["IMPORT_DELAY_MS"] = args.delay_ms
    if args.offset is not None:
        cfg["IMPORT_OFFSET"] = args.offset
    if args.limit is not None:
        cfg["IMPORT_LIMIT"] = args.limit
    return cfg


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    cfg = apply_cli_overrides(load_config(args.env_file), args)
    setup_logging(cfg.get("LOG_FILE", ""), logging.DEBUG if args.verbose else logging.INFO)

    cancel_event = threading.Event()

    def _request_cancel(signum, frame):
        logging.warning(f"Received signal {signum}, stopping after current requests...")
        cancel_event.set()

    signal.signal(signal.SIGTERM, _request_cancel)

    try:
        run_config = build_run_config(cfg)
        catalog = load_catalog(cfg["CATALOG_FILE"])

        if args.validate_only:
            check_catalog(catalog)
            return 0

        run_sync(cfg, run_config, catalog, cancel_event=cancel_event)
        return 0
    except (KeyboardInterrupt, SyncCancelled):
        cancel_event.set()
        logging.error("Sync interrupted by operator.")
        return 130
    except Exception as e:
        logging.exception("Sync failed with a fatal error:")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
