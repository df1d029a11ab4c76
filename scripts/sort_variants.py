#!/usr/bin/env python3
"""Sort variants, option values and images of tagged products by sales.

Behavior:
- Read the sales export CSV and build the sales tally (fatal if unreadable)
- Fetch every product matching PRODUCT_TAG / PRODUCT_QUERY (paginated, paced)
- Per product: reorder option values, then variants, then images
- Every decision and API outcome goes to the console and LOG_FILE

Stopping (SIGINT/SIGTERM) takes effect between products; the product in
flight finishes its write sequence first.

Run (local / cron):
  python -m scripts.sort_variants --dry-run
  python -m scripts.sort_variants --tag summer_collection

Required env vars:
  SHOP_URL, SHOPIFY_ACCESS_TOKEN, PRODUCT_TAG (or PRODUCT_QUERY)

Optional env vars:
  SALES_CSV_PATH=sales-export.csv
  COLOR_OPTION_NAMES="Color,Colour"
  DRY_RUN=false
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

# Ensure imports work when executed as a script/module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from catalog_sort.logging_config import configure_run_logging  # noqa: E402
from catalog_sort.services.runner import execute_sort_run  # noqa: E402
from catalog_sort.settings import get_settings  # noqa: E402
from catalog_sort.stores.postgres import close_db, init_db, ping_db  # noqa: E402
from catalog_sort.stores.redis import close_redis, init_redis  # noqa: E402

logger = logging.getLogger("catalog_sort")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="Log decisions, submit no writes")
    parser.add_argument("--tag", help="Product tag to select (overrides PRODUCT_TAG)")
    parser.add_argument("--query", help="Raw products search string (overrides PRODUCT_QUERY)")
    parser.add_argument("--csv", help="Sales export path (overrides SALES_CSV_PATH)")
    return parser.parse_args(argv)


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers.
            pass


async def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)

    settings = get_settings()
    update: dict[str, object] = {}
    if args.dry_run:
        update["dry_run"] = True
    if args.tag:
        update["product_tag"] = args.tag
        update["product_query"] = ""
    if args.query:
        update["product_query"] = args.query
    if args.csv:
        update["sales_csv_path"] = args.csv
    settings = settings.model_copy(update=update)

    configure_run_logging(settings.log_file, settings.log_level)
    logger.info("Script started.")

    # Audit trail and run lock are optional for a one-off run.
    if settings.persist_outcomes:
        try:
            await init_db(settings)
            await ping_db()
        except Exception as e:
            logger.warning(f"Postgres unavailable, outcomes will only be logged: {e}")
            await close_db()
    try:
        await init_redis()
    except Exception as e:
        logger.warning(f"Redis unavailable: {e}")
        await close_redis()

    stop = asyncio.Event()
    _install_stop_handlers(stop)

    exit_code = 0
    try:
        result = await execute_sort_run(settings, should_stop=stop.is_set)
        # Final output for cron logs (single JSON-ish blob)
        print(
            {
                "ok": True,
                "run_id": result.run_id,
                "dry_run": result.dry_run,
                "search": result.search,
                "sales_rows": result.sales_rows,
                "sales_rows_skipped": result.sales_rows_skipped,
                "sales_titles_without_color": result.sales_titles_without_color,
                "stats": result.stats.as_dict(),
            }
        )
    except Exception as e:
        logger.exception(f"Fatal Script Error: {e}")
        exit_code = 1
    finally:
        logger.info("Script finished.")
        await close_redis()
        await close_db()
    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
