"""One sort run: setup, lock, tally, reconcile every product.

Setup failures are fatal to the whole run (missing credentials or product
selection, unreadable sales export, lock held). Everything after setup is
recovered per product inside run_sort.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from catalog_sort.models.sort_outcome import generate_run_id
from catalog_sort.services.outcomes import make_outcome_recorder
from catalog_sort.services.reconciliation import CatalogClient, RunStats, run_sort
from catalog_sort.services.sales_import import load_sales_records
from catalog_sort.services.sales_tally import SalesTally, build_sales_tally
from catalog_sort.services.shopify_client import ShopifyClient, ShopifyClientConfig
from catalog_sort.services.throttle import SleepFn
from catalog_sort.settings import Settings
from catalog_sort.stores.redis import RUN_LOCK_KEY, RunLock, is_redis_ready

logger = logging.getLogger("catalog_sort")


class RunSetupError(RuntimeError):
    pass


class RunLockedError(RuntimeError):
    pass


@dataclass
class SortRunResult:
    run_id: str
    dry_run: bool
    search: str
    sales_rows: int
    sales_rows_skipped: int
    stats: RunStats
    sales_titles_without_color: int = 0


def load_tally(path: str) -> tuple[SalesTally, int, int]:
    """Read the sales export and build the tally.

    Returns:
        (tally, rows used, rows skipped by import or tally build)
    """
    imported = load_sales_records(path)
    tally = build_sales_tally(imported.records)
    used = len(imported.records) - tally.skipped_records
    return tally, used, imported.skipped + tally.skipped_records


async def execute_sort_run(
    settings: Settings,
    *,
    client: CatalogClient | None = None,
    sleep: SleepFn = asyncio.sleep,
    should_stop: Callable[[], bool] | None = None,
) -> SortRunResult:
    """Run the sorter once for the configured product selection.

    Raises:
        RunSetupError: No product selection configured.
        ShopifyConfigError: Missing shop URL / access token.
        SalesImportError: Sales export missing or unreadable.
        RunLockedError: Another run holds the run lock.
    """
    search = settings.product_search
    if not search:
        raise RunSetupError("Missing PRODUCT_TAG or PRODUCT_QUERY: no products selected")

    config = ShopifyClientConfig.from_settings(settings)
    logger.info(f"Loaded SHOP_URL: {config.shop_domain}")
    logger.info(f"Loaded SHOPIFY_ACCESS_TOKEN: {config.masked_token}")
    logger.info(f"Targeting products matching: {search}")

    tally, used_rows, skipped_rows = load_tally(settings.sales_csv_path)

    if tally.unextracted_titles:
        logger.warning(f"{len(tally.unextracted_titles)} sales rows have no extractable color")

    run_id = generate_run_id()
    lock: RunLock | None = None
    if is_redis_ready():
        lock = RunLock(RUN_LOCK_KEY, owner=run_id, ttl=settings.run_lock_ttl_s)
        if not await lock.acquire():
            raise RunLockedError("Another sort run is in progress (run lock held)")
    else:
        logger.warning("Redis unavailable; running without the run lock")

    logger.info(f"Run {run_id} started (dry_run={settings.dry_run})")
    try:
        recorder = make_outcome_recorder(run_id) if settings.persist_outcomes else None
        heartbeat = lock.refresh if lock is not None else None
        if client is None:
            async with ShopifyClient(config, sleep=sleep) as shopify:
                stats = await run_sort(
                    shopify,
                    tally,
                    settings,
                    sleep=sleep,
                    should_stop=should_stop,
                    on_outcome=recorder,
                    heartbeat=heartbeat,
                )
        else:
            stats = await run_sort(
                client,
                tally,
                settings,
                sleep=sleep,
                should_stop=should_stop,
                on_outcome=recorder,
                heartbeat=heartbeat,
            )
    finally:
        if lock is not None:
            await lock.release()

    return SortRunResult(
        run_id=run_id,
        dry_run=settings.dry_run,
        search=search,
        sales_rows=used_rows,
        sales_rows_skipped=skipped_rows,
        stats=stats,
        sales_titles_without_color=len(tally.unextracted_titles),
    )
