"""Admin endpoints for sort runs and audit.

These endpoints are intended for manual runs and inspection.
In production, consider adding authentication (API key or admin token).
"""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from catalog_sort.schemas.common import ErrorCode, error_payload
from catalog_sort.services.outcomes import list_recent_outcomes
from catalog_sort.services.runner import RunLockedError, RunSetupError, execute_sort_run, load_tally
from catalog_sort.services.sales_import import SalesImportError
from catalog_sort.services.shopify_client import ShopifyConfigError, ShopifyError
from catalog_sort.settings import get_settings
from catalog_sort.stores.postgres import get_session, is_db_ready

router = APIRouter()
logger = logging.getLogger("catalog_sort")


class SortRequest(BaseModel):
    """Request body for the sort endpoint. Unset fields fall back to settings."""

    dry_run: bool | None = None
    tag: str | None = None
    query: str | None = None


class SortResponse(BaseModel):
    success: bool
    run_id: str
    dry_run: bool
    search: str
    sales_rows: int
    sales_rows_skipped: int
    sales_titles_without_color: int = 0
    stats: dict


def _error(status_code: int, code: ErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_payload(code, message))


@router.post("/sort", response_model=SortResponse)
async def trigger_sort(request: SortRequest):
    """Run the sorter synchronously for the configured (or given) selection.

    Products are processed one at a time with the configured delays, so this
    can take a while for large selections.
    """
    settings = get_settings()
    update: dict[str, object] = {}
    if request.dry_run is not None:
        update["dry_run"] = request.dry_run
    if request.tag is not None:
        update["product_tag"] = request.tag
        update["product_query"] = ""
    if request.query is not None:
        update["product_query"] = request.query
    run_settings = settings.model_copy(update=update)

    try:
        result = await execute_sort_run(run_settings)
    except RunLockedError as e:
        return _error(409, ErrorCode.RUN_LOCKED, str(e))
    except (RunSetupError, ShopifyConfigError) as e:
        return _error(400, ErrorCode.BAD_CONFIGURATION, str(e))
    except SalesImportError as e:
        return _error(422, ErrorCode.SALES_IMPORT_FAILED, str(e))
    except ShopifyError as e:
        logger.error(f"Sort run failed talking to Shopify: {e}")
        return _error(502, ErrorCode.CATALOG_UNAVAILABLE, str(e))

    return SortResponse(
        success=True,
        run_id=result.run_id,
        dry_run=result.dry_run,
        search=result.search,
        sales_rows=result.sales_rows,
        sales_rows_skipped=result.sales_rows_skipped,
        sales_titles_without_color=result.sales_titles_without_color,
        stats=result.stats.as_dict(),
    )


@router.get("/sales")
async def get_product_sales(product_title: str = Query(..., min_length=1)):
    """Show both sales tallies for one product title (from the current export)."""
    settings = get_settings()
    try:
        tally, _, _ = load_tally(settings.sales_csv_path)
    except SalesImportError as e:
        return _error(422, ErrorCode.SALES_IMPORT_FAILED, str(e))

    key = product_title.strip()
    exact = tally.exact_sales.get(key)
    if not exact:
        return _error(404, ErrorCode.NO_SALES_DATA, f"No sales data for product: \"{key}\"")

    by_color = tally.color_sales.get(key) or {}
    return {
        "product_title": key,
        "exact_sales": dict(exact),
        "color_sales": dict(sorted(by_color.items(), key=lambda kv: -kv[1])),
        "variants_without_color": tally.unextracted_for(key),
    }


@router.get("/outcomes")
async def get_outcomes(
    limit: int = Query(default=50, ge=1, le=500),
    run_id: str | None = Query(default=None),
):
    """List the latest persisted product outcomes."""
    if not is_db_ready():
        return _error(503, ErrorCode.DB_UNAVAILABLE, "Database not initialized")
    async with get_session() as session:
        outcomes = await list_recent_outcomes(session, limit=limit, run_id=run_id)
    return {"count": len(outcomes), "outcomes": outcomes}
