"""Tests for health and admin endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from catalog_sort.main import app
from catalog_sort.services.reconciliation import RunStats
from catalog_sort.services.runner import RunLockedError, SortRunResult
from catalog_sort.services.sales_import import SalesImportError
from catalog_sort.services.sales_tally import SalesRecord, build_sales_tally
from catalog_sort.services.shopify_client import ShopifyConfigError, ShopifyTransportError


@pytest.fixture
async def client():
    """Create test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health reports the optional stores (none connected under test)."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "outcomes_db": False, "run_lock": False}


@pytest.mark.asyncio
async def test_sort_applies_request_overrides(client: AsyncClient, monkeypatch: pytest.MonkeyPatch):
    """Request fields override settings for one run only."""
    from catalog_sort.routes import admin as admin_routes

    seen = {}

    async def fake_execute_sort_run(settings):
        seen["settings"] = settings
        return SortRunResult(
            run_id="run-1",
            dry_run=settings.dry_run,
            search=settings.product_search,
            sales_rows=3,
            sales_rows_skipped=1,
            stats=RunStats(products=1, processed=1, completed=1),
            sales_titles_without_color=2,
        )

    monkeypatch.setattr(admin_routes, "execute_sort_run", fake_execute_sort_run)

    response = await client.post("/v1/admin/sort", json={"dry_run": True, "tag": "summer"})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["run_id"] == "run-1"
    assert data["dry_run"] is True
    assert data["search"] == "tag:'summer'"
    assert data["stats"]["completed"] == 1
    assert data["sales_titles_without_color"] == 2
    assert seen["settings"].product_query == ""


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (RunLockedError("held"), 409, "RUN_LOCKED"),
        (ShopifyConfigError("Missing SHOP_URL"), 400, "BAD_CONFIGURATION"),
        (SalesImportError("CSV file not found"), 422, "SALES_IMPORT_FAILED"),
        (ShopifyTransportError("API HTTP Error: 503", status_code=503), 502, "CATALOG_UNAVAILABLE"),
    ],
)
async def test_sort_error_mapping(client, monkeypatch, error, status_code, code):
    """Run-level failures map to structured error responses."""
    from catalog_sort.routes import admin as admin_routes

    async def fake_execute_sort_run(settings):
        raise error

    monkeypatch.setattr(admin_routes, "execute_sort_run", fake_execute_sort_run)

    response = await client.post("/v1/admin/sort", json={})
    assert response.status_code == status_code
    assert response.json()["error"]["code"] == code


@pytest.mark.asyncio
async def test_sales_lookup(client: AsyncClient, monkeypatch: pytest.MonkeyPatch):
    """Sales endpoint returns both tally levels, colors by units DESC."""
    from catalog_sort.routes import admin as admin_routes

    tally = build_sales_tally(
        [
            SalesRecord("Tee", "Blue / S", 3),
            SalesRecord("Tee", "Red / S", 10),
            SalesRecord("Tee", "Red / M", 5),
            SalesRecord("Tee", "XL", 2),
        ]
    )
    monkeypatch.setattr(admin_routes, "load_tally", lambda path: (tally, 4, 0))

    response = await client.get("/v1/admin/sales", params={"product_title": "Tee"})
    assert response.status_code == 200
    data = response.json()
    assert data["exact_sales"] == {"Blue / S": 3, "Red / S": 10, "Red / M": 5, "XL": 2}
    assert list(data["color_sales"]) == ["Red", "Blue"]
    assert data["variants_without_color"] == ["XL"]

    response = await client.get("/v1/admin/sales", params={"product_title": "Hoodie"})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NO_SALES_DATA"


@pytest.mark.asyncio
async def test_outcomes_without_database(client: AsyncClient):
    """Outcomes endpoint reports the missing database instead of failing."""
    response = await client.get("/v1/admin/outcomes")
    assert response.status_code == 503
    assert response.json()["error"]["code"] == "DB_UNAVAILABLE"
