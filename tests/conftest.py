"""Shared fixtures: sales tallies, catalog products and a fake catalog client."""

from collections.abc import Sequence
from typing import Any

import fakeredis
import pytest

from catalog_sort.schemas.catalog import Product
from catalog_sort.services.ranking import OptionOrder
from catalog_sort.services.sales_tally import SalesRecord, SalesTally, build_sales_tally
from catalog_sort.services.shopify_client import MutationResult, ShopifyError
from catalog_sort.stores import redis as redis_store


def build_product(
    variants: Sequence[tuple[str, str | None]],
    *,
    title: str = "Tee",
    product_id: str = "gid://shopify/Product/1",
    options: Sequence[dict[str, Any]] | None = None,
    images: Sequence[str] | None = None,
) -> Product:
    """Product from (variant title, image id) pairs, in the raw GraphQL shape."""
    if options is None:
        options = [
            {"id": "opt-1", "name": "Color", "position": 1, "values": ["Blue", "Red"]},
            {"id": "opt-2", "name": "Size", "position": 2, "values": ["S", "M"]},
        ]
    if images is None:
        images = sorted({image for _, image in variants if image})
    return Product.model_validate(
        {
            "id": product_id,
            "title": title,
            "handle": title.lower(),
            "images": {"nodes": [{"id": image, "src": f"https://cdn.test/{image}.jpg"} for image in images]},
            "options": list(options),
            "variants": {
                "nodes": [
                    {
                        "id": f"variant-{i}",
                        "title": variant_title,
                        "inventoryQuantity": 5,
                        "image": {"id": image} if image else None,
                    }
                    for i, (variant_title, image) in enumerate(variants, start=1)
                ]
            },
        }
    )


@pytest.fixture
def tee_tally() -> SalesTally:
    return build_sales_tally(
        [
            SalesRecord("Tee", "Red / S", 10),
            SalesRecord("Tee", "Red / M", 5),
            SalesRecord("Tee", "Blue / S", 3),
        ]
    )


@pytest.fixture
def tee_product() -> Product:
    return build_product(
        [("Blue / S", "img-blue"), ("Red / M", "img-red"), ("Red / S", "img-red")],
        images=["img-blue", "img-red", "img-lifestyle"],
    )


class FakeCatalogClient:
    """Records every call; each write returns (or raises) what the test configured."""

    def __init__(
        self,
        products: Sequence[Product] = (),
        *,
        options_result: MutationResult | Exception | None = None,
        variants_result: MutationResult | Exception | None = None,
        images_result: MutationResult | Exception | None = None,
    ):
        self.products = list(products)
        self.results = {
            "options": options_result or MutationResult("productOptionsReorder", product_returned=True),
            "variants": variants_result or MutationResult("productVariantsBulkUpdate", product_returned=True),
            "images": images_result or MutationResult("productImagesReorder", product_returned=True),
        }
        self.calls: list[tuple[str, str, Any]] = []
        self.fetch_searches: list[str] = []

    def _respond(self, stage: str) -> MutationResult:
        result = self.results[stage]
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_products(self, search: str, scheduler=None) -> list[Product]:
        self.fetch_searches.append(search)
        if scheduler is not None:
            await scheduler.pace()
        return list(self.products)

    async def reorder_options(self, product_id: str, options: Sequence[OptionOrder]) -> MutationResult:
        self.calls.append(("options", product_id, list(options)))
        return self._respond("options")

    async def reorder_variants(self, product_id: str, positions: Sequence[dict[str, Any]]) -> MutationResult:
        self.calls.append(("variants", product_id, list(positions)))
        return self._respond("variants")

    async def reorder_images(self, product_id: str, image_ids: Sequence[str]) -> MutationResult:
        self.calls.append(("images", product_id, list(image_ids)))
        return self._respond("images")

    def stages_called(self) -> list[str]:
        return [stage for stage, _, _ in self.calls]


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def transport_error() -> ShopifyError:
    return ShopifyError("API HTTP Error: 502")


@pytest.fixture
def make_product():
    return build_product


@pytest.fixture
def make_client():
    return FakeCatalogClient


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> fakeredis.FakeAsyncRedis:
    """In-memory Redis installed as the store's client (one server per test)."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    monkeypatch.setattr(redis_store, "_redis", client)
    return client
