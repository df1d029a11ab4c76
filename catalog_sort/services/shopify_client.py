"""Shopify Admin GraphQL client for catalog reads and reorder writes.

Calls:
- products (paginated, cursor-driven): product + images + options + variants
- productOptionsReorder: new option value order
- productVariantsBulkUpdate: explicit variant positions
- productImagesReorder: explicit image order

Rate limiting:
- HTTP 429 or a THROTTLED GraphQL error triggers a fixed cooldown sleep,
  then surfaces as ShopifyRateLimitError. The same call is never retried
  here; the cooldown only paces the next call.

Configuration is an immutable ShopifyClientConfig passed to the client;
there is no module-level endpoint or header state.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from catalog_sort.schemas.catalog import Product
from catalog_sort.services.ranking import OptionOrder
from catalog_sort.services.throttle import FixedDelayScheduler
from catalog_sort.settings import Settings, normalize_shop_domain

logger = logging.getLogger("catalog_sort")


class ShopifyError(RuntimeError):
    pass


class ShopifyConfigError(ShopifyError):
    pass


class ShopifyTransportError(ShopifyError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ShopifyRateLimitError(ShopifyTransportError):
    pass


class ShopifyGraphQLError(ShopifyError):
    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ShopifyResponseError(ShopifyError):
    pass


@dataclass(frozen=True)
class ShopifyClientConfig:
    """Immutable connection settings for one run."""

    shop_domain: str
    access_token: str
    api_version: str = "2024-10"
    timeout_s: float = 30.0
    rate_limit_cooldown_s: float = 10.0
    products_page_size: int = 10
    images_per_product: int = 20
    variants_per_product: int = 50

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token,
        }

    @property
    def masked_token(self) -> str:
        return f"{self.access_token[:10]}..." if self.access_token else ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyClientConfig":
        """Build config from Settings.

        Raises:
            ShopifyConfigError: If the shop domain or access token is missing.
        """
        shop = normalize_shop_domain(settings.shop_url)
        token = settings.shopify_access_token.strip()
        if not shop or not token:
            raise ShopifyConfigError("Missing SHOP_URL or SHOPIFY_ACCESS_TOKEN")
        return cls(
            shop_domain=shop,
            access_token=token,
            api_version=settings.shopify_api_version,
            timeout_s=settings.http_timeout_s,
            rate_limit_cooldown_s=settings.rate_limit_cooldown_s,
            products_page_size=settings.products_page_size,
            images_per_product=settings.images_per_product,
            variants_per_product=settings.variants_per_product,
        )


@dataclass
class MutationResult:
    """Outcome of a reorder mutation that reached the API.

    Transport and protocol failures raise instead; this only carries what the
    API reported alongside a response.
    """

    mutation: str
    user_errors: list[dict[str, Any]] = field(default_factory=list)
    graphql_errors: list[dict[str, Any]] = field(default_factory=list)
    product_returned: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.user_errors or self.graphql_errors)

    @property
    def ok(self) -> bool:
        return not self.has_errors

    def error_summary(self) -> str:
        return json.dumps(self.user_errors + self.graphql_errors, ensure_ascii=False)


# ============================================================
# GraphQL documents
# ============================================================

GET_PRODUCTS_QUERY = """
query getProducts($query: String!, $cursor: String, $first: Int!, $imagesFirst: Int!, $variantsFirst: Int!) {
  products(first: $first, after: $cursor, query: $query) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      title
      handle
      images(first: $imagesFirst) {
        nodes {
          id
          src
        }
      }
      options {
        id
        name
        position
        values
      }
      variants(first: $variantsFirst, sortKey: POSITION) {
        nodes {
          id
          title
          inventoryQuantity
          image {
            id
          }
        }
      }
    }
  }
}
"""

REORDER_OPTIONS_MUTATION = """
mutation productOptionsReorder($productId: ID!, $options: [OptionReorderInput!]!) {
  productOptionsReorder(productId: $productId, options: $options) {
    product {
      id
      options { name position values }
    }
    userErrors { field message code }
  }
}
"""

REORDER_VARIANTS_MUTATION = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    product {
      id
    }
    userErrors { field message }
  }
}
"""

REORDER_IMAGES_MUTATION = """
mutation productImagesReorder($productId: ID!, $imageIds: [ID!]!) {
  productImagesReorder(productId: $productId, imageIds: $imageIds) {
    product {
      id
    }
    userErrors { field message }
  }
}
"""


def _is_throttled(errors: Sequence[dict[str, Any]]) -> bool:
    for err in errors:
        ext = err.get("extensions") if isinstance(err, dict) else None
        if isinstance(ext, dict) and str(ext.get("code", "")).upper() == "THROTTLED":
            return True
    return False


class ShopifyClient:
    """Async client for the Shopify Admin GraphQL API."""

    def __init__(
        self,
        config: ShopifyClientConfig,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout_s)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client (only if this client created it)."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _cooldown(self) -> None:
        wait_s = self.config.rate_limit_cooldown_s
        logger.warning(f"Rate limit hit. Waiting {wait_s:g} seconds before the next call...")
        await self._sleep(wait_s)

    async def execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """POST a GraphQL document and return the decoded body ({data, errors}).

        Raises:
            ShopifyRateLimitError: HTTP 429 / THROTTLED (after the cooldown).
            ShopifyTransportError: Network failure, HTTP error or non-JSON body.
            ShopifyResponseError: Body is JSON but not an object.
        """
        client = await self._get_client()
        try:
            response = await client.post(
                self.config.endpoint,
                headers=self.config.headers,
                json={"query": query, "variables": variables},
            )
        except httpx.HTTPError as e:
            logger.error(f"API Fetch Error: {e!r}")
            raise ShopifyTransportError(f"API request failed: {e}") from e

        if response.status_code == 429:
            logger.error("API HTTP Error: 429 Too Many Requests")
            await self._cooldown()
            raise ShopifyRateLimitError("API HTTP Error: 429", status_code=429)

        if response.status_code >= 400:
            logger.error(f"API HTTP Error: {response.status_code} - {response.text[:200]}")
            raise ShopifyTransportError(
                f"API HTTP Error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Malformed API response (not JSON): {response.text[:200]}")
            raise ShopifyTransportError("Malformed API response", status_code=response.status_code) from e

        if not isinstance(body, dict):
            raise ShopifyResponseError(f"Unexpected API response type: {type(body).__name__}")

        errors = body.get("errors") or []
        if errors and _is_throttled(errors):
            logger.error(f"GraphQL throttled: {json.dumps(errors)}")
            await self._cooldown()
            raise ShopifyRateLimitError("GraphQL Error: THROTTLED", status_code=response.status_code)

        return body

    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        body = await self.execute(query, variables)
        errors = body.get("errors") or []
        if errors:
            logger.error(f"GraphQL Error: {json.dumps(errors)}")
            raise ShopifyGraphQLError("GraphQL Error", errors)
        data = body.get("data")
        if not isinstance(data, dict):
            raise ShopifyResponseError("GraphQL response has no data")
        return data

    async def _mutate(
        self,
        name: str,
        query: str,
        variables: dict[str, Any],
        *,
        allow_errors_with_product: bool = False,
    ) -> MutationResult:
        body = await self.execute(query, variables)
        errors: list[dict[str, Any]] = body.get("errors") or []
        data = body.get("data") or {}
        payload = data.get(name) if isinstance(data, dict) else None
        has_product = isinstance(payload, dict) and bool(payload.get("product"))

        if errors:
            if not (allow_errors_with_product and has_product):
                logger.error(f"GraphQL Error during {name}: {json.dumps(errors)}")
                raise ShopifyGraphQLError(f"GraphQL Error during {name}", errors)
            logger.warning(
                f"GraphQL Error during {name} (continuing, product data present): {json.dumps(errors)}"
            )

        if not isinstance(payload, dict):
            raise ShopifyResponseError(f"{name} response has no payload")

        user_errors = payload.get("userErrors") or []
        if user_errors:
            logger.warning(f"UserErrors in {name}: {json.dumps(user_errors)}")

        return MutationResult(
            mutation=name,
            user_errors=list(user_errors),
            graphql_errors=list(errors),
            product_returned=has_product,
        )

    async def fetch_products(
        self,
        search: str,
        scheduler: FixedDelayScheduler | None = None,
    ) -> list[Product]:
        """Fetch every product matching a search string, one page at a time.

        Args:
            search: Products search query, e.g. "tag:'summer'".
            scheduler: Paces the loop after every page (no pacing if None).

        Returns:
            Products in fetch order. Nodes that fail validation are logged
            and left out.
        """
        products: list[Product] = []
        cursor: str | None = None
        logger.info(f"Fetching all products matching query: \"{search}\"...")

        while True:
            data = await self._query(
                GET_PRODUCTS_QUERY,
                {
                    "query": search,
                    "cursor": cursor,
                    "first": self.config.products_page_size,
                    "imagesFirst": self.config.images_per_product,
                    "variantsFirst": self.config.variants_per_product,
                },
            )
            connection = data.get("products")
            if not isinstance(connection, dict):
                raise ShopifyResponseError("products connection missing from response")

            for node in connection.get("nodes") or []:
                try:
                    products.append(Product.model_validate(node))
                except ValidationError as e:
                    node_id = node.get("id") if isinstance(node, dict) else None
                    logger.error(f"Skipping malformed product node {node_id}: {e}")

            logger.info(f"Fetched {len(products)} products so far...")
            if scheduler is not None:
                await scheduler.pace()

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
            if not cursor:
                raise ShopifyResponseError("hasNextPage is true but endCursor is missing")

        logger.info(f"Total products found: {len(products)}")
        return products

    async def reorder_options(self, product_id: str, options: Sequence[OptionOrder]) -> MutationResult:
        payload = [
            {"name": order.name, "values": [{"name": value} for value in order.values]}
            for order in options
        ]
        return await self._mutate(
            "productOptionsReorder",
            REORDER_OPTIONS_MUTATION,
            {"productId": product_id, "options": payload},
            allow_errors_with_product=True,
        )

    async def reorder_variants(
        self, product_id: str, positions: Sequence[dict[str, Any]]
    ) -> MutationResult:
        return await self._mutate(
            "productVariantsBulkUpdate",
            REORDER_VARIANTS_MUTATION,
            {"productId": product_id, "variants": list(positions)},
        )

    async def reorder_images(self, product_id: str, image_ids: Sequence[str]) -> MutationResult:
        return await self._mutate(
            "productImagesReorder",
            REORDER_IMAGES_MUTATION,
            {"productId": product_id, "imageIds": list(image_ids)},
        )
