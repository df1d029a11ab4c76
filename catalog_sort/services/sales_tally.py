"""Sales tally: historical sales records -> two read-only lookups.

Two levels, both keyed by trimmed product title:
- exact_sales: product -> variant title -> units   (last write wins on duplicates)
- color_sales: product -> color label   -> units   (summed over every variant
  whose title yields that color; titles without a color are left out)

The build is a pure function of its input sequence. The resulting tally is
never mutated after construction and is shared read-only across products.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from catalog_sort.services.color_extractor import extract_color

logger = logging.getLogger("catalog_sort")


@dataclass(frozen=True)
class SalesRecord:
    """One row of the sales export."""

    product_title: str
    variant_title: str
    units_sold: int


@dataclass(frozen=True)
class ProductSales:
    """Both tally levels for a single product."""

    product_title: str
    exact: Mapping[str, int]
    by_color: Mapping[str, int]

    def variant_units(self, variant_title: str) -> int:
        return self.exact.get(variant_title.strip(), 0)

    def color_units(self, color: str | None) -> int:
        if not color:
            return 0
        return self.by_color.get(color.strip(), 0)


@dataclass(frozen=True)
class SalesTally:
    exact_sales: Mapping[str, Mapping[str, int]]
    color_sales: Mapping[str, Mapping[str, int]]
    skipped_records: int = 0
    unextracted_titles: tuple[tuple[str, str], ...] = field(default=())

    def for_product(self, product_title: str) -> ProductSales | None:
        """Return both tallies for a product, or None unless both are present."""
        key = product_title.strip()
        exact = self.exact_sales.get(key)
        by_color = self.color_sales.get(key)
        if not exact or not by_color:
            return None
        return ProductSales(product_title=key, exact=exact, by_color=by_color)

    def unextracted_for(self, product_title: str) -> list[str]:
        """Variant titles of this product that yielded no color."""
        key = product_title.strip()
        return [variant for product, variant in self.unextracted_titles if product == key]


def _valid_units(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def build_sales_tally(records: Iterable[SalesRecord]) -> SalesTally:
    """Build the two-level tally from sales records, in input order.

    Records with an empty product/variant title or a units value that is not
    a non-negative integer are skipped with a warning.
    """
    exact: dict[str, dict[str, int]] = {}
    by_color: dict[str, dict[str, int]] = {}
    skipped = 0
    unextracted: list[tuple[str, str]] = []

    for index, record in enumerate(records, start=1):
        product_title = (record.product_title or "").strip()
        variant_title = (record.variant_title or "").strip()
        units = record.units_sold

        if not product_title or not variant_title:
            skipped += 1
            logger.warning(f"Skipping sales record #{index}: empty product or variant title ({record!r})")
            continue
        if not _valid_units(units):
            skipped += 1
            logger.warning(
                f"Skipping sales record #{index} for \"{product_title}\" / \"{variant_title}\": "
                f"units sold must be a non-negative integer, got {units!r}"
            )
            continue

        exact.setdefault(product_title, {})[variant_title] = units

        color = extract_color(variant_title)
        if color is None:
            unextracted.append((product_title, variant_title))
            logger.warning(
                f"Could not reliably extract color from variant title: \"{variant_title}\" "
                f"(product \"{product_title}\"); excluded from color totals"
            )
            continue

        colors = by_color.setdefault(product_title, {})
        colors[color] = colors.get(color, 0) + units

    if not by_color:
        logger.warning("No sales data aggregated by color")
    else:
        logger.info(f"Sales tally complete. Loaded individual sales for {len(exact)} products.")
        logger.info(f"Aggregated color sales for {len(by_color)} products.")

    return SalesTally(
        exact_sales=MappingProxyType({k: MappingProxyType(v) for k, v in exact.items()}),
        color_sales=MappingProxyType({k: MappingProxyType(v) for k, v in by_color.items()}),
        skipped_records=skipped,
        unextracted_titles=tuple(unextracted),
    )
