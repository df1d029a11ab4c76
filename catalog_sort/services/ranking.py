"""Sales-driven ranking of variants and option values.

Variant ranking logic:
1. Sort by aggregated color sales DESC (the variant's whole color group)
2. Then by the variant's own exact sales DESC
3. Ties keep input order (stable), so equal-sales variants never jitter
   between runs

Option value ranking:
- The color axis option (matched by name, case-insensitive) has its values
  sorted by aggregated color sales DESC, stable on ties
- Every other option passes through unchanged
- A product without a color axis cannot be ranked (NoColorAxisError)

Missing sales data always counts as zero; ranking never fails on it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from catalog_sort.schemas.catalog import ProductOption, ProductVariant
from catalog_sort.services.color_extractor import extract_color
from catalog_sort.services.sales_tally import ProductSales

logger = logging.getLogger("catalog_sort")


class NoColorAxisError(LookupError):
    """No option on the product matches a configured color axis label."""


@dataclass(frozen=True)
class RankedVariant:
    variant: ProductVariant
    color: str | None
    individual_sales: int
    color_sales: int

    def describe(self) -> str:
        return (
            f"{self.variant.title} (Color: {self.color or 'N/A'}, "
            f"C Sales: {self.color_sales}, I Sales: {self.individual_sales})"
        )


@dataclass(frozen=True)
class OptionOrder:
    """New value order for one option."""

    name: str
    values: list[str]
    is_color_axis: bool = False
    changed: bool = False


def rank_variants(variants: Iterable[ProductVariant], sales: ProductSales) -> list[RankedVariant]:
    """Rank a product's variants by (color group sales, own sales), descending.

    Args:
        variants: Variants in catalog (fetch) order.
        sales: Tally lookups for the product.

    Returns:
        RankedVariant list, most desirable first.
    """
    ranked: list[RankedVariant] = []
    for variant in variants:
        title = variant.title.strip()
        color = extract_color(title)
        if color is None:
            logger.warning(
                f"Could not extract color from catalog variant {variant.id} \"{title}\"; ranked on its own sales only"
            )
        ranked.append(
            RankedVariant(
                variant=variant,
                color=color,
                individual_sales=sales.variant_units(title),
                color_sales=sales.color_units(color),
            )
        )
    # sorted() is stable; negated keys give DESC without reverse=True.
    return sorted(ranked, key=lambda r: (-r.color_sales, -r.individual_sales))


def is_color_axis(option_name: str, color_option_names: Iterable[str]) -> bool:
    name = option_name.strip().casefold()
    return any(name == label.strip().casefold() for label in color_option_names)


def rank_option_values(option: ProductOption, sales: ProductSales) -> list[str]:
    """Sort one option's values by aggregated color sales DESC, stable on ties."""
    return sorted(option.values, key=lambda value: -sales.color_units(value))


def plan_option_orders(
    options: Sequence[ProductOption],
    sales: ProductSales,
    color_option_names: Iterable[str],
) -> list[OptionOrder]:
    """Compute the new value order for every option of a product.

    Only the first option matching a color axis label is ranked. Values are
    reordered, never inserted or dropped, so colors present in the sales data
    but missing from the option are ignored.

    Raises:
        NoColorAxisError: If no option matches a color axis label.
    """
    labels = list(color_option_names)
    orders: list[OptionOrder] = []
    found_color_axis = False

    for option in options:
        if not found_color_axis and is_color_axis(option.name, labels):
            found_color_axis = True
            values = rank_option_values(option, sales)
            orders.append(
                OptionOrder(
                    name=option.name,
                    values=values,
                    is_color_axis=True,
                    changed=values != list(option.values),
                )
            )
        else:
            orders.append(OptionOrder(name=option.name, values=list(option.values)))

    if not found_color_axis:
        raise NoColorAxisError(
            f"No option named {' / '.join(repr(n) for n in labels)} among "
            f"{[o.name for o in options]}"
        )
    return orders


def variant_positions(ranked: Sequence[RankedVariant]) -> list[dict[str, object]]:
    """Sequential 1-based positions in rank order, as the variants write expects."""
    return [{"id": r.variant.id, "position": i} for i, r in enumerate(ranked, start=1)]
