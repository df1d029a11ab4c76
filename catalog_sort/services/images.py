"""Image sequencing that follows the variant ranking."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from catalog_sort.schemas.catalog import ProductImage
from catalog_sort.services.ranking import RankedVariant

logger = logging.getLogger("catalog_sort")


def sequence_images(ranked: Iterable[RankedVariant], images: Sequence[ProductImage]) -> list[str]:
    """Order a product's image pool by the ranked variants that use each image.

    A shared image lands at the rank of the first (highest-ranked) variant that
    references it. Images no variant references follow in original fetch order.
    The output is a permutation of the pool: variant images that are not in the
    pool (e.g. beyond the fetched page) are left out.
    """
    pool_ids = [image.id for image in images]
    in_pool = set(pool_ids)
    emitted: set[str] = set()
    order: list[str] = []

    for item in ranked:
        image_id = item.variant.image_id
        if not image_id or image_id in emitted:
            continue
        if image_id not in in_pool:
            logger.debug(f"Variant {item.variant.id} image {image_id} is not in the fetched image pool")
            continue
        order.append(image_id)
        emitted.add(image_id)

    for image_id in pool_ids:
        if image_id not in emitted:
            order.append(image_id)
            emitted.add(image_id)

    return order
