"""Tests for image sequencing."""

from catalog_sort.services.images import sequence_images
from catalog_sort.services.ranking import rank_variants
from catalog_sort.services.sales_tally import SalesRecord, build_sales_tally


def _sequence(product, tally):
    ranked = rank_variants(product.variants, tally.for_product(product.title))
    return sequence_images(ranked, product.images)


def test_tee_scenario(tee_product, tee_tally):
    assert _sequence(tee_product, tee_tally) == ["img-red", "img-blue", "img-lifestyle"]


def test_output_is_permutation_of_pool(make_product, tee_tally):
    product = make_product(
        [("Blue / S", "img-b"), ("Red / S", "img-r"), ("Red / M", "img-off-page"), ("Blue / M", None)],
        images=["img-x", "img-b", "img-y", "img-r"],
    )
    order = _sequence(product, tee_tally)
    assert sorted(order) == sorted(image.id for image in product.images)
    assert len(order) == len(set(order))
    assert "img-off-page" not in order


def test_shared_image_placed_at_highest_rank(make_product):
    tally = build_sales_tally(
        [
            SalesRecord("Tee", "Red / S", 1),
            SalesRecord("Tee", "Blue / S", 8),
            SalesRecord("Tee", "Green / S", 4),
        ]
    )
    product = make_product(
        [("Red / S", "img-shared"), ("Green / S", "img-green"), ("Blue / S", "img-shared")],
        images=["img-green", "img-shared"],
    )
    # Blue ranks first, so the shared image leads even though Red ranks last.
    assert _sequence(product, tally) == ["img-shared", "img-green"]


def test_unreferenced_images_keep_fetch_order(make_product, tee_tally):
    product = make_product(
        [("Blue / S", "img-blue")],
        images=["img-3", "img-1", "img-blue", "img-2"],
    )
    assert _sequence(product, tee_tally) == ["img-blue", "img-3", "img-1", "img-2"]


def test_no_variant_images(make_product, tee_tally):
    product = make_product([("Red / S", None), ("Blue / S", None)], images=["img-a", "img-b"])
    assert _sequence(product, tee_tally) == ["img-a", "img-b"]


def test_empty_pool(make_product, tee_tally):
    product = make_product([("Red / S", "img-gone")], images=[])
    assert _sequence(product, tee_tally) == []
