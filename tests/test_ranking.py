"""Tests for variant and option value ranking."""

import pytest

from catalog_sort.schemas.catalog import ProductOption
from catalog_sort.services.ranking import (
    NoColorAxisError,
    is_color_axis,
    plan_option_orders,
    rank_option_values,
    rank_variants,
    variant_positions,
)
from catalog_sort.services.sales_tally import SalesRecord, build_sales_tally

COLOR_LABELS = ["Color", "Colour"]


def _titles(ranked):
    return [r.variant.title for r in ranked]


class TestRankVariants:
    def test_tee_scenario(self, tee_product, tee_tally):
        ranked = rank_variants(tee_product.variants, tee_tally.for_product("Tee"))
        assert _titles(ranked) == ["Red / S", "Red / M", "Blue / S"]
        top = ranked[0]
        assert (top.color, top.color_sales, top.individual_sales) == ("Red", 15, 10)

    def test_color_group_beats_individual_sales(self, make_product):
        tally = build_sales_tally(
            [
                SalesRecord("Tee", "Green / S", 20),
                SalesRecord("Tee", "Red / S", 12),
                SalesRecord("Tee", "Red / M", 12),
            ]
        )
        product = make_product([("Green / S", None), ("Red / S", None), ("Red / M", None)])
        ranked = rank_variants(product.variants, tally.for_product("Tee"))
        assert _titles(ranked) == ["Red / S", "Red / M", "Green / S"]

    def test_ties_keep_input_order(self, make_product):
        tally = build_sales_tally([SalesRecord("Tee", "Red / S", 4)])
        product = make_product(
            [("Blue / M", None), ("Green / M", None), ("Red / S", None), ("Blue / S", None)]
        )
        ranked = rank_variants(product.variants, tally.for_product("Tee"))
        assert _titles(ranked) == ["Red / S", "Blue / M", "Green / M", "Blue / S"]

    def test_ranking_is_deterministic(self, tee_product, tee_tally):
        sales = tee_tally.for_product("Tee")
        first = _titles(rank_variants(tee_product.variants, sales))
        second = _titles(rank_variants(tee_product.variants, sales))
        assert first == second

    def test_variant_without_color_ranks_on_own_sales(self, make_product):
        tally = build_sales_tally(
            [
                SalesRecord("Tee", "Red / S", 1),
                SalesRecord("Tee", "XL", 9),
            ]
        )
        product = make_product([("XL", None), ("Red / S", None), ("Blue / S", None)])
        ranked = rank_variants(product.variants, tally.for_product("Tee"))
        assert _titles(ranked) == ["Red / S", "XL", "Blue / S"]
        assert ranked[1].color is None
        assert ranked[1].color_sales == 0

    def test_variant_without_color_is_logged(self, make_product, tee_tally, caplog):
        product = make_product([("XL", None), ("Red / S", None)])
        with caplog.at_level("WARNING", logger="catalog_sort"):
            rank_variants(product.variants, tee_tally.for_product("Tee"))
        messages = [r.getMessage() for r in caplog.records if r.levelname == "WARNING"]
        assert messages == ['Could not extract color from catalog variant variant-1 "XL"; ranked on its own sales only']

    def test_describe(self, tee_product, tee_tally):
        ranked = rank_variants(tee_product.variants, tee_tally.for_product("Tee"))
        assert ranked[0].describe() == "Red / S (Color: Red, C Sales: 15, I Sales: 10)"

    def test_variant_positions_are_sequential(self, tee_product, tee_tally):
        ranked = rank_variants(tee_product.variants, tee_tally.for_product("Tee"))
        assert variant_positions(ranked) == [
            {"id": "variant-3", "position": 1},
            {"id": "variant-2", "position": 2},
            {"id": "variant-1", "position": 3},
        ]


class TestOptionOrders:
    def test_color_axis_values_ranked(self, tee_product, tee_tally):
        orders = plan_option_orders(tee_product.options, tee_tally.for_product("Tee"), COLOR_LABELS)
        color, size = orders
        assert color.name == "Color"
        assert color.values == ["Red", "Blue"]
        assert color.is_color_axis and color.changed
        assert size.values == ["S", "M"]
        assert not size.is_color_axis and not size.changed

    def test_colour_spelling_matches(self, tee_tally):
        options = [
            ProductOption(name="Size", values=["S", "M"]),
            ProductOption(name="colour", values=["Blue", "Red"]),
        ]
        orders = plan_option_orders(options, tee_tally.for_product("Tee"), COLOR_LABELS)
        assert [o.name for o in orders] == ["Size", "colour"]
        assert orders[1].values == ["Red", "Blue"]

    def test_no_color_axis(self, tee_tally):
        options = [ProductOption(name="Size", values=["S", "M"])]
        with pytest.raises(NoColorAxisError):
            plan_option_orders(options, tee_tally.for_product("Tee"), COLOR_LABELS)

    def test_only_first_color_axis_ranked(self, tee_tally):
        options = [
            ProductOption(name="Color", values=["Blue", "Red"]),
            ProductOption(name="Colour", values=["Blue", "Red"]),
        ]
        orders = plan_option_orders(options, tee_tally.for_product("Tee"), COLOR_LABELS)
        assert orders[0].values == ["Red", "Blue"]
        assert orders[1].values == ["Blue", "Red"]
        assert not orders[1].is_color_axis

    def test_values_without_sales_keep_order(self, tee_tally):
        option = ProductOption(name="Color", values=["Green", "Blue", "Yellow", "Red"])
        assert rank_option_values(option, tee_tally.for_product("Tee")) == ["Red", "Blue", "Green", "Yellow"]

    def test_sales_only_colors_not_inserted(self, tee_tally):
        option = ProductOption(name="Color", values=["Blue"])
        orders = plan_option_orders([option], tee_tally.for_product("Tee"), COLOR_LABELS)
        assert orders[0].values == ["Blue"]
        assert not orders[0].changed

    def test_is_color_axis(self):
        assert is_color_axis(" COLOR ", COLOR_LABELS)
        assert is_color_axis("Colour", COLOR_LABELS)
        assert not is_color_axis("Colors", COLOR_LABELS)
