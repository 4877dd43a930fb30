"""Combo bundling: pattern order, greedy matching, id-based constituents."""

from __future__ import annotations

from decimal import Decimal

import pytest

from posengine.app.schemas.cart import LineKind
from posengine.app.services.promotions.combos import (
    MAX_COMBO_PATTERNS,
    apply_combos,
    combo_patterns,
    pattern_count,
)
from posengine.app.services.settlement import subtotal
from posengine.tests.factories import make_combo, make_line


def test_patterns_for_single_product_combo():
    combo = make_combo("soda3", "2.50", ("soda", 3))
    assert combo_patterns(combo) == ((3,),)


def test_patterns_for_two_products_prefer_single_product_first():
    combo = make_combo("mix", "5.00", ("a", 2), ("b", 1))
    assert combo_patterns(combo) == ((3, 0), (0, 3), (2, 1), (1, 2))


def test_patterns_for_three_products():
    combo = make_combo("trio", "5.00", ("a", 1), ("b", 1), ("c", 1))
    patterns = combo_patterns(combo)

    assert patterns[:3] == ((3, 0, 0), (0, 3, 0), (0, 0, 3))
    assert patterns[-1] == (1, 1, 1)
    assert len(patterns) == 10
    assert all(sum(p) == 3 for p in patterns)


def test_patterns_are_shared_between_combos_of_the_same_shape():
    first = make_combo("x", "5.00", ("a", 1), ("b", 2))
    second = make_combo("y", "7.00", ("c", 2), ("d", 1))

    assert combo_patterns(first) is combo_patterns(second)


def test_oversized_combo_is_refused():
    combo = make_combo("big", "9.00", *[(f"p{i}", 1) for i in range(15)])

    assert pattern_count(combo) > MAX_COMBO_PATTERNS
    with pytest.raises(ValueError, match="too many constituent mixes"):
        combo_patterns(combo)


def test_three_soda_lines_become_one_combo_line():
    lines = [
        make_line("soda-v1", product_id="soda", variant_id="v1"),
        make_line("soda-v2", product_id="soda", variant_id="v2"),
        make_line("soda-v3", product_id="soda", variant_id="v3"),
    ]
    combo = make_combo("soda3", "2.50", ("soda", 3))

    remaining, created = apply_combos(lines, [combo])

    assert remaining == []
    assert len(created) == 1
    line = created[0]
    assert line.kind == LineKind.COMBO
    assert line.price == Decimal("2.50")
    assert line.quantity == 1
    assert line.combo_id == "soda3"
    assert [item.line_id for item in line.combo_items] == ["soda-v1", "soda-v2", "soda-v3"]
    assert subtotal(created) == Decimal("2.50")


def test_combo_repeats_and_leaves_the_remainder():
    lines = [make_line("soda", quantity=7)]
    combo = make_combo("soda3", "2.50", ("soda", 3))

    remaining, created = apply_combos(lines, [combo])

    assert [line.id for line in created] == ["combo-soda3-1", "combo-soda3-2"]
    assert len(remaining) == 1
    assert remaining[0].quantity == 1


def test_mixed_combo_consumes_lines_in_cart_order():
    lines = [
        make_line("b", quantity=1),
        make_line("a", quantity=1),
        make_line("a2", product_id="a", quantity=1),
        make_line("c", quantity=4),
    ]
    combo = make_combo("ab", "4.00", ("a", 2), ("b", 1))

    remaining, created = apply_combos(lines, [combo])

    assert len(created) == 1
    # (3,0) and (0,3) do not fit, (2,1) does
    assert [(i.line_id, i.quantity) for i in created[0].combo_items] == [
        ("a", 1),
        ("a2", 1),
        ("b", 1),
    ]
    assert [line.id for line in remaining] == ["c"]


def test_combos_are_applied_in_display_order():
    lines = [make_line("soda", quantity=3)]
    cheap = make_combo("cheap", "2.00", ("soda", 3), display_order=2)
    first = make_combo("first", "2.70", ("soda", 3), display_order=1)

    _, created = apply_combos(lines, sorted([cheap, first], key=lambda c: c.display_order))

    assert [line.combo_id for line in created] == ["first"]


def test_no_match_leaves_cart_untouched():
    lines = [make_line("soda", quantity=2), make_line("chips", quantity=1)]
    combo = make_combo("soda3", "2.50", ("soda", 3))

    remaining, created = apply_combos(lines, [combo])

    assert created == []
    assert remaining == lines


def test_second_pass_over_result_is_idempotent():
    lines = [make_line("soda", quantity=4)]
    combo = make_combo("soda3", "2.50", ("soda", 3))

    remaining, created = apply_combos(lines, [combo])
    again_remaining, again_created = apply_combos(remaining, [combo], created)

    assert again_created == []
    assert again_remaining == remaining


def test_new_combo_ids_skip_existing_ones():
    combo = make_combo("soda3", "2.50", ("soda", 3))
    _, first = apply_combos([make_line("soda", quantity=3)], [combo])

    _, second = apply_combos([make_line("soda", quantity=3)], [combo], first)

    assert second[0].id == "combo-soda3-2"
