"""Combo bundle matching.

A combo consumes ``bundle_size`` units drawn from its constituent products in
any mix. Matching is greedy: the first pattern (in a fixed order) that the
remaining regular lines can satisfy is applied, and the search restarts on the
reduced cart until nothing matches.
"""

from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache
from math import comb

from posengine.app.schemas.cart import CartLine, ComboItemSnapshot, LineKind
from posengine.app.schemas.promotions import ComboDefinition

Pattern = tuple[int, ...]

# Above this a definition is rejected at catalog load instead of matched
MAX_COMBO_PATTERNS = 5000


def _compositions(total: int, parts: int) -> Iterator[Pattern]:
    """Every way to split *total* units over *parts* slots, earlier slots taking more first."""
    if parts == 1:
        yield (total,)
        return
    for first in range(total, -1, -1):
        for rest in _compositions(total - first, parts - 1):
            yield (first, *rest)


def pattern_count(combo: ComboDefinition) -> int:
    slots = len(combo.constituents)
    return comb(combo.bundle_size + slots - 1, slots - 1)


@lru_cache(maxsize=256)
def _patterns(size: int, slots: int) -> tuple[Pattern, ...]:
    patterns = list(_compositions(size, slots))
    # sorted() is stable, so ties keep the declaration order from _compositions
    return tuple(sorted(patterns, key=lambda p: sum(1 for q in p if q > 0)))


def combo_patterns(combo: ComboDefinition) -> tuple[Pattern, ...]:
    """Patterns for *combo*, fewest distinct products first, then declaration order.

    For a bundle of 3 over two products this yields (3,0), (0,3), (2,1), (1,2).
    Only the bundle size and the number of constituents matter, so the result
    is cached on those.
    """
    if pattern_count(combo) > MAX_COMBO_PATTERNS:
        raise ValueError(
            f"Combo {combo.id} has too many constituent mixes to match ({pattern_count(combo)})"
        )
    return _patterns(combo.bundle_size, len(combo.constituents))


def _available(lines: list[CartLine], combo: ComboDefinition, slot: int) -> int:
    ref = combo.constituents[slot].ref
    return sum(line.quantity for line in lines if line.matches(ref))


def _fits(lines: list[CartLine], combo: ComboDefinition, pattern: Pattern) -> bool:
    return all(
        qty == 0 or _available(lines, combo, slot) >= qty
        for slot, qty in enumerate(pattern)
    )


def _consume(
    lines: list[CartLine], combo: ComboDefinition, pattern: Pattern
) -> tuple[list[CartLine], list[ComboItemSnapshot]] | None:
    """Take the pattern's units out of *lines* in cart order.

    Returns None when the units run out part way, which happens when two
    constituents name overlapping products.
    """
    remaining = list(lines)
    taken: list[ComboItemSnapshot] = []
    for slot, qty in enumerate(pattern):
        need = qty
        ref = combo.constituents[slot].ref
        idx = 0
        while need > 0 and idx < len(remaining):
            line = remaining[idx]
            if not line.matches(ref):
                idx += 1
                continue
            used = min(need, line.quantity)
            taken.append(
                ComboItemSnapshot(
                    line_id=line.id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=line.display_name or line.name,
                    quantity=used,
                    price=line.price,
                )
            )
            need -= used
            if used == line.quantity:
                remaining.pop(idx)
            else:
                remaining[idx] = line.model_copy(update={"quantity": line.quantity - used})
                idx += 1
        if need > 0:
            return None
    return remaining, taken


def _next_combo_id(combo: ComboDefinition, taken_ids: set[str]) -> str:
    n = 1
    while f"combo-{combo.id}-{n}" in taken_ids:
        n += 1
    return f"combo-{combo.id}-{n}"


def apply_combos(
    regular: list[CartLine],
    combos: list[ComboDefinition],
    existing_combo_lines: list[CartLine] | None = None,
) -> tuple[list[CartLine], list[CartLine]]:
    """Bundle *regular* lines into combo lines.

    Returns ``(remaining_regular_lines, new_combo_lines)``. Existing combo
    lines are never touched; they are only consulted so new line ids do not
    collide with them.
    """
    remaining = list(regular)
    created: list[CartLine] = []
    taken_ids = {line.id for line in existing_combo_lines or []}

    for combo in combos:
        patterns = combo_patterns(combo)
        while True:
            consumed = None
            for pattern in patterns:
                if _fits(remaining, combo, pattern):
                    consumed = _consume(remaining, combo, pattern)
                    if consumed is not None:
                        break
            if consumed is None:
                break
            remaining, snapshot = consumed
            line_id = _next_combo_id(combo, taken_ids)
            taken_ids.add(line_id)
            first = snapshot[0]
            created.append(
                CartLine(
                    id=line_id,
                    product_id=first.product_id,
                    name=combo.name,
                    price=combo.combo_price,
                    quantity=1,
                    kind=LineKind.COMBO,
                    combo_id=combo.id,
                    combo_items=tuple(snapshot),
                )
            )
    return remaining, created
