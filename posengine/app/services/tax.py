"""Bill-level tax functions consumed by the settlement calculator.

A tax function is pure: it receives the net bill amount (after the bill
discount) and returns the tax to add on top.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

ZERO = Decimal("0")


@dataclass(frozen=True)
class TaxResult:
    tax_amount: Decimal
    tax_name: str
    is_applicable: bool


TaxFunction = Callable[[Decimal], TaxResult]


def no_tax(net_amount: Decimal) -> TaxResult:
    return TaxResult(tax_amount=ZERO, tax_name="None", is_applicable=False)


# (exclusive lower bound, inclusive upper bound, flat duty)
TIMBRE_BRACKETS: list[tuple[Decimal, Decimal | None, Decimal]] = [
    (Decimal("5000"), Decimal("100000"), Decimal("100")),
    (Decimal("100000"), Decimal("500000"), Decimal("500")),
    (Decimal("500000"), Decimal("1000000"), Decimal("1000")),
    (Decimal("1000000"), Decimal("5000000"), Decimal("2000")),
    (Decimal("5000000"), None, Decimal("5000")),
]


def timbre_tax(net_amount: Decimal) -> TaxResult:
    """Flat Timbre stamp duty by bill bracket. Bills of 5,000 or less are exempt."""
    for lower, upper, duty in TIMBRE_BRACKETS:
        if net_amount > lower and (upper is None or net_amount <= upper):
            return TaxResult(tax_amount=duty, tax_name="Timbre", is_applicable=True)
    return TaxResult(tax_amount=ZERO, tax_name="Timbre", is_applicable=False)


def timbre_bracket(net_amount: Decimal) -> str:
    """Human-readable bracket label for receipts."""
    if net_amount <= Decimal("5000"):
        return "No Timbre (≤5,000)"
    if net_amount <= Decimal("100000"):
        return "5,001 - 100,000 = 100"
    if net_amount <= Decimal("500000"):
        return "100,001 - 500,000 = 500"
    if net_amount <= Decimal("1000000"):
        return "500,001 - 1,000,000 = 1,000"
    if net_amount <= Decimal("5000000"):
        return "1,000,001 - 5,000,000 = 2,000"
    return "Above 5,000,000 = 5,000"


TAX_SCHEMES: dict[str, TaxFunction] = {
    "timbre": timbre_tax,
    "none": no_tax,
}


def get_tax_function(scheme: str) -> TaxFunction:
    try:
        return TAX_SCHEMES[scheme.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown tax scheme '{scheme}'") from None
