"""Pure settlement math: cart lines + bill discount -> subtotal, tax, total.

Intermediate values stay unrounded; only :meth:`SettlementTotals.rounded`
quantizes, right before figures are written to a record.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from posengine.app.schemas.cart import CartLine
from posengine.app.services.tax import TaxFunction, no_tax

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(line: CartLine) -> Decimal:
    discount = line.item_discount if line.item_discount is not None else ZERO
    return line.effective_price * line.quantity - discount * line.quantity


def subtotal(lines: Iterable[CartLine]) -> Decimal:
    return sum((line_total(line) for line in lines), ZERO)


@dataclass(frozen=True)
class SettlementTotals:
    subtotal: Decimal
    bill_discount: Decimal
    net: Decimal
    tax: Decimal
    tax_name: str
    tax_applicable: bool
    total: Decimal

    def rounded(self) -> "SettlementTotals":
        return SettlementTotals(
            subtotal=round_money(self.subtotal),
            bill_discount=round_money(self.bill_discount),
            net=round_money(self.net),
            tax=round_money(self.tax),
            tax_name=self.tax_name,
            tax_applicable=self.tax_applicable,
            total=round_money(self.total),
        )


def compute_totals(
    lines: Iterable[CartLine],
    bill_discount: Decimal = ZERO,
    tax_function: TaxFunction = no_tax,
) -> SettlementTotals:
    """Tax is levied on the amount after the bill discount, not on the subtotal.

    The discount is capped at the subtotal so a sale never settles below zero.
    """
    sub = subtotal(lines)
    bill_discount = min(bill_discount, max(sub, ZERO))
    net = sub - bill_discount
    tax = tax_function(net)
    amount = tax.tax_amount if tax.is_applicable else ZERO
    return SettlementTotals(
        subtotal=sub,
        bill_discount=bill_discount,
        net=net,
        tax=amount,
        tax_name=tax.tax_name,
        tax_applicable=tax.is_applicable,
        total=net + amount,
    )
