"""Checkout: validation, flush-before-settle, online and offline settlement."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from posengine.app.schemas.checkout import PaymentEntry, PaymentMethodEnum
from posengine.app.services.tax import timbre_tax
from posengine.tests.factories import CASHIER_ID, STORE_ID, make_combo, make_line


def _settle(services, **kwargs):
    params = {"payments": [], "store_id": STORE_ID, "cashier_id": CASHIER_ID}
    params.update(kwargs)
    return asyncio.run(services.checkout.settle(**params))


def test_empty_cart_is_rejected_without_side_effects(services, remote):
    result = _settle(services)

    assert result is None
    assert services.checkout.last_error == "Cart is empty"
    assert remote.upsert_calls == 0
    assert services.queue.count_unsynced() == 0


def test_missing_store_or_operator_is_rejected(services):
    services.engine.add_line(make_line("a"))

    assert _settle(services, store_id=None) is None
    assert services.checkout.last_error == "No store selected"
    assert _settle(services, cashier_id="") is None
    assert services.checkout.last_error == "Not authenticated"
    assert len(services.engine.lines) == 1


def test_online_settlement_writes_remotely_and_clears_cart(services, remote):
    services.engine.add_line(make_line("a", price="2.00", quantity=3))

    result = _settle(services)

    assert result.sync_status == "synced"
    assert result.total == "6.00"
    assert result.payment_method == "CASH"
    assert result.payments == [{"method": "CASH", "amount": "6.00"}]
    assert result.id in remote.transactions
    assert services.engine.lines == []
    assert services.queue.count_unsynced() == 0


def test_offline_settlement_is_queued(services, remote):
    remote.online = False
    asyncio.run(services.monitor.probe())
    services.engine.add_line(make_line("a", price="2.00"))

    result = _settle(services)

    assert result.sync_status == "pending"
    assert remote.upsert_calls == 0
    assert services.queue.get(result.id) is not None
    assert services.engine.lines == []


def test_remote_failure_falls_back_to_queue(services, remote):
    remote.fail_writes = True
    services.engine.add_line(make_line("a", price="2.00"))

    result = _settle(services)

    assert result.sync_status == "pending"
    assert "remote unreachable" in result.sync_error
    assert services.queue.count_unsynced() == 1


def test_pending_recompute_is_flushed_before_totals(services, remote):
    remote.combos = [make_combo("soda3", "2.50", ("soda", 3))]
    asyncio.run(services.catalog.load())
    for _ in range(3):
        services.engine.add_line(make_line("soda"))

    result = _settle(services)

    assert result.total == "2.50"
    assert [item["kind"] for item in result.items] == ["COMBO"]
    assert result.items[0]["line_total"] == "2.50"


def test_bill_discount_and_tax_on_net(services):
    services.checkout.tax_function = timbre_tax
    services.engine.add_line(make_line("tv", price="6000.00"))
    services.engine.set_bill_discount(Decimal("500.00"))

    result = _settle(services)

    assert result.subtotal == "6000.00"
    assert result.discount == "500.00"
    assert result.tax == "100.00"
    assert result.tax_name == "Timbre"
    assert result.total == "5600.00"


def test_split_payment_is_labelled(services):
    services.engine.add_line(make_line("a", price="10.00"))

    result = _settle(
        services,
        payments=[
            PaymentEntry(method=PaymentMethodEnum.CASH, amount=Decimal("4.00")),
            PaymentEntry(method=PaymentMethodEnum.CARD, amount=Decimal("6.00")),
        ],
    )

    assert result.payment_method == "SPLIT"
    assert len(result.payments) == 2


def test_editing_a_transaction_keeps_its_id(services, remote):
    services.engine.add_line(make_line("a"))

    result = _settle(services, editing_id="tx-existing", editing_kind="transaction")

    assert result.id == "tx-existing"
    assert result.order_id is None
    assert "tx-existing" in remote.transactions


def test_settling_an_online_order_converts_it(services, remote):
    services.engine.add_line(make_line("a", price="5.00"))

    result = _settle(services, editing_id="order-7", editing_kind="order")

    assert result.order_id == "order-7"
    assert result.id != "order-7"
    assert remote.converted_orders == [("order-7", result.id, "CASH")]


def test_oversized_bill_discount_settles_at_zero(services, remote):
    services.engine.add_line(make_line("a", price="2.00", quantity=2))
    services.engine.set_bill_discount(Decimal("10.00"))

    result = _settle(services)

    assert result.subtotal == "4.00"
    assert result.discount == "4.00"
    assert result.total == "0.00"
    assert result.payment_method == "CASH"
    assert remote.transactions[result.id].total == Decimal("0.00")
