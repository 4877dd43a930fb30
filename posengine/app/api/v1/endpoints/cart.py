from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from posengine.app.api.deps import get_current_operator, get_services
from posengine.app.schemas.cart import (
    CartLine,
    CartLineIn,
    CartOut,
    CartTotalsOut,
    DiscountUpdate,
    DisplayNameUpdate,
    PriceUpdate,
    QuantityUpdate,
)
from posengine.app.services.runtime import PosServices

router = APIRouter()


def cart_out(services: PosServices) -> CartOut:
    totals = services.checkout.totals().rounded()
    return CartOut(
        lines=services.engine.lines,
        totals=CartTotalsOut(
            subtotal=str(totals.subtotal),
            bill_discount=str(totals.bill_discount),
            net=str(totals.net),
            tax=str(totals.tax),
            tax_name=totals.tax_name,
            total=str(totals.total),
        ),
        recompute_pending=services.engine.recompute_pending,
    )


def _line_not_found(line_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=f"Cart line {line_id} not found"
    )


# ─── Cart ────────────────────────────────────────────────────────────────────


@router.get("", response_model=CartOut)
async def read_cart(
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    return cart_out(services)


@router.delete("", response_model=CartOut)
async def clear_cart(
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    services.engine.clear()
    return cart_out(services)


@router.put("/bill-discount", response_model=CartOut)
async def set_bill_discount(
    payload: DiscountUpdate,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    try:
        services.engine.set_bill_discount(payload.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return cart_out(services)


# ─── Lines ───────────────────────────────────────────────────────────────────


@router.post("/lines", response_model=CartOut, status_code=status.HTTP_201_CREATED)
async def add_line(
    payload: CartLineIn,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    services.engine.add_line(payload.to_line())
    return cart_out(services)


@router.put("/lines", response_model=CartOut)
async def load_lines(
    payload: list[CartLine],
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    """Replace the cart wholesale, e.g. when resuming a held sale."""
    services.engine.load_lines(payload)
    return cart_out(services)


@router.delete("/lines/{line_id}", response_model=CartOut)
async def remove_line(
    line_id: str,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    try:
        services.engine.remove_line(line_id)
    except KeyError:
        raise _line_not_found(line_id)
    return cart_out(services)


@router.patch("/lines/{line_id}/quantity", response_model=CartOut)
async def set_quantity(
    line_id: str,
    payload: QuantityUpdate,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    try:
        services.engine.set_quantity(line_id, payload.quantity)
    except KeyError:
        raise _line_not_found(line_id)
    return cart_out(services)


@router.patch("/lines/{line_id}/price", response_model=CartOut)
async def set_price(
    line_id: str,
    payload: PriceUpdate,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    try:
        services.engine.set_manual_price(line_id, payload.price)
    except KeyError:
        raise _line_not_found(line_id)
    return cart_out(services)


@router.patch("/lines/{line_id}/discount", response_model=CartOut)
async def set_discount(
    line_id: str,
    payload: DiscountUpdate,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    try:
        services.engine.set_manual_discount(line_id, payload.amount)
    except KeyError:
        raise _line_not_found(line_id)
    return cart_out(services)


@router.patch("/lines/{line_id}/display-name", response_model=CartOut)
async def set_display_name(
    line_id: str,
    payload: DisplayNameUpdate,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> CartOut:
    try:
        services.engine.set_display_name(line_id, payload.display_name)
    except KeyError:
        raise _line_not_found(line_id)
    return cart_out(services)
