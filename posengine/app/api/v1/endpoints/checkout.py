from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from posengine.app.api.deps import get_current_operator, get_services
from posengine.app.schemas.checkout import SettledTransaction, SettleRequest
from posengine.app.services.runtime import PosServices

router = APIRouter()


@router.post("/settle", response_model=SettledTransaction, status_code=status.HTTP_201_CREATED)
async def settle(
    payload: SettleRequest,
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> SettledTransaction:
    result = await services.checkout.settle(
        payments=payload.payments,
        store_id=payload.store_id or services.store_id,
        cashier_id=operator_id,
        customer_id=payload.customer_id,
        notes=payload.notes,
        editing_id=payload.editing_id,
        editing_kind=payload.editing_kind,
    )
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=services.checkout.last_error or "Checkout failed",
        )
    return result
