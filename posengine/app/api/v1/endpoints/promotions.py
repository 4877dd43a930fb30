from __future__ import annotations

from fastapi import APIRouter, Depends

from posengine.app.api.deps import get_current_operator, get_services
from posengine.app.schemas.promotions import PromotionCatalogOut
from posengine.app.services.runtime import PosServices

router = APIRouter()


def catalog_out(services: PosServices) -> PromotionCatalogOut:
    catalog = services.catalog.get()
    return PromotionCatalogOut(
        combos=catalog.combos,
        single_bogos=catalog.single_bogos,
        multi_bogos=catalog.multi_bogos,
        loaded_at=catalog.loaded_at,
    )


@router.get("", response_model=PromotionCatalogOut)
async def list_promotions(
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> PromotionCatalogOut:
    if services.catalog.is_stale():
        await services.catalog.load()
    return catalog_out(services)


@router.post("/refresh", response_model=PromotionCatalogOut)
async def refresh_promotions(
    services: PosServices = Depends(get_services),
    operator_id: str = Depends(get_current_operator),
) -> PromotionCatalogOut:
    await services.catalog.refresh()
    return catalog_out(services)
