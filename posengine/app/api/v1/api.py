from fastapi import APIRouter

from posengine.app.api.v1.endpoints import cart, checkout, promotions, sync

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(cart.router, prefix="/cart", tags=["cart"])
api_router.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
api_router.include_router(promotions.router, prefix="/promotions", tags=["promotions"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
