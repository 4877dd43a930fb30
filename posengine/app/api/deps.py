from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from posengine.app.core.security import decode_operator_id
from posengine.app.services.cart_engine import CartEngine
from posengine.app.services.checkout import CheckoutService
from posengine.app.services.runtime import PosServices

# Tokens are issued by the back office; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login/access-token")


def get_current_operator(token: str = Depends(oauth2_scheme)) -> str:
    operator_id = decode_operator_id(token)
    if operator_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return operator_id


def get_services(request: Request) -> PosServices:
    return request.app.state.services


def get_engine(services: PosServices = Depends(get_services)) -> CartEngine:
    return services.engine


def get_checkout(services: PosServices = Depends(get_services)) -> CheckoutService:
    return services.checkout
