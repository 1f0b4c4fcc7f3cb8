# funnee/routes/orders.py
from __future__ import annotations
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from ..schemas.orders import Order, OrderStatusIn
from ..services.identity import IdentityProvider, User
from ..services.orders import ADMIN_STATUSES, OrderRepository
from .deps import get_current_user, get_identity, get_order_repository, require_admin

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=List[Order])
async def list_orders_endpoint(
    user: User = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity),
    orders: OrderRepository = Depends(get_order_repository),
):
    """
    Signed-in shoppers see their own orders; admins see every order.
    Each order comes with its lines.
    """
    if await identity.is_admin(user):
        return await orders.list_orders()
    return await orders.list_orders(user_id=user.id)


@router.get("/{order_id}", response_model=Order)
async def get_order_endpoint(
    order_id: str,
    user: User = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity),
    orders: OrderRepository = Depends(get_order_repository),
):
    order = await orders.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="order not found")
    if order.user_id != user.id and not await identity.is_admin(user):
        raise HTTPException(status_code=404, detail="order not found")
    return order


@router.patch("/{order_id}/status", response_model=Order)
async def update_order_status_endpoint(
    order_id: str,
    body: OrderStatusIn,
    _: User = Depends(require_admin),
    orders: OrderRepository = Depends(get_order_repository),
):
    if body.status not in ADMIN_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"status must be one of: {', '.join(sorted(s.value for s in ADMIN_STATUSES))}",
        )
    updated = await orders.update_status(order_id, body.status)
    if updated is None:
        raise HTTPException(status_code=404, detail="order not found")
    return updated
