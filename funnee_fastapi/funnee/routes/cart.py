# funnee/routes/cart.py
from __future__ import annotations
from decimal import Decimal
from typing import Dict, List
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..cart.models import CartLineItem, ProductSnapshot, format_price
from ..cart.store import CartStore
from ..services.products import get_product
from .deps import get_cart

router = APIRouter(prefix="/cart", tags=["cart"])


# ---- Pydantic models ---------------------------------------------------------
class AddItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class QuantityIn(BaseModel):
    quantity: int


class CartOut(BaseModel):
    session_id: str
    items: List[CartLineItem]
    total_item_count: int
    total_price: Decimal
    # 2-place strings for display; totals above are unrounded
    total_price_display: str
    line_totals_display: Dict[str, str]


def _cart_out(cart: CartStore) -> CartOut:
    return CartOut(
        session_id=cart.session_id,
        items=list(cart.items),
        total_item_count=cart.total_item_count,
        total_price=cart.total_price,
        total_price_display=format_price(cart.total_price),
        line_totals_display={li.product_id: format_price(li.line_total) for li in cart.items},
    )


# ---- Routes ------------------------------------------------------------------
@router.get("", response_model=CartOut)
def get_cart_endpoint(cart: CartStore = Depends(get_cart)):
    return _cart_out(cart)


@router.post("/items", response_model=CartOut)
async def add_item_endpoint(body: AddItemIn, cart: CartStore = Depends(get_cart)):
    product = await get_product(body.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="product not found")
    # stock is not enforced here; the storefront disables "add" for sold-out items
    # CartStore saves synchronously; keep that off the event loop
    await run_in_threadpool(
        cart.add_item,
        ProductSnapshot(
            product_id=product.id,
            name=product.name,
            unit_price=product.price,
            image_ref=product.image_url,
        ),
        body.quantity,
    )
    return _cart_out(cart)


@router.patch("/items/{product_id}", response_model=CartOut)
def update_quantity_endpoint(product_id: str, body: QuantityIn,
                             cart: CartStore = Depends(get_cart)):
    cart.update_quantity(product_id, body.quantity)
    return _cart_out(cart)


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item_endpoint(product_id: str, cart: CartStore = Depends(get_cart)):
    cart.remove_item(product_id)
    return _cart_out(cart)


@router.delete("", response_model=CartOut)
def clear_cart_endpoint(cart: CartStore = Depends(get_cart)):
    cart.clear()
    return _cart_out(cart)
