# funnee/routes/products.py
from __future__ import annotations
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException

from ..schemas.products import Product, ProductIn
from ..services.identity import User
from ..services.products import (
    list_products,
    get_product,
    create_product,
    update_product,
    delete_product,
)
from .deps import require_admin

router = APIRouter(prefix="/products", tags=["products"])


class ProductCreateIn(ProductIn):
    id: Optional[str] = None
    name: str


# ---- Routes ------------------------------------------------------------------
# GET /products
@router.get("", response_model=List[Product])
async def list_products_endpoint():
    return await list_products()

# GET /products/{id}
@router.get("/{product_id}", response_model=Product)
async def get_product_endpoint(product_id: str):
    product = await get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="product not found")
    return product

# POST /products  (admin)
@router.post("", response_model=Product, status_code=201)
async def create_product_endpoint(payload: ProductCreateIn, _: User = Depends(require_admin)):
    try:
        return await create_product(payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

# PATCH /products/{id}  (admin)
@router.patch("/{product_id}", response_model=Product)
async def update_product_endpoint(product_id: str, payload: ProductIn,
                                  _: User = Depends(require_admin)):
    try:
        updated = await update_product(product_id, payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="product not found")
    return updated

# DELETE /products/{id}  (admin)
@router.delete("/{product_id}")
async def delete_product_endpoint(product_id: str, _: User = Depends(require_admin)):
    if not await delete_product(product_id):
        raise HTTPException(status_code=404, detail="product not found")
    return {"ok": True}
