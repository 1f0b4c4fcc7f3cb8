from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel, Field

_CENT = Decimal("0.01")


class ProductSnapshot(BaseModel):
    """Display copy of a product taken when it is put into the cart."""
    product_id: str
    name: str
    unit_price: Decimal = Field(..., ge=0)
    image_ref: Optional[str] = None


class CartLineItem(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal = Field(..., ge=0)
    image_ref: Optional[str] = None
    quantity: int = Field(..., ge=1)

    @classmethod
    def from_snapshot(cls, snapshot: ProductSnapshot, quantity: int) -> "CartLineItem":
        return cls(
            product_id=snapshot.product_id,
            name=snapshot.name,
            unit_price=snapshot.unit_price,
            image_ref=snapshot.image_ref,
            quantity=quantity,
        )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def format_price(amount: Decimal) -> str:
    """Two-place rendering; only used at display time."""
    return str(Decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP))
