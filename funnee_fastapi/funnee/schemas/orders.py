from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    pending = "pending"      # hosted payment started, waiting for the webhook
    reserved = "reserved"    # pay later
    completed = "completed"
    cancelled = "cancelled"


class OrderCreate(BaseModel):
    user_id: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Decimal = Field(..., ge=0)
    status: OrderStatus
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None


class OrderLineCreate(BaseModel):
    order_id: str
    product_id: str
    product_name: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class OrderLine(OrderLineCreate):
    id: str


class Order(OrderCreate):
    id: str
    created_at: datetime
    updated_at: datetime
    lines: List[OrderLine] = []

    @property
    def lines_total(self) -> Decimal:
        return sum((li.price * li.quantity for li in self.lines), Decimal("0"))


class OrderStatusIn(BaseModel):
    status: OrderStatus
