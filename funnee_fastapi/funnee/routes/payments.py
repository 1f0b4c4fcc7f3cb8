from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
import stripe

from ..services.orders import OrderRepository
from ..services.payments import handle_stripe_webhook
from .deps import get_order_repository

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    orders: OrderRepository = Depends(get_order_repository),
):
    raw = await request.body()
    try:
        return await handle_stripe_webhook(raw, stripe_signature, orders)
    except (ValueError, stripe.SignatureVerificationError) as e:
        # bad payload or signature: let Stripe see a 400 and retry
        raise HTTPException(status_code=400, detail=str(e))
