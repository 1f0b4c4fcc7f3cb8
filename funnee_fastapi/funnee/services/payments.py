# funnee/services/payments.py
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Protocol

import stripe
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..checkout.errors import PaymentSessionError
from ..schemas.orders import OrderCreate, OrderLineCreate, OrderStatus
from ..settings import settings
from .orders import OrderRepository

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key


class PaymentSessionItem(BaseModel):
    product_id: str
    name: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class PaymentSessionRequest(BaseModel):
    items: List[PaymentSessionItem]
    return_url: str
    payment_method: str = "card"
    user_id: Optional[str] = None
    user_email: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return sum((i.price * i.quantity for i in self.items), Decimal("0"))


class PaymentSession(BaseModel):
    url: str
    session_id: Optional[str] = None
    order_id: Optional[str] = None


class PaymentGateway(Protocol):
    async def create_session(self, request: PaymentSessionRequest) -> PaymentSession: ...


def _to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _line_items(request: PaymentSessionRequest, currency: str) -> List[Dict[str, Any]]:
    return [{
        "quantity": it.quantity,
        "price_data": {
            "currency": currency.lower(),
            "unit_amount": _to_cents(it.price),
            "product_data": {
                "name": it.name,
                "images": [it.image] if it.image else [],
            },
        },
    } for it in request.items]


class StripePaymentGateway:
    """
    Hosted checkout through Stripe Checkout Sessions.

    A `pending` order (with its lines) is recorded first so the order list
    shows the attempt and the webhook can find it by metadata.order_id.
    """

    def __init__(self, orders: OrderRepository, currency: Optional[str] = None) -> None:
        self._orders = orders
        self._currency = currency or settings.currency

    async def _record_pending(self, request: PaymentSessionRequest) -> str:
        async with self._orders.transaction() as tx:
            order = await tx.create_order(OrderCreate(
                user_id=request.user_id,
                customer_email=request.user_email,
                total_amount=request.total,
                status=OrderStatus.pending,
            ))
            await tx.create_order_lines([
                OrderLineCreate(
                    order_id=order.id,
                    product_id=it.product_id,
                    product_name=it.name,
                    price=it.price,
                    quantity=it.quantity,
                )
                for it in request.items
            ])
        return order.id

    async def create_session(self, request: PaymentSessionRequest) -> PaymentSession:
        if not stripe.api_key:
            raise PaymentSessionError("Payments not configured")
        if not request.items:
            raise PaymentSessionError("items are required")

        order_id = await self._record_pending(request)
        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create,
                mode="payment",
                payment_method_types=[request.payment_method],
                line_items=_line_items(request, self._currency),
                success_url=f"{request.return_url}?session_id={{CHECKOUT_SESSION_ID}}&success=true",
                cancel_url=f"{request.return_url}?success=false",
                client_reference_id=order_id,
                metadata={"user_id": request.user_id or "guest", "order_id": order_id},
            )
        except stripe.StripeError as e:
            await self._orders.update_status(order_id, OrderStatus.cancelled)
            raise PaymentSessionError(f"payment provider rejected the session: {e}") from e

        url = getattr(session, "url", None)
        if not url:
            await self._orders.update_status(order_id, OrderStatus.cancelled)
            raise PaymentSessionError("payment provider returned no redirect url")

        logger.info("stripe session %s created for order %s", session.id, order_id)
        return PaymentSession(url=url, session_id=session.id, order_id=order_id)


async def handle_stripe_webhook(raw_body: bytes, signature: Optional[str],
                                orders: OrderRepository) -> Dict[str, Any]:
    """
    Advance the order recorded for a hosted checkout.
    checkout.session.completed -> completed, checkout.session.expired -> cancelled.
    """
    secret = settings.stripe_webhook_secret
    if not secret:  # dev fallback: no-op
        return {"handled": False}

    event = stripe.Webhook.construct_event(
        payload=raw_body, sig_header=signature, secret=secret
    )

    typ = event["type"]
    data = event["data"]["object"]
    order_id = (data.get("client_reference_id")
                or (data.get("metadata") or {}).get("order_id"))

    target = {
        "checkout.session.completed": OrderStatus.completed,
        "checkout.session.expired": OrderStatus.cancelled,
    }.get(typ)
    if target is None or not order_id:
        return {"handled": False, "type": typ}

    updated = await orders.update_status(order_id, target)
    if updated is None:
        logger.warning("webhook %s references unknown order %s", typ, order_id)
        return {"handled": False, "type": typ, "orderId": order_id}
    return {"handled": True, "type": typ, "orderId": order_id, "status": target.value}
