"""FastAPI dependencies shared by the routers. Tests swap them via app.dependency_overrides."""
from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Iterator, Optional

from fastapi import Depends, Header, HTTPException, Request, Response

from ..cart.persistence import CartPersistence, FirestoreCartPersistence, InMemoryCartPersistence
from ..cart.store import CartStore
from ..checkout.orchestrator import CheckoutOrchestrator
from ..checkout.registry import CheckoutRegistry
from ..services.identity import FirebaseIdentity, IdentityProvider, User
from ..services.orders import InMemoryOrderRepository, OrderRepository, PostgresOrderRepository
from ..services.payments import PaymentGateway, StripePaymentGateway
from ..settings import settings

CART_COOKIE = "funnee_cart"


# --- backends -----------------------------------------------------------------
@lru_cache
def get_cart_persistence() -> CartPersistence:
    if settings.cart_backend == "firestore":
        return FirestoreCartPersistence()
    return InMemoryCartPersistence()


@lru_cache
def get_order_repository() -> OrderRepository:
    if settings.order_backend == "memory":
        return InMemoryOrderRepository()
    return PostgresOrderRepository()


def get_payment_gateway(
    orders: OrderRepository = Depends(get_order_repository),
) -> PaymentGateway:
    return StripePaymentGateway(orders)


@lru_cache
def get_checkout_registry() -> CheckoutRegistry:
    return CheckoutRegistry()


# --- session + identity -------------------------------------------------------
def get_cart_session(
    request: Request,
    response: Response,
    x_cart_session: Optional[str] = Header(None),
) -> str:
    session_id = x_cart_session or request.cookies.get(CART_COOKIE)
    if not session_id:
        session_id = uuid.uuid4().hex
    response.set_cookie(CART_COOKIE, session_id, httponly=True, samesite="lax")
    return session_id


def get_cart(
    session_id: str = Depends(get_cart_session),
    persistence: CartPersistence = Depends(get_cart_persistence),
) -> CartStore:
    return CartStore(session_id, persistence)


def get_identity(authorization: Optional[str] = Header(None)) -> IdentityProvider:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip() or None
    return FirebaseIdentity(token)


async def get_current_user(identity: IdentityProvider = Depends(get_identity)) -> User:
    user = await identity.current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="sign in required")
    return user


async def require_admin(
    user: User = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity),
) -> User:
    if not await identity.is_admin(user):
        raise HTTPException(status_code=403, detail="admin only")
    return user


def get_checkout(
    cart: CartStore = Depends(get_cart),
    registry: CheckoutRegistry = Depends(get_checkout_registry),
    payments: PaymentGateway = Depends(get_payment_gateway),
    orders: OrderRepository = Depends(get_order_repository),
) -> Iterator[CheckoutOrchestrator]:
    orch = registry.get_or_create(cart, lambda c: CheckoutOrchestrator(
        c,
        payments,
        orders,
        allow_guest=settings.allow_guest_checkout,
        return_url=settings.checkout_return_url,
        payment_method=settings.stripe_payment_method,
    ))
    try:
        yield orch
    finally:
        # attempts that ended with this request are not kept around
        registry.release(cart.session_id)
