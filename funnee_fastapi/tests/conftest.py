"""Shared fixtures: in-memory backends and fakes so tests run without credentials."""
from __future__ import annotations

import asyncio
import os
from decimal import Decimal
from typing import List, Optional

# Set env BEFORE any funnee imports (settings is built at import time)
os.environ["CART_BACKEND"] = "memory"
os.environ["ORDER_BACKEND"] = "memory"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)
os.environ.pop("ALLOW_GUEST_CHECKOUT", None)

import pytest

from funnee.cart.models import ProductSnapshot
from funnee.cart.persistence import InMemoryCartPersistence
from funnee.cart.store import CartStore
from funnee.checkout.orchestrator import CheckoutOrchestrator
from funnee.checkout.registry import CheckoutRegistry
from funnee.schemas.products import Product
from funnee.services.identity import User
from funnee.services.orders import InMemoryOrderRepository
from funnee.services.payments import PaymentSession, PaymentSessionRequest


# ---------- Fakes ----------

class RecordingCartPersistence(InMemoryCartPersistence):
    """Counts saves made on an event-loop thread (those would block the loop)."""

    def __init__(self) -> None:
        super().__init__()
        self.loop_saves = 0

    def save(self, session_id, items):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self.loop_saves += 1
        super().save(session_id, items)


class FakeIdentity:
    def __init__(self, user: Optional[User] = None, admin: bool = False) -> None:
        self.user = user
        self.admin = admin
        self.error: Optional[Exception] = None
        self.lookups = 0
        self.signed_out: List[str] = []

    async def current_user(self) -> Optional[User]:
        self.lookups += 1
        if self.error is not None:
            raise self.error
        return self.user

    async def is_admin(self, user: User) -> bool:
        return self.admin and self.user is not None and user.id == self.user.id

    async def sign_out(self, user: User) -> None:
        self.signed_out.append(user.id)
        self.user = None


class _Gate:
    """Lets a test hold a fake call open to exercise the in-flight guard."""

    def __init__(self) -> None:
        self._event: Optional[asyncio.Event] = None

    def hold(self) -> None:
        self._event = asyncio.Event()

    def release(self) -> None:
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        if self._event is not None:
            await self._event.wait()


class FakePaymentGateway:
    def __init__(self) -> None:
        self.requests: List[PaymentSessionRequest] = []
        self.url = "https://checkout.stripe.test/c/pay/cs_test_123"
        self.error: Optional[Exception] = None
        self.gate = _Gate()

    async def create_session(self, request: PaymentSessionRequest) -> PaymentSession:
        self.requests.append(request)
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return PaymentSession(url=self.url, session_id="cs_test_123", order_id="ord_pending")


class _RecordingWriter:
    def __init__(self, inner, repo: "RecordingOrderRepository") -> None:
        self._inner = inner
        self._repo = repo

    async def create_order(self, order):
        self._repo.order_calls.append(order)
        await self._repo.gate.wait()
        if self._repo.fail_order:
            raise RuntimeError("orders insert failed")
        return await self._inner.create_order(order)

    async def create_order_lines(self, lines):
        self._repo.line_calls.append(list(lines))
        if self._repo.fail_lines:
            raise RuntimeError("order_items insert failed")
        return await self._inner.create_order_lines(lines)


class RecordingOrderRepository(InMemoryOrderRepository):
    """InMemoryOrderRepository that records every write call and can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.order_calls: list = []
        self.line_calls: list = []
        self.fail_order = False
        self.fail_lines = False
        self.gate = _Gate()

    def transaction(self):
        repo = self
        parent = super().transaction()

        class _Tx:
            async def __aenter__(self):
                inner = await parent.__aenter__()
                return _RecordingWriter(inner, repo)

            async def __aexit__(self, *exc):
                return await parent.__aexit__(*exc)

        return _Tx()


# ---------- Helpers ----------

def snapshot(pid: str, price: str, name: Optional[str] = None) -> ProductSnapshot:
    return ProductSnapshot(product_id=pid, name=name or f"Product {pid}", unit_price=Decimal(price))


def product(pid: str, price: str, stock: int = 5) -> Product:
    return Product(id=pid, name=f"Product {pid}", price=Decimal(price), stock=stock,
                   image_url=f"https://img.test/{pid}.jpg")


ALICE = User(id="user-alice", email="alice@example.com")
ADMIN = User(id="user-admin", email="admin@example.com")

VALID_CONTACT = {
    "contact_name": "Alice Party",
    "contact_email": "alice@example.com",
    "contact_phone": "+1 555 0100",
    "notes": "Deliver before noon",
}


# ---------- Fixtures ----------

@pytest.fixture()
def persistence():
    return RecordingCartPersistence()


@pytest.fixture()
def cart(persistence):
    return CartStore("session-1", persistence)


@pytest.fixture()
def filled_cart(cart):
    """The A(10 x 2) + B(5 x 1) cart: total 25, 3 items."""
    cart.add_item(snapshot("A", "10"), 2)
    cart.add_item(snapshot("B", "5"), 1)
    return cart


@pytest.fixture()
def orders():
    return RecordingOrderRepository()


@pytest.fixture()
def gateway():
    return FakePaymentGateway()


@pytest.fixture()
def identity():
    return FakeIdentity(user=ALICE)


@pytest.fixture()
def make_orchestrator(gateway, orders):
    def _make(cart, **kw):
        return CheckoutOrchestrator(cart, gateway, orders,
                                    return_url="http://shop.test/checkout-success", **kw)
    return _make


@pytest.fixture()
def catalog(monkeypatch):
    """Patch the asyncpg-backed catalog lookups the routers call."""
    items = {p.id: p for p in (product("A", "10"), product("B", "5"), product("C", "12.50", stock=0))}

    async def _fake_list():
        return list(items.values())

    async def _fake_get(product_id):
        return items.get(product_id)

    monkeypatch.setattr("funnee.routes.products.list_products", _fake_list)
    monkeypatch.setattr("funnee.routes.products.get_product", _fake_get)
    monkeypatch.setattr("funnee.routes.cart.get_product", _fake_get)
    return items


@pytest.fixture()
def registry():
    return CheckoutRegistry()


@pytest.fixture()
def client(persistence, orders, gateway, identity, catalog, registry):
    """FastAPI TestClient (sync) wired to the in-memory backends and fakes."""
    from fastapi.testclient import TestClient
    from funnee.main import app
    from funnee.routes import deps

    app.dependency_overrides[deps.get_cart_persistence] = lambda: persistence
    app.dependency_overrides[deps.get_order_repository] = lambda: orders
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_identity] = lambda: identity
    app.dependency_overrides[deps.get_checkout_registry] = lambda: registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
