# funnee/services/orders.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncContextManager, AsyncIterator, Dict, List, Optional, Protocol

from ..db import get_pool
from ..schemas.orders import Order, OrderCreate, OrderLine, OrderLineCreate, OrderStatus

# statuses an administrator may set directly
ADMIN_STATUSES = frozenset({OrderStatus.completed, OrderStatus.cancelled})


def _now():
    return datetime.now(timezone.utc)


def _oid():
    return uuid.uuid4().hex[:24]


class OrderWriter(Protocol):
    async def create_order(self, order: OrderCreate) -> Order: ...

    async def create_order_lines(self, lines: List[OrderLineCreate]) -> List[OrderLine]: ...


class OrderRepository(Protocol):
    """
    Order persistence. Writes go through transaction(): everything written by
    the yielded OrderWriter becomes visible together, or not at all.
    """

    def transaction(self) -> AsyncContextManager[OrderWriter]: ...

    async def list_orders(self, user_id: Optional[str] = None) -> List[Order]: ...

    async def get_order(self, order_id: str) -> Optional[Order]: ...

    async def update_status(self, order_id: str, status: OrderStatus) -> Optional[Order]: ...


# --- Postgres -----------------------------------------------------------------
def _order_row_to_model(row, lines: List[OrderLine]) -> Order:
    return Order(
        id=row["id"],
        user_id=row["user_id"],
        customer_email=row["customer_email"],
        total_amount=row["total_amount"],
        status=row["status"],
        contact_name=row["contact_name"],
        contact_email=row["contact_email"],
        contact_phone=row["contact_phone"],
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        lines=lines,
    )


def _line_row_to_model(row) -> OrderLine:
    return OrderLine(
        id=row["id"],
        order_id=row["order_id"],
        product_id=row["product_id"],
        product_name=row["product_name"],
        price=row["price"],
        quantity=row["quantity"],
    )


class _PgOrderWriter:
    def __init__(self, conn) -> None:
        self._conn = conn

    async def create_order(self, order: OrderCreate) -> Order:
        order_id = _oid()
        now = _now()
        await self._conn.execute(
            """
            INSERT INTO orders (id, user_id, customer_email, total_amount, status, contact_name,
                                contact_email, contact_phone, notes, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $10)
            """,
            order_id,
            order.user_id,
            order.customer_email,
            order.total_amount,
            order.status.value,
            order.contact_name,
            order.contact_email,
            order.contact_phone,
            order.notes,
            now,
        )
        return Order(id=order_id, created_at=now, updated_at=now, **order.model_dump())

    async def create_order_lines(self, lines: List[OrderLineCreate]) -> List[OrderLine]:
        out = [OrderLine(id=_oid(), **li.model_dump()) for li in lines]
        await self._conn.executemany(
            """
            INSERT INTO order_items (id, order_id, product_id, product_name, price, quantity)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            [(li.id, li.order_id, li.product_id, li.product_name, li.price, li.quantity)
             for li in out],
        )
        return out


class PostgresOrderRepository:
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_PgOrderWriter]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield _PgOrderWriter(conn)

    async def _attach_lines(self, conn, rows) -> List[Order]:
        ids = [r["id"] for r in rows]
        by_order: Dict[str, List[OrderLine]] = {i: [] for i in ids}
        if ids:
            line_rows = await conn.fetch(
                "SELECT * FROM order_items WHERE order_id = ANY($1::text[]) ORDER BY order_id",
                ids,
            )
            for lr in line_rows:
                by_order[lr["order_id"]].append(_line_row_to_model(lr))
        return [_order_row_to_model(r, by_order[r["id"]]) for r in rows]

    async def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            if user_id is None:
                rows = await conn.fetch(
                    "SELECT * FROM orders ORDER BY created_at DESC LIMIT 200"
                )
            else:
                rows = await conn.fetch(
                    "SELECT * FROM orders WHERE user_id = $1 ORDER BY created_at DESC LIMIT 200",
                    user_id,
                )
            return await self._attach_lines(conn, rows)

    async def get_order(self, order_id: str) -> Optional[Order]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
            if not row:
                return None
            return (await self._attach_lines(conn, [row]))[0]

    async def update_status(self, order_id: str, status: OrderStatus) -> Optional[Order]:
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "UPDATE orders SET status = $2, updated_at = $3 WHERE id = $1 RETURNING *",
                order_id,
                status.value,
                _now(),
            )
            if not row:
                return None
            return (await self._attach_lines(conn, [row]))[0]


# --- In-memory ----------------------------------------------------------------
class _InMemoryOrderWriter:
    def __init__(self) -> None:
        self.orders: Dict[str, Order] = {}
        self.lines: List[OrderLine] = []

    async def create_order(self, order: OrderCreate) -> Order:
        now = _now()
        created = Order(id=_oid(), created_at=now, updated_at=now, **order.model_dump())
        self.orders[created.id] = created
        return created

    async def create_order_lines(self, lines: List[OrderLineCreate]) -> List[OrderLine]:
        out = [OrderLine(id=_oid(), **li.model_dump()) for li in lines]
        self.lines.extend(out)
        return out


class InMemoryOrderRepository:
    """Writes are staged per transaction and published only on a clean exit."""

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._lines: Dict[str, List[OrderLine]] = {}

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_InMemoryOrderWriter]:
        writer = _InMemoryOrderWriter()
        yield writer
        for oid, order in writer.orders.items():
            self._orders[oid] = order
            self._lines.setdefault(oid, [])
        for li in writer.lines:
            self._lines.setdefault(li.order_id, []).append(li)

    def _with_lines(self, order: Order) -> Order:
        return order.model_copy(update={"lines": list(self._lines.get(order.id, []))})

    async def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        rows = [o for o in self._orders.values() if user_id is None or o.user_id == user_id]
        rows.sort(key=lambda o: o.created_at, reverse=True)
        return [self._with_lines(o) for o in rows]

    async def get_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return self._with_lines(order) if order else None

    async def update_status(self, order_id: str, status: OrderStatus) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None:
            return None
        order = order.model_copy(update={"status": status, "updated_at": _now()})
        self._orders[order_id] = order
        return self._with_lines(order)
