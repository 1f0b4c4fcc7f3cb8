# funnee/services/products.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..db import get_pool
from ..schemas.products import Product

_COLUMNS = ("name", "description", "price", "stock", "image_url")


def _row_to_model(row) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        price=row["price"],
        stock=row["stock"],
        image_url=row["image_url"],
        created_at=row["created_at"],
    )


def _clean(payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    out = {k: payload[k] for k in _COLUMNS if k in payload}

    if "name" in out or not partial:
        name = (out.get("name") or "").strip()
        if not name:
            raise ValueError("name is required")
        out["name"] = name

    if "price" in out or not partial:
        try:
            price = Decimal(str(out.get("price", "0")))
        except InvalidOperation:
            raise ValueError("price must be a number")
        if price < 0:
            raise ValueError("price must be >= 0")
        out["price"] = price

    if "stock" in out or not partial:
        stock = int(out.get("stock") or 0)
        if stock < 0:
            raise ValueError("stock must be >= 0")
        out["stock"] = stock

    return out


# --- READ HELPERS -------------------------------------------------------------
async def list_products() -> List[Product]:
    """Catalog: every sellable product, newest first."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT * FROM products ORDER BY created_at DESC")
    return [_row_to_model(r) for r in rows]


async def get_product(product_id: str) -> Optional[Product]:
    if not product_id:
        return None
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM products WHERE id = $1", product_id)
    return _row_to_model(row) if row else None


# --- ADMIN WRITES -------------------------------------------------------------
async def create_product(payload: Dict[str, Any]) -> Product:
    data = _clean(payload, partial=False)
    product_id = payload.get("id") or _slug(data["name"])
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO products (id, name, description, price, stock, image_url)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            product_id,
            data["name"],
            data.get("description"),
            data["price"],
            data["stock"],
            data.get("image_url"),
        )
    return _row_to_model(row)


async def update_product(product_id: str, payload: Dict[str, Any]) -> Optional[Product]:
    if not product_id:
        raise ValueError("product_id required")
    data = _clean(payload, partial=True)
    if not data:
        return await get_product(product_id)

    cols = list(data)
    assignments = ", ".join(f"{c} = ${i + 2}" for i, c in enumerate(cols))
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"UPDATE products SET {assignments} WHERE id = $1 RETURNING *",
            product_id,
            *[data[c] for c in cols],
        )
    return _row_to_model(row) if row else None


async def delete_product(product_id: str) -> bool:
    if not product_id:
        raise ValueError("product_id required")
    pool = await get_pool()
    async with pool.acquire() as conn:
        status = await conn.execute("DELETE FROM products WHERE id = $1", product_id)
    # asyncpg returns e.g. "DELETE 1"
    return status.endswith(" 1")


# --- UTILS --------------------------------------------------------------------
def _slug(s: str) -> str:
    return (
        s.strip()
        .lower()
        .replace("&", " and ")
        .replace("/", " ")
        .replace("_", " ")
        .encode("ascii", "ignore").decode("ascii")
        .replace("'", "")
        .replace(".", " ")
        .replace(",", " ")
        .replace("  ", " ")
        .strip()
        .replace(" ", "-")
    )
