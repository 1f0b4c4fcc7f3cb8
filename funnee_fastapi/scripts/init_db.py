
import argparse, asyncio
from decimal import Decimal

from funnee.db import create_schema, close_pool
from funnee.services.products import create_product, get_product

DEMO_PRODUCTS = [
    {
        "id": "bounce-house-castle",
        "name": "Bounce House Castle",
        "description": "4x4 m inflatable castle, blower included.",
        "price": Decimal("120.00"),
        "stock": 3,
        "image_url": "https://images.unsplash.com/photo-1530103862676-de8c9debad1d?w=800&q=80",
    },
    {
        "id": "cotton-candy-machine",
        "name": "Cotton Candy Machine",
        "description": "Commercial machine with 50 cones and sugar.",
        "price": Decimal("45.00"),
        "stock": 5,
        "image_url": "https://images.unsplash.com/photo-1499195333224-3ce974eecb47?w=800&q=80",
    },
    {
        "id": "folding-table-set",
        "name": "Folding Table + 8 Chairs",
        "description": "White resin set for garden parties.",
        "price": Decimal("25.50"),
        "stock": 20,
        "image_url": None,
    },
]

async def seed():
    created = 0
    for p in DEMO_PRODUCTS:
        if await get_product(p["id"]):
            continue
        await create_product(p)
        created += 1
    print(f"Seeded {created} products")

async def run(with_seed: bool):
    try:
        await create_schema()
        print("Schema ready")
        if with_seed:
            await seed()
    finally:
        await close_pool()

if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Create tables (and optionally demo products) in DATABASE_URL")
    ap.add_argument('--seed', action='store_true', help='Insert demo rental products if missing')
    args = ap.parse_args()
    asyncio.run(run(args.seed))
