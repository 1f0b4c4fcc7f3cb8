# funnee/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import products, cart, checkout, orders, auth, payments
from .settings import settings
from .db import close_pool

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("funnee")

app = FastAPI(title="Funnee Rentals Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(products.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(orders.router)
app.include_router(auth.router)
app.include_router(payments.router)

@app.get("/")
def root():
    return {"message": "Funnee Rentals API is running"}

@app.on_event("startup")
def _startup_log_backends():
    logger.info(
        "cart backend=%s, order backend=%s, guest checkout=%s",
        settings.cart_backend, settings.order_backend, settings.allow_guest_checkout,
    )

@app.on_event("shutdown")
async def _shutdown_close_pool():
    await close_pool()
