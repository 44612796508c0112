# app/api/__init__.py
from fastapi import FastAPI
from app.api.errors import register_error_handlers
from app.api.routers import carts, orders, health
from app.services.payment_gateway import get_gateway


def create_app() -> FastAPI:
    # zla konfiguracja platnosci ma wywalic start, nie pierwszy checkout
    get_gateway()

    app = FastAPI(
        title="Storefront Cart & Checkout",
        version="1.0.0",
    )
    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    return app
