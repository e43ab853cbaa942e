# checkout/api/__init__.py
from fastapi import FastAPI

from checkout.api.routers import carts, health, orders, webhooks
from checkout.api.routers import checkout as checkout_routes


def create_app() -> FastAPI:
    app = FastAPI(
        title="Checkout Service",
        version="1.0.0",
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(checkout_routes.router)
    app.include_router(webhooks.router)
    app.include_router(orders.router)

    return app
