from __future__ import annotations

from fastapi import APIRouter

from rentals.api.routes import bookings, health, products

api_router = APIRouter()

# Registration order matters for the OpenAPI listing only.
for _router in (health.router, products.router, bookings.router):
    api_router.include_router(_router)
