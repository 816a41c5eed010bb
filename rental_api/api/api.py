# rental_api/api/api.py
from fastapi import APIRouter

from rental_api.api.endpoints import (
    auth,
    bookings,
    categories,
    products,
    pricelists,
    price_rules,
    reports,
    settings,
    stations,
    users,
)

api_router = APIRouter(prefix="/api")

api_router.include_router(auth.router, prefix="/auth")
api_router.include_router(bookings.router, prefix="/bookings")
api_router.include_router(categories.router, prefix="/categories")
api_router.include_router(products.router, prefix="/products")
api_router.include_router(pricelists.router, prefix="/pricelists")
api_router.include_router(price_rules.router, prefix="/pricerules")
api_router.include_router(reports.router, prefix="/reports")
api_router.include_router(settings.router, prefix="/settings")
api_router.include_router(stations.router, prefix="/stations")
api_router.include_router(users.router, prefix="/users")
api_router.include_router(users.admin_router, prefix="/users")
