# File: app/api/v1/api.py
from fastapi import APIRouter
from app.api.v1.endpoints import payments, vouchers, admin_vouchers

# Create main API router
api_router = APIRouter()

api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["payments"]
)

api_router.include_router(
    vouchers.router,
    prefix="/vouchers",
    tags=["vouchers"]
)

api_router.include_router(
    admin_vouchers.router,
    prefix="/admin",
    tags=["admin-vouchers"]
)
