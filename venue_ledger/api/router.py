"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from venue_ledger.api.routes import bookings, purchase_orders, reconciliation, transactions, venues

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(venues.router)
api_router.include_router(bookings.router)
api_router.include_router(transactions.router)
api_router.include_router(purchase_orders.router)
api_router.include_router(reconciliation.router)
