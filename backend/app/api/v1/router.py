from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.suppliers import router as suppliers_router
from backend.app.api.v1.endpoints.clients import router as clients_router
from backend.app.api.v1.endpoints.purchase_invoices import router as purchase_invoices_router
from backend.app.api.v1.endpoints.sale_invoices import router as sale_invoices_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.dashboard import router as dashboard_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(clients_router, tags=["clients"])
router.include_router(purchase_invoices_router, tags=["purchase_invoices"])
router.include_router(sale_invoices_router, tags=["sale_invoices"])
router.include_router(products_router, tags=["products"])
router.include_router(dashboard_router, tags=["dashboard"])
