from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import (
    Client,
    InvoiceItem,
    Product,
    PurchaseInvoice,
    SaleInvoice,
    Supplier,
)

router = APIRouter(prefix="/health")


@router.get("")
def health():
    return {"ok": True}


@router.get("/tables")
def check_tables(db: Session = Depends(get_db)):
    """Row count per table (connectivity + schema check)."""
    models = {
        "suppliers": Supplier,
        "clients": Client,
        "purchase_invoices": PurchaseInvoice,
        "sale_invoices": SaleInvoice,
        "invoice_items": InvoiceItem,
        "products": Product,
    }
    return {
        name: db.scalar(select(func.count()).select_from(model))
        for name, model in models.items()
    }
