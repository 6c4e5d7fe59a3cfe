from __future__ import annotations

from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.core_types import InvoiceType
from backend.app.db.models.models_v1 import InvoiceItem, Product, PurchaseInvoice
from backend.app.schemas.product import ProductPurchaseRead, ProductRead

router = APIRouter(prefix="/products")

MAX_LIMIT = 500


def _purchase_history(db: Session, keys: list[str]) -> dict[str, list[ProductPurchaseRead]]:
    """Purchase invoice lines per product key, most recent first."""
    if not keys:
        return {}

    rows = db.execute(
        select(InvoiceItem, PurchaseInvoice.invoice_number, PurchaseInvoice.invoice_date)
        .join(PurchaseInvoice, PurchaseInvoice.id == InvoiceItem.invoice_id)
        .where(InvoiceItem.invoice_type == InvoiceType.purchase)
        .where(InvoiceItem.description_key.in_(keys))
        .order_by(PurchaseInvoice.invoice_date.desc(), InvoiceItem.id.desc())
    ).all()

    history: dict[str, list[ProductPurchaseRead]] = defaultdict(list)
    for it, invoice_number, invoice_date in rows:
        history[it.description_key].append(
            ProductPurchaseRead(
                invoice_id=it.invoice_id,
                invoice_number=invoice_number,
                quantity=it.quantity,
                unit_price=it.unit_price,
                invoice_date=invoice_date,
            )
        )
    return history


def _read(p: Product, history: dict[str, list[ProductPurchaseRead]]) -> ProductRead:
    out = ProductRead.model_validate(p)
    out.purchases = history.get(p.description_key, [])
    return out


@router.get("", response_model=list[ProductRead])
def list_products(
    search: str | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    """
    Stock ledger (READ ONLY)
    - écrit uniquement par les factures d'achat / de vente
    - chaque produit expose son historique d'achats
    """
    stmt = select(Product).order_by(Product.description_key)
    if search:
        stmt = stmt.where(Product.description.ilike(f"%{search}%"))
    if limit:
        stmt = stmt.limit(min(limit, MAX_LIMIT))

    rows = db.execute(stmt).scalars().all()
    history = _purchase_history(db, [p.description_key for p in rows])
    return [_read(p, history) for p in rows]


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    p = db.get(Product, product_id)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return _read(p, _purchase_history(db, [p.description_key]))
