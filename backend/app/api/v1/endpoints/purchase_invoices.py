from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.core_types import InvoiceStatus, InvoiceType
from backend.app.db.models.models_v1 import InvoiceItem, PurchaseInvoice, Supplier
from backend.app.schemas.invoice import PurchaseInvoiceCreate, PurchaseInvoiceUpdate
from backend.services import invoicing

router = APIRouter(prefix="/invoices/purchases")

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


def serialize_item(it: InvoiceItem) -> dict:
    return {
        "id": it.id,
        "description": it.description,
        "quantity": it.quantity,
        "unit_price": it.unit_price,
        "tax_rate": it.tax_rate,
        "total": it.total,
    }


def _serialize(inv: PurchaseInvoice, items: list[InvoiceItem] | None = None) -> dict:
    out = {
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "supplier": {"id": inv.supplier.id, "name": inv.supplier.name, "email": inv.supplier.email},
        "invoice_date": inv.invoice_date,
        "due_date": inv.due_date,
        "status": inv.status,
        "subtotal": float(inv.subtotal),
        "tax_amount": float(inv.tax_amount),
        "total": float(inv.total),
        "notes": inv.notes,
        "created_at": inv.created_at,
        "updated_at": inv.updated_at,
    }
    if items is not None:
        out["items"] = [serialize_item(it) for it in items]
    return out


def _detail(db: Session, inv: PurchaseInvoice) -> dict:
    return _serialize(inv, invoicing.list_invoice_items(db, inv.id, InvoiceType.purchase))


@router.get("")
def list_purchase_invoices(
    status: InvoiceStatus | None = None,
    search: str | None = None,
    limit: int = DEFAULT_LIMIT,
    db: Session = Depends(get_db),
):
    stmt = (
        select(PurchaseInvoice)
        .join(Supplier, Supplier.id == PurchaseInvoice.supplier_id)
        .order_by(PurchaseInvoice.created_at.desc(), PurchaseInvoice.id.desc())
        .limit(min(max(limit, 1), MAX_LIMIT))
    )
    if status is not None:
        stmt = stmt.where(PurchaseInvoice.status == status)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(PurchaseInvoice.invoice_number.ilike(pattern), Supplier.name.ilike(pattern)))

    rows = db.execute(stmt).scalars().all()
    return [_serialize(inv) for inv in rows]


@router.get("/{invoice_id}")
def get_purchase_invoice(invoice_id: int, db: Session = Depends(get_db)):
    inv = db.get(PurchaseInvoice, invoice_id)
    if not inv:
        raise HTTPException(status_code=404, detail="Purchase invoice not found")
    return _detail(db, inv)


@router.post("")
def create_purchase_invoice(payload: PurchaseInvoiceCreate, db: Session = Depends(get_db)):
    inv = invoicing.create_purchase_invoice(db, payload)
    return _detail(db, inv)


@router.put("/{invoice_id}")
def update_purchase_invoice(invoice_id: int, payload: PurchaseInvoiceUpdate, db: Session = Depends(get_db)):
    inv = invoicing.update_purchase_invoice(db, invoice_id, payload)
    return _detail(db, inv)


@router.delete("/{invoice_id}")
def delete_purchase_invoice(invoice_id: int, db: Session = Depends(get_db)):
    invoicing.delete_purchase_invoice(db, invoice_id)
    return {"ok": True}
