from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.api.v1.endpoints.purchase_invoices import DEFAULT_LIMIT, MAX_LIMIT, serialize_item
from backend.app.db.models.core_types import InvoiceStatus, InvoiceType
from backend.app.db.models.models_v1 import Client, InvoiceItem, SaleInvoice
from backend.app.schemas.invoice import SaleInvoiceCreate, SaleInvoiceUpdate
from backend.services import invoicing

router = APIRouter(prefix="/invoices/sales")


def _serialize(inv: SaleInvoice, items: list[InvoiceItem] | None = None) -> dict:
    out = {
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "client": {"id": inv.client.id, "name": inv.client.name, "email": inv.client.email},
        "invoice_date": inv.invoice_date,
        "due_date": inv.due_date,
        "status": inv.status,
        "payment_method": inv.payment_method,
        "based_on_purchase_id": inv.based_on_purchase_id,
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


def _detail(db: Session, inv: SaleInvoice) -> dict:
    return _serialize(inv, invoicing.list_invoice_items(db, inv.id, InvoiceType.sale))


@router.get("")
def list_sale_invoices(
    status: InvoiceStatus | None = None,
    search: str | None = None,
    limit: int = DEFAULT_LIMIT,
    db: Session = Depends(get_db),
):
    stmt = (
        select(SaleInvoice)
        .join(Client, Client.id == SaleInvoice.client_id)
        .order_by(SaleInvoice.created_at.desc(), SaleInvoice.id.desc())
        .limit(min(max(limit, 1), MAX_LIMIT))
    )
    if status is not None:
        stmt = stmt.where(SaleInvoice.status == status)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(SaleInvoice.invoice_number.ilike(pattern), Client.name.ilike(pattern)))

    rows = db.execute(stmt).scalars().all()
    return [_serialize(inv) for inv in rows]


@router.get("/{invoice_id}")
def get_sale_invoice(invoice_id: int, db: Session = Depends(get_db)):
    inv = db.get(SaleInvoice, invoice_id)
    if not inv:
        raise HTTPException(status_code=404, detail="Sale invoice not found")
    return _detail(db, inv)


@router.post("")
def create_sale_invoice(payload: SaleInvoiceCreate, db: Session = Depends(get_db)):
    inv = invoicing.create_sale_invoice(db, payload)
    return _detail(db, inv)


@router.put("/{invoice_id}")
def update_sale_invoice(invoice_id: int, payload: SaleInvoiceUpdate, db: Session = Depends(get_db)):
    inv = invoicing.update_sale_invoice(db, invoice_id, payload)
    return _detail(db, inv)


@router.delete("/{invoice_id}")
def delete_sale_invoice(invoice_id: int, db: Session = Depends(get_db)):
    invoicing.delete_sale_invoice(db, invoice_id)
    return {"ok": True}
