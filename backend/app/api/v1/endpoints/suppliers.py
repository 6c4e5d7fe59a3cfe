from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product, PurchaseInvoice, Supplier
from backend.services.errors import ReferenceInUseError

router = APIRouter(prefix="/suppliers")

MAX_LIMIT = 500


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = None
    tax_id: str | None = Field(default=None, max_length=64)


class SupplierUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = None
    tax_id: str | None = Field(default=None, max_length=64)


def _serialize(s: Supplier) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "email": s.email,
        "phone": s.phone,
        "address": s.address,
        "tax_id": s.tax_id,
        "created_at": s.created_at,
        "updated_at": s.updated_at,
    }


def _get_or_404(db: Session, supplier_id: int) -> Supplier:
    s = db.get(Supplier, supplier_id)
    if not s:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return s


@router.get("")
def list_suppliers(
    search: str | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Supplier).order_by(Supplier.created_at.desc(), Supplier.id.desc())
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Supplier.name.ilike(pattern), Supplier.email.ilike(pattern)))
    if limit:
        stmt = stmt.limit(min(limit, MAX_LIMIT))

    rows = db.execute(stmt).scalars().all()
    return [_serialize(s) for s in rows]


@router.get("/list")
def list_supplier_choices(db: Session = Depends(get_db)):
    """Light list (id, name, email) for invoice forms."""
    rows = db.execute(select(Supplier.id, Supplier.name, Supplier.email).order_by(Supplier.name)).all()
    return [{"id": r.id, "name": r.name, "email": r.email} for r in rows]


@router.get("/{supplier_id}")
def get_supplier(supplier_id: int, db: Session = Depends(get_db)):
    return _serialize(_get_or_404(db, supplier_id))


@router.post("")
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Supplier).where(Supplier.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Supplier already exists")

    s = Supplier(**payload.model_dump())
    db.add(s)
    db.commit()
    db.refresh(s)
    return _serialize(s)


@router.put("/{supplier_id}")
def update_supplier(supplier_id: int, payload: SupplierUpdate, db: Session = Depends(get_db)):
    s = _get_or_404(db, supplier_id)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    if "name" in changes and changes["name"] != s.name:
        taken = db.execute(select(Supplier).where(Supplier.name == changes["name"])).scalar_one_or_none()
        if taken:
            raise HTTPException(status_code=409, detail="Supplier already exists")

    for field, value in changes.items():
        setattr(s, field, value)
    db.commit()
    db.refresh(s)
    return _serialize(s)


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: int, db: Session = Depends(get_db)):
    s = _get_or_404(db, supplier_id)

    used = db.execute(select(PurchaseInvoice.id).where(PurchaseInvoice.supplier_id == supplier_id)).first()
    if used:
        raise ReferenceInUseError(f"Supplier {supplier_id} is referenced by purchase invoices")

    # products keep supplier_name as a snapshot
    db.execute(update(Product).where(Product.supplier_id == supplier_id).values(supplier_id=None))
    db.delete(s)
    db.commit()
    return {"ok": True}
