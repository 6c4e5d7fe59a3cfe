from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Client, SaleInvoice
from backend.services.errors import ReferenceInUseError

router = APIRouter(prefix="/clients")

MAX_LIMIT = 500


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = None
    tax_id: str | None = Field(default=None, max_length=64)


class ClientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = None
    tax_id: str | None = Field(default=None, max_length=64)


def _serialize(c: Client) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "email": c.email,
        "phone": c.phone,
        "address": c.address,
        "tax_id": c.tax_id,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


def _get_or_404(db: Session, client_id: int) -> Client:
    c = db.get(Client, client_id)
    if not c:
        raise HTTPException(status_code=404, detail="Client not found")
    return c


@router.get("")
def list_clients(
    search: str | None = None,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Client).order_by(Client.created_at.desc(), Client.id.desc())
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Client.name.ilike(pattern), Client.email.ilike(pattern)))
    if limit:
        stmt = stmt.limit(min(limit, MAX_LIMIT))

    rows = db.execute(stmt).scalars().all()
    return [_serialize(c) for c in rows]


@router.get("/{client_id}")
def get_client(client_id: int, db: Session = Depends(get_db)):
    return _serialize(_get_or_404(db, client_id))


@router.post("")
def create_client(payload: ClientCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Client).where(Client.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Client already exists")

    c = Client(**payload.model_dump())
    db.add(c)
    db.commit()
    db.refresh(c)
    return _serialize(c)


@router.put("/{client_id}")
def update_client(client_id: int, payload: ClientUpdate, db: Session = Depends(get_db)):
    c = _get_or_404(db, client_id)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    if "name" in changes and changes["name"] != c.name:
        taken = db.execute(select(Client).where(Client.name == changes["name"])).scalar_one_or_none()
        if taken:
            raise HTTPException(status_code=409, detail="Client already exists")

    for field, value in changes.items():
        setattr(c, field, value)
    db.commit()
    db.refresh(c)
    return _serialize(c)


@router.delete("/{client_id}")
def delete_client(client_id: int, db: Session = Depends(get_db)):
    c = _get_or_404(db, client_id)

    used = db.execute(select(SaleInvoice.id).where(SaleInvoice.client_id == client_id)).first()
    if used:
        raise ReferenceInUseError(f"Client {client_id} is referenced by sale invoices")

    db.delete(c)
    db.commit()
    return {"ok": True}
