"""
Invoicing service.

Un événement de facture (création, modification, suppression) = une
transaction : en-tête + articles + effet stock, commit ou rollback ensemble.

Toute la logique stock est centralisée dans :
    backend.services.inventory
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import InvoiceType
from backend.app.db.models.models_v1 import (
    Client,
    InvoiceItem,
    PurchaseInvoice,
    SaleInvoice,
    Supplier,
)
from backend.app.schemas.invoice import (
    InvoiceItemIn,
    PurchaseInvoiceCreate,
    PurchaseInvoiceUpdate,
    SaleInvoiceCreate,
    SaleInvoiceUpdate,
)
from backend.services.errors import DuplicateError, NotFoundError
from backend.services.inventory import StockItem, StockReconciler, validate_items
from backend.services.ledger_store import SqlLedgerStore

logger = logging.getLogger(__name__)

# columns that an update may not set to NULL
_NON_NULLABLE = {"invoice_number", "supplier_id", "client_id", "invoice_date", "status", "payment_method"}


# ---------- Helpers ----------
@contextmanager
def _unit_of_work(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def compute_totals(items: Iterable[StockItem]) -> tuple[float, float, float]:
    """(subtotal, tax_amount, total) rounded to cents."""
    subtotal = 0.0
    tax_amount = 0.0
    for it in items:
        line = it.quantity * it.unit_price
        subtotal += line
        tax_amount += line * it.tax_rate / 100
    return round(subtotal, 2), round(tax_amount, 2), round(subtotal + tax_amount, 2)


def _stock_items(items: Iterable[InvoiceItemIn]) -> list[StockItem]:
    return validate_items(it.to_stock_item() for it in items)


def _set_totals(invoice: PurchaseInvoice | SaleInvoice, items: list[StockItem]) -> None:
    invoice.subtotal, invoice.tax_amount, invoice.total = compute_totals(items)


def _add_items(db: Session, invoice_id: int, invoice_type: InvoiceType, items: list[StockItem]) -> None:
    for pos, it in enumerate(items):
        db.add(
            InvoiceItem(
                invoice_id=invoice_id,
                invoice_type=invoice_type,
                position=pos,
                description=it.description.strip(),
                description_key=it.key,
                quantity=it.quantity,
                unit_price=it.unit_price,
                tax_rate=it.tax_rate,
                total=it.quantity * it.unit_price,
            )
        )
    db.flush()


def _delete_items(db: Session, invoice_id: int, invoice_type: InvoiceType) -> None:
    db.execute(
        delete(InvoiceItem)
        .where(InvoiceItem.invoice_id == invoice_id)
        .where(InvoiceItem.invoice_type == invoice_type)
    )


def _ensure_unique_number(db: Session, model, invoice_number: str, *, exclude_id: int | None = None) -> None:
    stmt = select(model.id).where(model.invoice_number == invoice_number)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if db.execute(stmt).first():
        raise DuplicateError(f"Invoice number {invoice_number!r} already exists")


def _header_changes(payload) -> dict:
    fields = payload.model_dump(exclude_unset=True, exclude={"items"})
    return {k: v for k, v in fields.items() if not (v is None and k in _NON_NULLABLE)}


def list_invoice_items(db: Session, invoice_id: int, invoice_type: InvoiceType) -> list[InvoiceItem]:
    return (
        db.execute(
            select(InvoiceItem)
            .where(InvoiceItem.invoice_id == invoice_id)
            .where(InvoiceItem.invoice_type == invoice_type)
            .order_by(InvoiceItem.position, InvoiceItem.id)
        )
        .scalars()
        .all()
    )


# ---------- PURCHASES ----------
def _get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def create_purchase_invoice(db: Session, payload: PurchaseInvoiceCreate) -> PurchaseInvoice:
    items = _stock_items(payload.items)

    with _unit_of_work(db):
        supplier = _get_supplier(db, payload.supplier_id)
        _ensure_unique_number(db, PurchaseInvoice, payload.invoice_number)

        inv = PurchaseInvoice(
            invoice_number=payload.invoice_number,
            supplier_id=supplier.id,
            invoice_date=payload.invoice_date,
            due_date=payload.due_date,
            status=payload.status,
            notes=payload.notes,
        )
        _set_totals(inv, items)
        db.add(inv)
        db.flush()  # get inv.id

        _add_items(db, inv.id, InvoiceType.purchase, items)
        StockReconciler(SqlLedgerStore(db)).apply_purchase(
            items,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            purchase_date=inv.invoice_date,
        )

    db.refresh(inv)
    logger.info("Purchase invoice %s created (%d items, total=%s)", inv.invoice_number, len(items), inv.total)
    return inv


def update_purchase_invoice(db: Session, invoice_id: int, payload: PurchaseInvoiceUpdate) -> PurchaseInvoice:
    new_items = _stock_items(payload.items) if payload.items is not None else None

    with _unit_of_work(db):
        inv = db.get(PurchaseInvoice, invoice_id)
        if not inv:
            raise NotFoundError(f"Purchase invoice {invoice_id} not found")

        changes = _header_changes(payload)
        if "supplier_id" in changes:
            _get_supplier(db, changes["supplier_id"])
        if "invoice_number" in changes:
            _ensure_unique_number(db, PurchaseInvoice, changes["invoice_number"], exclude_id=inv.id)
        for field, value in changes.items():
            setattr(inv, field, value)

        if new_items is not None:
            # delete-all-then-recreate: reverse old lines, apply new ones
            store = SqlLedgerStore(db)
            reconciler = StockReconciler(store)
            reconciler.reverse_purchase(store.get_items(inv.id, InvoiceType.purchase))

            _delete_items(db, inv.id, InvoiceType.purchase)
            _add_items(db, inv.id, InvoiceType.purchase, new_items)
            _set_totals(inv, new_items)

            supplier = _get_supplier(db, inv.supplier_id)
            reconciler.apply_purchase(
                new_items,
                supplier_id=supplier.id,
                supplier_name=supplier.name,
                purchase_date=inv.invoice_date,
            )

    db.refresh(inv)
    logger.info("Purchase invoice %s updated (items replaced: %s)", inv.invoice_number, new_items is not None)
    return inv


def delete_purchase_invoice(db: Session, invoice_id: int) -> None:
    with _unit_of_work(db):
        inv = db.get(PurchaseInvoice, invoice_id)
        if not inv:
            raise NotFoundError(f"Purchase invoice {invoice_id} not found")

        store = SqlLedgerStore(db)
        StockReconciler(store).reverse_purchase(store.get_items(inv.id, InvoiceType.purchase))

        _delete_items(db, inv.id, InvoiceType.purchase)
        db.execute(
            update(SaleInvoice)
            .where(SaleInvoice.based_on_purchase_id == inv.id)
            .values(based_on_purchase_id=None)
        )
        number = inv.invoice_number
        db.delete(inv)

    logger.info("Purchase invoice %s deleted", number)


# ---------- SALES ----------
def _get_client(db: Session, client_id: int) -> Client:
    client = db.get(Client, client_id)
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    return client


def _check_based_on(db: Session, purchase_id: int | None) -> None:
    if purchase_id is not None and not db.get(PurchaseInvoice, purchase_id):
        raise NotFoundError(f"Purchase invoice {purchase_id} not found")


def create_sale_invoice(db: Session, payload: SaleInvoiceCreate) -> SaleInvoice:
    items = _stock_items(payload.items)

    with _unit_of_work(db):
        client = _get_client(db, payload.client_id)
        _check_based_on(db, payload.based_on_purchase_id)
        _ensure_unique_number(db, SaleInvoice, payload.invoice_number)

        inv = SaleInvoice(
            invoice_number=payload.invoice_number,
            client_id=client.id,
            invoice_date=payload.invoice_date,
            due_date=payload.due_date,
            status=payload.status,
            payment_method=payload.payment_method,
            based_on_purchase_id=payload.based_on_purchase_id,
            notes=payload.notes,
        )
        _set_totals(inv, items)
        db.add(inv)
        db.flush()

        _add_items(db, inv.id, InvoiceType.sale, items)
        StockReconciler(SqlLedgerStore(db)).apply_sale(items)

    db.refresh(inv)
    logger.info("Sale invoice %s created (%d items, total=%s)", inv.invoice_number, len(items), inv.total)
    return inv


def update_sale_invoice(db: Session, invoice_id: int, payload: SaleInvoiceUpdate) -> SaleInvoice:
    new_items = _stock_items(payload.items) if payload.items is not None else None

    with _unit_of_work(db):
        inv = db.get(SaleInvoice, invoice_id)
        if not inv:
            raise NotFoundError(f"Sale invoice {invoice_id} not found")

        changes = _header_changes(payload)
        if "client_id" in changes:
            _get_client(db, changes["client_id"])
        if "based_on_purchase_id" in changes:
            _check_based_on(db, changes["based_on_purchase_id"])
        if "invoice_number" in changes:
            _ensure_unique_number(db, SaleInvoice, changes["invoice_number"], exclude_id=inv.id)
        for field, value in changes.items():
            setattr(inv, field, value)

        if new_items is not None:
            store = SqlLedgerStore(db)
            reconciler = StockReconciler(store)
            reconciler.reverse_sale(store.get_items(inv.id, InvoiceType.sale))

            _delete_items(db, inv.id, InvoiceType.sale)
            _add_items(db, inv.id, InvoiceType.sale, new_items)
            _set_totals(inv, new_items)

            reconciler.apply_sale(new_items)

    db.refresh(inv)
    logger.info("Sale invoice %s updated (items replaced: %s)", inv.invoice_number, new_items is not None)
    return inv


def delete_sale_invoice(db: Session, invoice_id: int) -> None:
    with _unit_of_work(db):
        inv = db.get(SaleInvoice, invoice_id)
        if not inv:
            raise NotFoundError(f"Sale invoice {invoice_id} not found")

        # "un-selling": the sold quantities go back to stock
        store = SqlLedgerStore(db)
        StockReconciler(store).reverse_sale(store.get_items(inv.id, InvoiceType.sale))

        _delete_items(db, inv.id, InvoiceType.sale)
        number = inv.invoice_number
        db.delete(inv)

    logger.info("Sale invoice %s deleted", number)
