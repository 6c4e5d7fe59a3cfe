"""
Product ledger stores used by the StockReconciler.

- SqlLedgerStore : SQLAlchemy, verrou de ligne (FOR UPDATE) + colonne version
  (compare-and-swap). Ne commit jamais : la transaction appartient à l'appelant.
- InMemoryProductStore : dict clé normalisée -> ProductRecord, mêmes règles
  de version. Sert à tester le reconciler sans base de données.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.db.models.core_types import InvoiceType
from backend.app.db.models.models_v1 import InvoiceItem, Product
from backend.services.errors import ConcurrentUpdateConflict
from backend.services.inventory import ProductRecord, StockItem


def product_to_record(row: Product) -> ProductRecord:
    return ProductRecord(
        description=row.description,
        total_quantity=row.total_quantity,
        average_unit_price=row.average_unit_price,
        last_purchase_price=row.last_purchase_price,
        last_purchase_date=row.last_purchase_date,
        supplier_id=row.supplier_id,
        supplier_name=row.supplier_name,
        tax_rate=row.tax_rate,
        version=row.version,
    )


class SqlLedgerStore:
    def __init__(self, db: Session):
        self.db = db

    # ---------- INVOICE ITEMS ----------
    def get_items(self, invoice_id: int, invoice_type: InvoiceType) -> list[StockItem]:
        rows = (
            self.db.execute(
                select(InvoiceItem)
                .where(InvoiceItem.invoice_id == invoice_id)
                .where(InvoiceItem.invoice_type == invoice_type)
                .order_by(InvoiceItem.position, InvoiceItem.id)
            )
            .scalars()
            .all()
        )
        return [
            StockItem(
                description=r.description,
                quantity=r.quantity,
                unit_price=r.unit_price,
                tax_rate=r.tax_rate,
            )
            for r in rows
        ]

    # ---------- PRODUCTS ----------
    def _row(self, key: str, *, lock: bool = False) -> Product | None:
        stmt = select(Product).where(Product.description_key == key)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_product(self, key: str) -> ProductRecord | None:
        row = self._row(key, lock=True)
        return product_to_record(row) if row else None

    def put_product(self, record: ProductRecord) -> ProductRecord:
        key = record.key
        row = self._row(key)
        is_new = row is None

        if is_new:
            # a versioned record with no row: deleted by someone else meanwhile
            if record.version:
                raise ConcurrentUpdateConflict(key)
            row = Product(description_key=key)
            self.db.add(row)
        elif row.version != record.version:
            raise ConcurrentUpdateConflict(key)

        row.description = record.description
        row.total_quantity = record.total_quantity
        row.average_unit_price = record.average_unit_price
        row.last_purchase_price = record.last_purchase_price
        row.last_purchase_date = record.last_purchase_date
        row.supplier_id = record.supplier_id
        row.supplier_name = record.supplier_name
        row.tax_rate = record.tax_rate

        try:
            self.db.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdateConflict(key) from exc
        except IntegrityError as exc:
            # concurrent first purchase of the same description
            if is_new:
                raise ConcurrentUpdateConflict(key) from exc
            raise

        return product_to_record(row)

    def delete_product(self, key: str) -> bool:
        row = self._row(key)
        if row is None:
            return False

        self.db.delete(row)
        try:
            self.db.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdateConflict(key) from exc
        return True


class InMemoryProductStore:
    def __init__(self, products: Iterable[ProductRecord] = ()):
        self._rows: dict[str, ProductRecord] = {}
        for p in products:
            self._rows[p.key] = replace(p, version=max(p.version, 1))

    def get_product(self, key: str) -> ProductRecord | None:
        return self._rows.get(key)

    def put_product(self, record: ProductRecord) -> ProductRecord:
        current = self._rows.get(record.key)
        current_version = current.version if current else 0
        if record.version != current_version:
            raise ConcurrentUpdateConflict(record.key)

        stored = replace(record, version=current_version + 1)
        self._rows[record.key] = stored
        return stored

    def delete_product(self, key: str) -> bool:
        return self._rows.pop(key, None) is not None

    def snapshot(self) -> dict[str, ProductRecord]:
        return dict(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: str) -> bool:
        return key in self._rows
