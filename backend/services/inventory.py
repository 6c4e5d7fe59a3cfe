from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Protocol

from backend.services.errors import InvalidInvoiceItem

logger = logging.getLogger(__name__)

# Float residue below this is treated as an empty stock
QTY_EPSILON = 1e-9


# ---------- KEYS ----------
def normalize_description(description: str) -> str:
    """Product natural key: trimmed, lower-cased item description."""
    return description.strip().lower()


# ---------- RECORDS ----------
@dataclass(frozen=True)
class StockItem:
    description: str
    quantity: float
    unit_price: float
    tax_rate: float = 0.0

    @property
    def key(self) -> str:
        return normalize_description(self.description)


@dataclass(frozen=True)
class ProductRecord:
    description: str
    total_quantity: float
    average_unit_price: float
    last_purchase_price: float
    last_purchase_date: date | None = None
    supplier_id: int | None = None
    supplier_name: str | None = None
    tax_rate: float = 0.0
    # 0 = never stored; the store bumps it on every write
    version: int = 0

    @property
    def key(self) -> str:
        return normalize_description(self.description)


class ProductStore(Protocol):
    def get_product(self, key: str) -> ProductRecord | None: ...

    def put_product(self, record: ProductRecord) -> ProductRecord: ...

    def delete_product(self, key: str) -> bool: ...


# ---------- VALIDATION ----------
def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_items(items: Iterable[StockItem]) -> list[StockItem]:
    """
    Valide tout le lot AVANT la moindre écriture.

    Lève InvalidInvoiceItem sur le premier article invalide : rien n'a encore
    été écrit, le ledger reste inchangé (tout ou rien par facture).
    """
    items = list(items)
    for idx, it in enumerate(items):
        if not isinstance(it.description, str) or not it.description.strip():
            raise InvalidInvoiceItem(idx, "description is required")
        if not _finite(it.quantity) or it.quantity <= 0:
            raise InvalidInvoiceItem(idx, f"quantity must be > 0 (got {it.quantity!r})")
        if not _finite(it.unit_price) or it.unit_price < 0:
            raise InvalidInvoiceItem(idx, f"unit_price must be >= 0 (got {it.unit_price!r})")
        if not _finite(it.tax_rate) or not 0 <= it.tax_rate <= 100:
            raise InvalidInvoiceItem(idx, f"tax_rate must be within 0..100 (got {it.tax_rate!r})")
    return items


# ---------- RECONCILER ----------
class StockReconciler:
    """
    Maintient le ledger produits cohérent avec les factures enregistrées.

    Règles métier :
        achat         qty += q ; avg = (avg*qty + p*q) / (qty + q)
        annul. achat  qty = max(0, qty - q) ; avg inchangé ; suppression à 0
        vente         qty = max(0, qty - q)
        annul. vente  qty += q

    Propriétés :
    - un appel par événement de facture (aucune déduplication ici)
    - tout ou rien : validation du lot avant écriture
    - retourne les produits encore présents après le lot, un par clé
      normalisée, dans l'ordre de première apparition
    """

    def __init__(self, store: ProductStore):
        self.store = store

    def apply_purchase(
        self,
        items: Iterable[StockItem],
        *,
        supplier_id: int | None,
        supplier_name: str | None,
        purchase_date: date | None,
    ) -> list[ProductRecord]:
        items = validate_items(items)
        touched: dict[str, ProductRecord] = {}

        for it in items:
            existing = self.store.get_product(it.key)
            if existing is None:
                rec = ProductRecord(
                    description=it.description.strip(),
                    total_quantity=it.quantity,
                    average_unit_price=it.unit_price,
                    last_purchase_price=it.unit_price,
                    last_purchase_date=purchase_date,
                    supplier_id=supplier_id,
                    supplier_name=supplier_name,
                    tax_rate=it.tax_rate,
                )
                logger.info("Product created: %r (qty=%s @ %s)", rec.description, it.quantity, it.unit_price)
            else:
                new_qty = existing.total_quantity + it.quantity
                new_avg = (
                    existing.average_unit_price * existing.total_quantity
                    + it.unit_price * it.quantity
                ) / new_qty
                rec = replace(
                    existing,
                    total_quantity=new_qty,
                    average_unit_price=new_avg,
                    last_purchase_price=it.unit_price,
                    last_purchase_date=purchase_date,
                    supplier_id=supplier_id,
                    supplier_name=supplier_name,
                    tax_rate=it.tax_rate,
                )
                logger.debug("Product %r: qty +%s -> %s", existing.description, it.quantity, new_qty)

            touched[it.key] = self.store.put_product(rec)

        return list(touched.values())

    def reverse_purchase(self, items: Iterable[StockItem]) -> list[ProductRecord]:
        # average_unit_price stays as is on reversal (pending product-owner review)
        items = validate_items(items)
        touched: dict[str, ProductRecord | None] = {}

        for it in items:
            existing = self.store.get_product(it.key)
            if existing is None:
                continue

            new_qty = max(0, existing.total_quantity - it.quantity)
            if new_qty <= QTY_EPSILON:
                self.store.delete_product(it.key)
                touched[it.key] = None
                logger.info("Product deleted: %r (stock back to zero)", existing.description)
                continue

            touched[it.key] = self.store.put_product(replace(existing, total_quantity=new_qty))

        return [rec for rec in touched.values() if rec is not None]

    def apply_sale(self, items: Iterable[StockItem]) -> list[ProductRecord]:
        return self._adjust_quantities(validate_items(items), sign=-1)

    def reverse_sale(self, items: Iterable[StockItem]) -> list[ProductRecord]:
        return self._adjust_quantities(validate_items(items), sign=1)

    def _adjust_quantities(self, items: list[StockItem], *, sign: int) -> list[ProductRecord]:
        # Sales never create nor delete a product; untracked items are skipped.
        touched: dict[str, ProductRecord] = {}

        for it in items:
            existing = self.store.get_product(it.key)
            if existing is None:
                logger.debug("No product for %r, sale line ignored", it.description)
                continue

            new_qty = existing.total_quantity + sign * it.quantity
            if new_qty < 0:
                logger.warning(
                    "Sale of %s %r exceeds stock (%s), floored at 0",
                    it.quantity,
                    existing.description,
                    existing.total_quantity,
                )
                new_qty = 0

            touched[it.key] = self.store.put_product(replace(existing, total_quantity=new_qty))

        return list(touched.values())
