from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from backend.app.db.models.core_types import InvoiceStatus
from backend.services.inventory import StockItem


class InvoiceItemIn(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    quantity: float = Field(gt=0, allow_inf_nan=False)
    unit_price: float = Field(ge=0, allow_inf_nan=False)
    tax_rate: float = Field(default=0, ge=0, le=100)

    def to_stock_item(self) -> StockItem:
        return StockItem(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
        )


class PurchaseInvoiceCreate(BaseModel):
    invoice_number: str = Field(min_length=1, max_length=64)
    supplier_id: int
    invoice_date: date
    due_date: date | None = None
    status: InvoiceStatus = InvoiceStatus.pending
    notes: str | None = None
    items: list[InvoiceItemIn] = Field(min_length=1)


class PurchaseInvoiceUpdate(BaseModel):
    invoice_number: str | None = Field(default=None, min_length=1, max_length=64)
    supplier_id: int | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    status: InvoiceStatus | None = None
    notes: str | None = None
    # given => the whole item set is replaced
    items: list[InvoiceItemIn] | None = Field(default=None, min_length=1)


class SaleInvoiceCreate(BaseModel):
    invoice_number: str = Field(min_length=1, max_length=64)
    client_id: int
    invoice_date: date
    due_date: date | None = None
    status: InvoiceStatus = InvoiceStatus.paid
    payment_method: str = Field(default="cash", min_length=1, max_length=64)
    based_on_purchase_id: int | None = None
    notes: str | None = None
    items: list[InvoiceItemIn] = Field(min_length=1)


class SaleInvoiceUpdate(BaseModel):
    invoice_number: str | None = Field(default=None, min_length=1, max_length=64)
    client_id: int | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    status: InvoiceStatus | None = None
    payment_method: str | None = Field(default=None, min_length=1, max_length=64)
    based_on_purchase_id: int | None = None
    notes: str | None = None
    items: list[InvoiceItemIn] | None = Field(default=None, min_length=1)
