from datetime import date

from pydantic import BaseModel, ConfigDict


class ProductPurchaseRead(BaseModel):
    invoice_id: int
    invoice_number: str
    quantity: float
    unit_price: float
    invoice_date: date | None


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    total_quantity: float
    average_unit_price: float
    last_purchase_price: float
    last_purchase_date: date | None
    supplier_id: int | None
    supplier_name: str | None
    tax_rate: float
    version: int  # READ ONLY: bumped on every stock write

    purchases: list[ProductPurchaseRead] = []
