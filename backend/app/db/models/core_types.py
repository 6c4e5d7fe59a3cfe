import enum

class InvoiceType(str, enum.Enum):
    purchase = "purchase"
    sale = "sale"

class InvoiceStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"
