"""
Typed errors raised by the invoicing services.

Each error carries a machine-readable ``code`` and the HTTP status the API
layer answers with (see ``backend.app.main``).

    InvoicingError
    +-- InvalidInvoiceItem        422
    +-- ConcurrentUpdateConflict  409
    +-- NotFoundError             404
    +-- DuplicateError            409
    +-- ReferenceInUseError       409

A missing product on a reversal or a sale is NOT an error: the reconciler
treats it as a no-op.
"""

from __future__ import annotations


class InvoicingError(Exception):
    code = "INVOICING_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInvoiceItem(InvoicingError):
    code = "INVALID_INVOICE_ITEM"
    status_code = 422

    def __init__(self, index: int, reason: str):
        super().__init__(f"Invalid invoice item #{index}: {reason}")
        self.index = index
        self.reason = reason


class ConcurrentUpdateConflict(InvoicingError):
    """Optimistic-lock failure on a product row. The caller retries."""

    code = "CONCURRENT_UPDATE_CONFLICT"
    status_code = 409

    def __init__(self, key: str):
        super().__init__(f"Product {key!r} was modified concurrently")
        self.key = key


class NotFoundError(InvoicingError):
    code = "NOT_FOUND"
    status_code = 404


class DuplicateError(InvoicingError):
    code = "DUPLICATE"
    status_code = 409


class ReferenceInUseError(InvoicingError):
    code = "REFERENCE_IN_USE"
    status_code = 409
