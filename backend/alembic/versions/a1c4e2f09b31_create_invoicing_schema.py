"""create invoicing schema

Revision ID: a1c4e2f09b31
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c4e2f09b31"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INVOICE_STATUSES = ("draft", "pending", "paid", "overdue", "cancelled")
INVOICE_TYPES = ("purchase", "sale")

# types created once up front, shared by several tables
invoice_status = postgresql.ENUM(*INVOICE_STATUSES, name="invoice_status", create_type=False)
invoice_type = postgresql.ENUM(*INVOICE_TYPES, name="invoice_type", create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _counterpart_table(name: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(64)),
        sa.Column("address", sa.Text()),
        sa.Column("tax_id", sa.String(64)),
        *_timestamps(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    postgresql.ENUM(*INVOICE_STATUSES, name="invoice_status").create(bind, checkfirst=True)
    postgresql.ENUM(*INVOICE_TYPES, name="invoice_type").create(bind, checkfirst=True)

    _counterpart_table("suppliers")
    _counterpart_table("clients")

    op.create_table(
        "purchase_invoices",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("invoice_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date()),
        sa.Column("status", invoice_status, nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_purchase_invoices_supplier_id", "purchase_invoices", ["supplier_id"])
    op.create_index("ix_purchase_invoices_date", "purchase_invoices", ["invoice_date"])

    op.create_table(
        "sale_invoices",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("invoice_number", sa.String(64), nullable=False, unique=True),
        sa.Column("client_id", sa.BigInteger(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date()),
        sa.Column("status", invoice_status, nullable=False),
        sa.Column("payment_method", sa.String(64), nullable=False),
        sa.Column(
            "based_on_purchase_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_invoices.id", ondelete="SET NULL"),
        ),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_sale_invoices_client_id", "sale_invoices", ["client_id"])
    op.create_index("ix_sale_invoices_date", "sale_invoices", ["invoice_date"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("invoice_id", sa.BigInteger(), nullable=False),
        sa.Column("invoice_type", invoice_type, nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("description_key", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_price", sa.Float(), nullable=False),
        sa.Column("tax_rate", sa.Float(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_invoice_item_unit_price_nonneg"),
        sa.CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_invoice_item_tax_rate_0_100"),
    )
    op.create_index("ix_invoice_items_parent", "invoice_items", ["invoice_type", "invoice_id"])
    op.create_index("ix_invoice_items_description_key", "invoice_items", ["description_key"])

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("description_key", sa.String(255), nullable=False),
        sa.Column("total_quantity", sa.Float(), nullable=False),
        sa.Column("average_unit_price", sa.Float(), nullable=False),
        sa.Column("last_purchase_price", sa.Float(), nullable=False),
        sa.Column("last_purchase_date", sa.Date()),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="SET NULL")),
        sa.Column("supplier_name", sa.String(255)),
        sa.Column("tax_rate", sa.Float(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("description_key", name="uq_product_description_key"),
        sa.CheckConstraint("total_quantity >= 0", name="ck_product_qty_nonneg"),
        sa.CheckConstraint("average_unit_price >= 0", name="ck_product_avg_price_nonneg"),
    )


def downgrade() -> None:
    op.drop_table("products")
    op.drop_index("ix_invoice_items_description_key", table_name="invoice_items")
    op.drop_index("ix_invoice_items_parent", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_index("ix_sale_invoices_date", table_name="sale_invoices")
    op.drop_index("ix_sale_invoices_client_id", table_name="sale_invoices")
    op.drop_table("sale_invoices")
    op.drop_index("ix_purchase_invoices_date", table_name="purchase_invoices")
    op.drop_index("ix_purchase_invoices_supplier_id", table_name="purchase_invoices")
    op.drop_table("purchase_invoices")
    op.drop_table("clients")
    op.drop_table("suppliers")

    bind = op.get_bind()
    postgresql.ENUM(name="invoice_type").drop(bind, checkfirst=True)
    postgresql.ENUM(name="invoice_status").drop(bind, checkfirst=True)
