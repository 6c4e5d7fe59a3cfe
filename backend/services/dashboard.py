from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import (
    Client,
    Product,
    PurchaseInvoice,
    SaleInvoice,
    Supplier,
)

RECENT_LIMIT = 5


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def previous_month_bounds(day: date) -> tuple[date, date]:
    first_current = day.replace(day=1)
    return month_bounds(first_current - timedelta(days=1))


def pct_change(current: float, previous: float) -> float:
    """Variation en %, base |previous| ; sans base : +/-100 selon le signe, 0 si nul."""
    if previous != 0:
        return (current - previous) / abs(previous) * 100
    if current > 0:
        return 100.0
    if current < 0:
        return -100.0
    return 0.0


def _sum_total(db: Session, model, bounds: tuple[date, date] | None = None) -> float:
    stmt = select(func.coalesce(func.sum(model.total), 0))
    if bounds is not None:
        stmt = stmt.where(model.invoice_date >= bounds[0]).where(model.invoice_date <= bounds[1])
    return float(db.scalar(stmt) or 0)


def _count(db: Session, model) -> int:
    return int(db.scalar(select(func.count()).select_from(model)) or 0)


def dashboard_stats(db: Session, *, today: date | None = None) -> dict:
    """
    Statistiques du tableau de bord.

    - totaux achats / ventes, marge brute (ventes - achats) et taux de marge
    - variation mois courant vs mois précédent (achats, ventes, marge)
    - 5 dernières factures d'achat et de vente
    """
    today = today or date.today()
    current = month_bounds(today)
    previous = previous_month_bounds(today)

    total_purchases = _sum_total(db, PurchaseInvoice)
    total_sales = _sum_total(db, SaleInvoice)

    cur_purchases = _sum_total(db, PurchaseInvoice, current)
    cur_sales = _sum_total(db, SaleInvoice, current)
    prev_purchases = _sum_total(db, PurchaseInvoice, previous)
    prev_sales = _sum_total(db, SaleInvoice, previous)

    profit = total_sales - total_purchases
    profit_margin = profit / total_sales * 100 if total_sales > 0 else 0.0

    recent_purchases = (
        db.execute(
            select(PurchaseInvoice)
            .order_by(PurchaseInvoice.created_at.desc(), PurchaseInvoice.id.desc())
            .limit(RECENT_LIMIT)
        )
        .scalars()
        .all()
    )
    recent_sales = (
        db.execute(
            select(SaleInvoice)
            .order_by(SaleInvoice.created_at.desc(), SaleInvoice.id.desc())
            .limit(RECENT_LIMIT)
        )
        .scalars()
        .all()
    )

    return {
        "overview": {
            "total_suppliers": _count(db, Supplier),
            "total_clients": _count(db, Client),
            "total_purchase_invoices": _count(db, PurchaseInvoice),
            "total_sale_invoices": _count(db, SaleInvoice),
            "total_products": _count(db, Product),
            "total_purchases": total_purchases,
            "total_sales": total_sales,
            "profit": profit,
            "profit_margin": profit_margin,
            "purchases_change": round(pct_change(cur_purchases, prev_purchases)),
            "sales_change": round(pct_change(cur_sales, prev_sales)),
            "profit_change": round(pct_change(cur_sales - cur_purchases, prev_sales - prev_purchases)),
        },
        "recent_activity": {
            "recent_purchases": [
                {
                    "id": p.id,
                    "invoice_number": p.invoice_number,
                    "supplier_id": p.supplier_id,
                    "supplier_name": p.supplier.name if p.supplier else None,
                    "total": float(p.total),
                    "invoice_date": p.invoice_date,
                }
                for p in recent_purchases
            ],
            "recent_sales": [
                {
                    "id": s.id,
                    "invoice_number": s.invoice_number,
                    "client_id": s.client_id,
                    "client_name": s.client.name if s.client else None,
                    "total": float(s.total),
                    "invoice_date": s.invoice_date,
                }
                for s in recent_sales
            ],
        },
    }
