from dataclasses import replace
from datetime import date

import pytest
from sqlalchemy import select

from backend.app.db.models.core_types import InvoiceType
from backend.app.db.models.models_v1 import InvoiceItem, Product
from backend.services.errors import ConcurrentUpdateConflict
from backend.services.inventory import ProductRecord, StockItem, StockReconciler
from backend.services.ledger_store import SqlLedgerStore


def _record(description="Widget", qty=10.0, avg=5.0):
    return ProductRecord(
        description=description,
        total_quantity=qty,
        average_unit_price=avg,
        last_purchase_price=avg,
        last_purchase_date=date(2024, 3, 15),
    )


def test_insert_sets_key_and_first_version(db_session):
    store = SqlLedgerStore(db_session)

    saved = store.put_product(_record(" Widget "))
    db_session.commit()

    row = db_session.execute(select(Product)).scalar_one()
    assert row.description_key == "widget"
    assert row.version == 1
    assert saved.version == 1


def test_update_bumps_version(db_session):
    store = SqlLedgerStore(db_session)
    store.put_product(_record())

    current = store.get_product("widget")
    saved = store.put_product(replace(current, total_quantity=4.0))

    assert saved.version == current.version + 1
    assert store.get_product("widget").total_quantity == 4.0


def test_stale_version_is_rejected(db_session):
    store = SqlLedgerStore(db_session)
    store.put_product(_record())

    stale = store.get_product("widget")
    store.put_product(replace(stale, total_quantity=7.0))

    with pytest.raises(ConcurrentUpdateConflict) as exc:
        store.put_product(replace(stale, total_quantity=1.0))
    assert exc.value.key == "widget"
    assert store.get_product("widget").total_quantity == 7.0


def test_versioned_record_without_row_is_a_conflict(db_session):
    store = SqlLedgerStore(db_session)

    with pytest.raises(ConcurrentUpdateConflict):
        store.put_product(replace(_record(), version=3))


def test_second_insert_for_same_key_is_a_conflict(db_session):
    store = SqlLedgerStore(db_session)
    store.put_product(_record())

    with pytest.raises(ConcurrentUpdateConflict):
        store.put_product(_record("WIDGET"))


def test_delete_product(db_session):
    store = SqlLedgerStore(db_session)
    store.put_product(_record())

    assert store.delete_product("widget") is True
    assert store.get_product("widget") is None
    assert store.delete_product("widget") is False


def test_get_items_returns_lines_in_position_order(db_session):
    for pos, desc in [(1, "Nut"), (0, "Bolt")]:
        db_session.add(
            InvoiceItem(
                invoice_id=42,
                invoice_type=InvoiceType.purchase,
                position=pos,
                description=desc,
                description_key=desc.lower(),
                quantity=2,
                unit_price=1.5,
                tax_rate=0,
                total=3.0,
            )
        )
    # same id, other parent type
    db_session.add(
        InvoiceItem(
            invoice_id=42,
            invoice_type=InvoiceType.sale,
            position=0,
            description="Washer",
            description_key="washer",
            quantity=1,
            unit_price=1,
            tax_rate=0,
            total=1,
        )
    )
    db_session.flush()

    items = SqlLedgerStore(db_session).get_items(42, InvoiceType.purchase)

    assert items == [StockItem("Bolt", 2, 1.5, 0), StockItem("Nut", 2, 1.5, 0)]


def test_reconciler_on_sql_store(db_session):
    reconciler = StockReconciler(SqlLedgerStore(db_session))

    reconciler.apply_purchase(
        [StockItem("Widget A", 10, 5.0)],
        supplier_id=None,
        supplier_name="Acme Wholesale",
        purchase_date=date(2024, 3, 15),
    )
    reconciler.apply_purchase(
        [StockItem("widget a", 5, 8.0)],
        supplier_id=None,
        supplier_name="Acme Wholesale",
        purchase_date=date(2024, 3, 20),
    )
    db_session.commit()

    row = db_session.execute(select(Product)).scalar_one()
    assert row.total_quantity == 15
    assert row.average_unit_price == pytest.approx(6.0)
    assert row.version == 2

    reconciler.reverse_purchase([StockItem("Widget A", 15, 6.0)])
    db_session.commit()

    assert db_session.execute(select(Product)).first() is None
