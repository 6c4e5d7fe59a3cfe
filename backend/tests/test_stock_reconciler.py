from datetime import date

import pytest

from backend.services.errors import ConcurrentUpdateConflict, InvalidInvoiceItem
from backend.services.inventory import (
    ProductRecord,
    StockItem,
    StockReconciler,
    normalize_description,
    validate_items,
)
from backend.services.ledger_store import InMemoryProductStore

PURCHASE_DAY = date(2024, 3, 15)


def _buy(reconciler, items, supplier_id=1, supplier_name="Acme Wholesale", day=PURCHASE_DAY):
    return reconciler.apply_purchase(
        items,
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        purchase_date=day,
    )


@pytest.fixture
def store():
    return InMemoryProductStore()


@pytest.fixture
def reconciler(store):
    return StockReconciler(store)


# ---------- KEYS / VALIDATION ----------
def test_normalize_description_trims_and_lowercases():
    assert normalize_description("  Widget A ") == "widget a"
    assert normalize_description("WIDGET a") == "widget a"


@pytest.mark.parametrize(
    "item",
    [
        StockItem("", 1, 1),
        StockItem("   ", 1, 1),
        StockItem("Widget", 0, 1),
        StockItem("Widget", -2, 1),
        StockItem("Widget", float("nan"), 1),
        StockItem("Widget", 1, -0.01),
        StockItem("Widget", 1, float("inf")),
        StockItem("Widget", 1, 1, tax_rate=120),
        StockItem("Widget", True, 1),
    ],
)
def test_validate_items_rejects_bad_lines(item):
    with pytest.raises(InvalidInvoiceItem):
        validate_items([StockItem("Fine", 1, 1), item])


def test_invalid_item_reports_its_position():
    with pytest.raises(InvalidInvoiceItem) as exc:
        validate_items([StockItem("Fine", 1, 1), StockItem("Widget", 0, 1)])

    assert exc.value.index == 1
    assert exc.value.code == "INVALID_INVOICE_ITEM"


# ---------- PURCHASES ----------
def test_first_purchase_creates_product(reconciler, store):
    out = _buy(reconciler, [StockItem("  Widget A ", 10, 5.0, tax_rate=16)])

    assert len(out) == 1
    p = store.get_product("widget a")
    assert p.description == "Widget A"
    assert p.total_quantity == 10
    assert p.average_unit_price == 5.0
    assert p.last_purchase_price == 5.0
    assert p.last_purchase_date == PURCHASE_DAY
    assert p.supplier_id == 1
    assert p.supplier_name == "Acme Wholesale"
    assert p.tax_rate == 16


def test_second_purchase_recomputes_weighted_average(reconciler, store):
    _buy(reconciler, [StockItem("Widget A", 10, 5.0)])
    _buy(
        reconciler,
        [StockItem("widget a", 5, 8.0)],
        supplier_id=2,
        supplier_name="Other Supplier",
        day=date(2024, 4, 1),
    )

    p = store.get_product("widget a")
    assert p.total_quantity == 15
    assert p.average_unit_price == pytest.approx(6.0)
    assert p.last_purchase_price == 8.0
    assert p.last_purchase_date == date(2024, 4, 1)
    assert p.supplier_id == 2
    assert p.supplier_name == "Other Supplier"
    # display name of the first purchase is kept
    assert p.description == "Widget A"


def test_keys_ignore_case_and_surrounding_whitespace(reconciler, store):
    _buy(reconciler, [StockItem("Widget A", 1, 1)])
    _buy(reconciler, [StockItem(" WIDGET A  ", 2, 1)])

    assert len(store) == 1
    assert store.get_product("widget a").total_quantity == 3


def test_duplicate_lines_in_one_batch_accumulate(reconciler, store):
    out = _buy(reconciler, [StockItem("Widget", 4, 2.0), StockItem("widget", 4, 4.0)])

    assert len(out) == 1
    assert out[0].total_quantity == 8
    assert out[0].average_unit_price == pytest.approx(3.0)
    assert store.get_product("widget").total_quantity == 8


def test_results_keep_first_seen_order(reconciler):
    out = _buy(
        reconciler,
        [StockItem("Bolt", 1, 1), StockItem("Nut", 1, 1), StockItem("bolt", 1, 1)],
    )

    assert [p.key for p in out] == ["bolt", "nut"]


@pytest.mark.parametrize(
    "first, second",
    [
        ((10, 5.0), (5, 8.0)),
        ((0.3, 1.1), (7, 0.07)),
        ((1, 0.0), (3, 12.5)),
        ((1234.5, 9.99), (0.001, 1000.0)),
    ],
)
def test_average_does_not_depend_on_purchase_order(first, second):
    forward, backward = InMemoryProductStore(), InMemoryProductStore()

    for q, p in (first, second):
        _buy(StockReconciler(forward), [StockItem("Widget", q, p)])
    for q, p in (second, first):
        _buy(StockReconciler(backward), [StockItem("Widget", q, p)])

    a = forward.get_product("widget")
    b = backward.get_product("widget")
    assert a.total_quantity == pytest.approx(b.total_quantity, abs=1e-9)
    assert a.average_unit_price == pytest.approx(b.average_unit_price, abs=1e-9)


@pytest.mark.parametrize(
    "batch, expected",
    [
        (
            [StockItem("Bolt", 2, 1), StockItem("Nut", 3, 1), StockItem(" BOLT", 5, 1)],
            {"bolt": 7, "nut": 3},
        ),
        (
            [StockItem("Washer", 0.5, 1), StockItem("washer ", 0.25, 1), StockItem("Nut", 1, 1)],
            {"washer": 0.75, "nut": 1},
        ),
    ],
)
def test_purchase_batch_adds_grouped_quantities(store, reconciler, batch, expected):
    _buy(reconciler, [StockItem("Nut", 10, 1)])
    before = {k: p.total_quantity for k, p in store.snapshot().items()}

    out = _buy(reconciler, batch)

    after = {k: p.total_quantity for k, p in store.snapshot().items()}
    for key, added in expected.items():
        assert after[key] - before.get(key, 0) == pytest.approx(added)
    assert {p.key: p.total_quantity for p in out} == {k: after[k] for k in expected}


def test_invalid_batch_leaves_ledger_untouched(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 10, 5.0)])
    before = store.snapshot()

    with pytest.raises(InvalidInvoiceItem):
        _buy(reconciler, [StockItem("Widget", 3, 5.0), StockItem("Gadget", 0, 1.0)])

    assert store.snapshot() == before
    assert "gadget" not in store


# ---------- PURCHASE REVERSAL ----------
def test_reverse_purchase_keeps_average(reconciler, store):
    _buy(reconciler, [StockItem("Widget A", 10, 5.0)])
    _buy(reconciler, [StockItem("Widget A", 5, 8.0)])

    out = reconciler.reverse_purchase([StockItem("Widget A", 10, 5.0)])

    p = store.get_product("widget a")
    assert p.total_quantity == 5
    assert p.average_unit_price == pytest.approx(6.0)
    assert out == [p]


def test_reverse_purchase_to_zero_deletes_product(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 10, 5.0)])

    out = reconciler.reverse_purchase([StockItem("widget", 10, 5.0)])

    assert out == []
    assert "widget" not in store


def test_reverse_purchase_floors_and_deletes(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 3, 5.0)])

    reconciler.reverse_purchase([StockItem("Widget", 7, 5.0)])

    assert "widget" not in store


def test_reverse_purchase_unknown_product_is_noop(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 3, 5.0)])
    before = store.snapshot()

    out = reconciler.reverse_purchase([StockItem("Gadget", 1, 1.0)])

    assert out == []
    assert store.snapshot() == before


def test_reverse_purchase_validates_before_writing(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 3, 5.0)])
    before = store.snapshot()

    with pytest.raises(InvalidInvoiceItem):
        reconciler.reverse_purchase([StockItem("Widget", 1, 5.0), StockItem("Widget", -1, 5.0)])

    assert store.snapshot() == before


# ---------- SALES ----------
def test_sale_decreases_and_reversal_restores(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 15, 6.0)])

    reconciler.apply_sale([StockItem("Widget", 3, 9.0)])
    assert store.get_product("widget").total_quantity == 12

    reconciler.reverse_sale([StockItem("Widget", 3, 9.0)])
    p = store.get_product("widget")
    assert p.total_quantity == 15
    assert p.average_unit_price == pytest.approx(6.0)


def test_sale_beyond_stock_floors_at_zero_and_keeps_product(reconciler, store, caplog):
    _buy(reconciler, [StockItem("Widget", 2, 6.0)])

    with caplog.at_level("WARNING"):
        out = reconciler.apply_sale([StockItem("Widget", 5, 9.0)])

    assert out[0].total_quantity == 0
    assert "widget" in store
    assert "floored at 0" in caplog.text


def test_sale_of_untracked_item_is_ignored(reconciler, store):
    out = reconciler.apply_sale([StockItem("Gadget", 1, 9.0)])

    assert out == []
    assert len(store) == 0


def test_reverse_sale_never_creates_product(reconciler, store):
    out = reconciler.reverse_sale([StockItem("Gadget", 1, 9.0)])

    assert out == []
    assert "gadget" not in store


def test_sale_does_not_touch_purchase_snapshot(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 10, 5.0)])
    before = store.get_product("widget")

    reconciler.apply_sale([StockItem("Widget", 4, 99.0, tax_rate=50)])

    after = store.get_product("widget")
    assert after.average_unit_price == before.average_unit_price
    assert after.last_purchase_price == before.last_purchase_price
    assert after.tax_rate == before.tax_rate
    assert after.supplier_name == before.supplier_name


def test_invalid_sale_batch_is_rejected_whole(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 10, 5.0)])
    before = store.snapshot()

    with pytest.raises(InvalidInvoiceItem):
        reconciler.apply_sale([StockItem("Widget", 1, 5.0), StockItem("", 1, 5.0)])

    assert store.snapshot() == before


# ---------- VERSIONING ----------
def test_store_bumps_version_on_every_write(reconciler, store):
    _buy(reconciler, [StockItem("Widget", 1, 1)])
    assert store.get_product("widget").version == 1

    reconciler.apply_sale([StockItem("Widget", 1, 1)])
    assert store.get_product("widget").version == 2


def test_stale_record_raises_conflict():
    store = InMemoryProductStore([ProductRecord("Widget", 5, 2.0, 2.0)])
    stale = store.get_product("widget")

    store.put_product(stale)  # someone else wins

    with pytest.raises(ConcurrentUpdateConflict) as exc:
        store.put_product(stale)
    assert exc.value.key == "widget"


def test_conflict_surfaces_from_reconciler():
    class RacingStore(InMemoryProductStore):
        def get_product(self, key):
            rec = super().get_product(key)
            if rec is not None:
                # concurrent writer between read and write
                super().put_product(rec)
            return rec

    store = RacingStore([ProductRecord("Widget", 5, 2.0, 2.0)])

    with pytest.raises(ConcurrentUpdateConflict):
        StockReconciler(store).apply_sale([StockItem("Widget", 1, 2.0)])


def test_reversing_an_oversell_restores_the_full_sold_quantity(reconciler, store):
    # the floor drops the missing units, the reversal adds back all of them
    _buy(reconciler, [StockItem("Widget", 2, 6.0)])

    reconciler.apply_sale([StockItem("Widget", 5, 9.0)])
    reconciler.reverse_sale([StockItem("Widget", 5, 9.0)])

    assert store.get_product("widget").total_quantity == 5
