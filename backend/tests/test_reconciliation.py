from decimal import Decimal

import pytest

from conftest import refreshed
from stockledger.models import StockBatch
from stockledger.services.batch_service import BatchService
from stockledger.services.errors import NotFoundError
from stockledger.services.reconciliation_service import ReconciliationService


def add_batch(db, item, quantity, status="ToOrder", location_id=None, cost="5"):
    batch = StockBatch(
        item_id=item.id,
        quantity=quantity,
        original_quantity=quantity,
        status=status,
        cost_per_unit_usd=Decimal(cost),
        location_id=location_id,
    )
    db.add(batch)
    db.flush()
    return batch


def test_quantity_is_sum_of_live_batches(db, seed):
    add_batch(db, seed.item, 4, "ToOrder")
    add_batch(db, seed.item, 6, "Arrived")
    add_batch(db, seed.item, 7, "Sold")

    result = ReconciliationService(db).reconcile(seed.item.id)

    assert result.changed is True
    assert result.new_quantity == 10
    assert seed.item.quantity_in_stock == 10
    assert seed.item.status == "ToOrder"


def test_reconcile_is_idempotent(db, seed):
    add_batch(db, seed.item, 3, "Arrived", seed.l1.id)
    service = ReconciliationService(db)

    first = service.reconcile(seed.item)
    version = seed.item.version
    second = service.reconcile(seed.item)

    assert first.changed is True
    assert second.changed is False
    assert seed.item.version == version


def test_zero_stock_marks_item_sold(db, seed):
    add_batch(db, seed.item, 2, "Sold")

    ReconciliationService(db).reconcile(seed.item)

    assert seed.item.quantity_in_stock == 0
    assert seed.item.status == "Sold"


def test_primary_location_follows_most_stock(db, seed):
    add_batch(db, seed.item, 2, "Arrived", seed.l1.id)
    add_batch(db, seed.item, 5, "Arrived", seed.l2.id)
    add_batch(db, seed.item, 9, "Sold", seed.l1.id)

    ReconciliationService(db).reconcile(seed.item)

    assert seed.item.location_id == seed.l2.id


def test_existing_primary_location_is_kept(db, seed):
    seed.item.location_id = seed.l1.id
    add_batch(db, seed.item, 5, "Arrived", seed.l2.id)

    ReconciliationService(db).reconcile(seed.item)

    assert seed.item.location_id == seed.l1.id


def test_legacy_items_are_left_alone(db, seed):
    assert ReconciliationService(db).reconcile(seed.legacy_item) is None
    assert refreshed(db, seed.legacy_item).quantity_in_stock == 8


def test_unknown_item(db, seed):
    with pytest.raises(NotFoundError):
        ReconciliationService(db).reconcile(9999)


def test_reconcile_all_repairs_drift(db, seed):
    add_batch(db, seed.item, 3, "Arrived")
    add_batch(db, seed.foreign_item, 2, "Arrived")
    db.commit()

    results = ReconciliationService(db).reconcile_all()
    db.commit()

    assert {r.item_id for r in results} == {seed.item.id, seed.foreign_item.id}
    assert refreshed(db, seed.item).quantity_in_stock == 3
    assert refreshed(db, seed.foreign_item).quantity_in_stock == 2


def test_every_ledger_operation_keeps_quantity_in_sync(db, seed):
    service = BatchService(db)
    a = service.create({"item_id": seed.item.id, "quantity": 10, "cost_per_unit_usd": Decimal("2"),
                        "status": "Ordered", "location_id": seed.l1.id}).batch
    b = service.create({"item_id": seed.item.id, "quantity": 4, "cost_per_unit_usd": Decimal("3"),
                        "status": "Arrived", "location_id": seed.l2.id}).batch
    service.transfer(a.id, seed.l2.id, 3)
    service.update(b.id, {"quantity": 6})
    service.update(a.id, {"status": "Sold"})
    service.create({"item_id": seed.item.id, "quantity": 2, "cost_per_unit_usd": Decimal("2"),
                    "status": "ToOrder"})
    db.commit()

    live = sum(
        batch.quantity for batch in db.query(StockBatch).filter(StockBatch.item_id == seed.item.id)
        if batch.status != "Sold"
    )
    assert refreshed(db, seed.item).quantity_in_stock == live == 3 + 6 + 2
