from decimal import Decimal

import pytest

from conftest import balance, refreshed
from stockledger.models import Item, StockBatch
from stockledger.services.batch_service import BatchService
from stockledger.services.errors import InsufficientFundsError, NotFoundError, ValidationFailedError
from stockledger.services.item_service import ItemService


def legacy_payload(seed, **overrides):
    data = {
        "name": "Bolt",
        "company_id": seed.company.id,
        "use_batch_system": False,
        "status": "ToOrder",
        "quantity_in_stock": 10,
        "cost_per_unit_usd": Decimal("3"),
        "freight_cost_usd": Decimal("20"),
    }
    data.update(overrides)
    return data


def test_creating_legacy_item_in_to_order_debits(db, seed):
    item = ItemService(db).create(legacy_payload(seed))
    db.commit()

    assert item.id is not None
    assert balance(db, seed.company) == Decimal("950.00")


def test_legacy_item_leaving_to_order_refunds_stored_cost(db, seed):
    service = ItemService(db)
    item = service.create(legacy_payload(seed))
    db.commit()

    service.update(item.id, {"status": "Arrived"})
    db.commit()
    assert balance(db, seed.company) == Decimal("1000.00")


def test_legacy_item_entering_to_order_uses_incoming_values(db, seed):
    service = ItemService(db)
    service.update(seed.legacy_item.id, {"status": "ToOrder", "quantity_in_stock": 2})
    db.commit()

    # 2 x 10 + 5
    assert balance(db, seed.company) == Decimal("975.00")


def test_legacy_order_without_funds_is_rejected(db, seed):
    with pytest.raises(InsufficientFundsError):
        ItemService(db).create(legacy_payload(seed, quantity_in_stock=1000))
    assert db.query(Item).filter(Item.name == "Bolt").count() == 0


def test_batch_mode_item_never_uses_legacy_path(db, seed):
    service = ItemService(db)
    item = service.create(legacy_payload(seed, use_batch_system=True))
    db.commit()
    service.update(item.id, {"status": "Arrived"})
    service.update(item.id, {"status": "ToOrder"})
    db.commit()

    assert balance(db, seed.company) == Decimal("1000.00")
    assert refreshed(db, item).quantity_in_stock == 0


def test_cannot_switch_to_batches_with_outstanding_legacy_order(db, seed):
    service = ItemService(db)
    item = service.create(legacy_payload(seed))
    db.commit()

    with pytest.raises(ValidationFailedError):
        service.update(item.id, {"use_batch_system": True})
    assert balance(db, seed.company) == Decimal("950.00")


def test_switch_to_batches_carries_stock_over(db, seed):
    service = ItemService(db)
    item = service.update(seed.legacy_item.id, {"use_batch_system": True})
    db.commit()

    batches = db.query(StockBatch).filter(StockBatch.item_id == item.id).all()
    assert len(batches) == 1
    assert batches[0].quantity == 8
    assert batches[0].status == "Arrived"
    assert refreshed(db, item).quantity_in_stock == 8
    assert balance(db, seed.company) == Decimal("1000.00")


def test_cannot_leave_batches_while_batches_exist(db, seed):
    BatchService(db).create({"item_id": seed.item.id, "quantity": 1, "cost_per_unit_usd": Decimal("1")})
    db.commit()

    with pytest.raises(ValidationFailedError):
        ItemService(db).update(seed.item.id, {"use_batch_system": False})


def test_leaving_batches_into_to_order_debits(db, seed):
    service = ItemService(db)
    service.update(seed.item.id, {
        "use_batch_system": False,
        "status": "ToOrder",
        "quantity_in_stock": 5,
    })
    db.commit()

    # 5 x 20, no freight
    assert balance(db, seed.company) == Decimal("900.00")


def test_batch_mode_quantity_is_read_only(db, seed):
    with pytest.raises(ValidationFailedError):
        ItemService(db).update(seed.item.id, {"quantity_in_stock": 4})


def test_cannot_delete_item_with_batches(db, seed):
    BatchService(db).create({"item_id": seed.item.id, "quantity": 1, "cost_per_unit_usd": Decimal("1")})
    db.commit()

    with pytest.raises(ValidationFailedError):
        ItemService(db).delete(seed.item.id)


def test_deleting_legacy_item_in_to_order_refunds(db, seed):
    service = ItemService(db)
    item = service.create(legacy_payload(seed))
    db.commit()

    assert service.delete(item.id) == Decimal("50.00")
    db.commit()
    assert balance(db, seed.company) == Decimal("1000.00")


def test_scoped_service_cannot_create_for_other_company(db, seed):
    with pytest.raises(NotFoundError):
        ItemService(db, company_id=seed.company.id).create(
            legacy_payload(seed, company_id=seed.other_company.id)
        )


def test_reconcile_rejects_legacy_items(db, seed):
    with pytest.raises(ValidationFailedError):
        ItemService(db).reconcile(seed.legacy_item.id)
