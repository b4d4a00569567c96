from decimal import Decimal

import pytest

from conftest import balance, refreshed
from stockledger.models import StockBatch
from stockledger.services.batch_service import BatchService
from stockledger.services.errors import NotFoundError, ValidationFailedError


@pytest.fixture
def ordered(db, seed):
    outcome = BatchService(db).create({
        "item_id": seed.item.id,
        "quantity": 10,
        "cost_per_unit_usd": Decimal("20"),
        "freight_cost_usd": Decimal("50"),
        "status": "Ordered",
        "location_id": seed.l1.id,
        "order_number": "PO-1",
        "notes": "first order",
    })
    db.commit()
    return outcome.batch


def test_partial_transfer_splits_batch(db, seed, ordered):
    outcome = BatchService(db).transfer(ordered.id, seed.l2.id, 4)
    db.commit()

    assert outcome.is_split
    result = outcome.to_dict()
    assert result["original_batch_id"] == ordered.id
    assert result["remaining_in_original"] == 6
    assert result["transferred_amount"] == 4

    source = refreshed(db, ordered)
    new_batch = db.get(StockBatch, result["new_batch_id"])
    assert source.quantity == 6
    assert source.location_id == seed.l1.id
    assert new_batch.quantity == 4
    assert new_batch.original_quantity == 4
    assert new_batch.location_id == seed.l2.id
    assert new_batch.status == source.status
    assert new_batch.cost_per_unit_usd == source.cost_per_unit_usd
    assert new_batch.freight_cost_usd == source.freight_cost_usd
    assert new_batch.order_number == "PO-1"
    assert new_batch.notes == "first order"
    assert refreshed(db, seed.item).quantity_in_stock == 10


def test_transfer_moves_no_cash(db, seed, ordered):
    service = BatchService(db)
    outcome = service.transfer(ordered.id, seed.l2.id, 4)
    db.commit()
    assert balance(db, seed.company) == Decimal("750.00")

    # the commitment travels with the units and is refunded in full
    refunded = service.delete(outcome.new_batch.id) + service.delete(ordered.id)
    db.commit()
    assert refunded == Decimal("250.00")
    assert balance(db, seed.company) == Decimal("1000.00")


def test_full_transfer_relocates_in_place(db, seed, ordered):
    outcome = BatchService(db).transfer(ordered.id, seed.l2.id)
    db.commit()

    assert not outcome.is_split
    assert outcome.to_dict() == {
        "message": "Batch relocated",
        "batch_id": ordered.id,
        "transferred_amount": 10,
    }
    assert db.query(StockBatch).count() == 1
    assert refreshed(db, ordered).location_id == seed.l2.id
    assert refreshed(db, ordered).quantity == 10


@pytest.mark.parametrize("quantity", [0, -1, 11])
def test_transfer_quantity_out_of_range(db, seed, ordered, quantity):
    with pytest.raises(ValidationFailedError):
        BatchService(db).transfer(ordered.id, seed.l2.id, quantity)
    assert refreshed(db, ordered).quantity == 10


def test_transfer_to_missing_location(db, seed, ordered):
    with pytest.raises(NotFoundError):
        BatchService(db).transfer(ordered.id, 9999, 2)


def test_transfer_to_other_company_location(db, seed, ordered):
    with pytest.raises(ValidationFailedError) as excinfo:
        BatchService(db).transfer(ordered.id, seed.foreign_location.id, 2)
    assert "different company" in excinfo.value.errors[0]
    assert db.query(StockBatch).count() == 1


def test_transfer_to_same_location_rejected(db, seed, ordered):
    with pytest.raises(ValidationFailedError):
        BatchService(db).transfer(ordered.id, seed.l1.id, 2)
