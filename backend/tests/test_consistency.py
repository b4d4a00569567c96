from decimal import Decimal

from stockledger.models import StockBatch
from stockledger.services.batch_service import BatchService
from stockledger.services.consistency_service import ConsistencyService


def drift(db, seed):
    BatchService(db).create({
        "item_id": seed.item.id,
        "quantity": 6,
        "cost_per_unit_usd": Decimal("1"),
        "status": "Arrived",
        "location_id": seed.l1.id,
    })
    db.commit()
    seed.item.quantity_in_stock = 2
    db.commit()


def test_clean_ledger_is_valid(db, seed):
    report = ConsistencyService(db).check_all(seed.company.id)

    assert report["valid"] is True
    assert [r["item_id"] for r in report["items"]] == [seed.item.id]
    assert report["errors"] == []


def test_mismatch_is_reported(db, seed):
    drift(db, seed)

    report = ConsistencyService(db).check_all(seed.company.id)

    assert report["valid"] is False
    result = report["items"][0]
    assert result["item_quantity"] == 2
    assert result["batch_total"] == 6
    assert result["difference"] == -4
    assert result["fixed"] is False


def test_sold_batches_do_not_count(db, seed):
    BatchService(db).create({
        "item_id": seed.item.id,
        "quantity": 6,
        "cost_per_unit_usd": Decimal("1"),
        "status": "Sold",
    })
    db.commit()

    report = ConsistencyService(db).check_all(seed.company.id)
    assert report["valid"] is True
    assert report["items"][0]["batch_total"] == 0


def test_fix_reconciles(db, seed):
    drift(db, seed)

    report = ConsistencyService(db).check_all(seed.company.id, fix=True)
    db.commit()

    assert report["valid"] is True
    assert report["items"][0]["fixed"] is True
    db.expire_all()
    assert seed.item.quantity_in_stock == 6


def test_cross_company_location_is_an_error(db, seed):
    batch = StockBatch(
        item_id=seed.item.id,
        quantity=0,
        original_quantity=0,
        status="ToOrder",
        location_id=seed.foreign_location.id,
    )
    db.add(batch)
    db.commit()

    report = ConsistencyService(db).check_all()
    assert report["valid"] is False
    assert any(f"Batch {batch.id}" in e for e in report["errors"])


def test_legacy_item_with_batches_is_a_warning(db, seed):
    db.add(StockBatch(item_id=seed.legacy_item.id, quantity=1, original_quantity=1, status="Arrived"))
    db.commit()

    report = ConsistencyService(db).check_all(seed.company.id)
    assert any("Gadget" in w for w in report["warnings"])


def test_command_line_check_on_empty_database():
    import check_consistency

    assert check_consistency.main([]) == 0
