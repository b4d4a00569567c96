from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from conftest import balance
from stockledger.core.config import settings
from stockledger.models import StockBatch
from stockledger.services.batch_service import BatchService
from stockledger.services.errors import ConsistencyConflictError, InternalError
from stockledger.services.reconciliation_service import ReconciliationService


def ordered(seed):
    return {
        "item_id": seed.item.id,
        "quantity": 10,
        "cost_per_unit_usd": Decimal("20"),
        "freight_cost_usd": Decimal("50"),
        "status": "Ordered",
        "location_id": seed.l1.id,
    }


def test_conflict_is_retried_from_scratch(db, seed, monkeypatch):
    original = ReconciliationService.reconcile
    calls = {"count": 0}

    def flaky(self, item):
        calls["count"] += 1
        if calls["count"] == 1:
            raise StaleDataError("item row changed underneath us")
        return original(self, item)

    monkeypatch.setattr(ReconciliationService, "reconcile", flaky)

    outcome = BatchService(db).create(ordered(seed))
    db.commit()

    assert calls["count"] == 2
    assert outcome.debited_amount == Decimal("250.00")
    # the first attempt's debit was rolled back
    assert balance(db, seed.company) == Decimal("750.00")
    assert db.query(StockBatch).count() == 1


def test_explicit_conflict_is_retried(db, seed, monkeypatch):
    original = ReconciliationService.reconcile
    calls = {"count": 0}

    def flaky(self, item):
        calls["count"] += 1
        if calls["count"] < settings.CONFLICT_RETRY_ATTEMPTS:
            raise ConsistencyConflictError("consolidation key taken")
        return original(self, item)

    monkeypatch.setattr(ReconciliationService, "reconcile", flaky)

    BatchService(db).create(ordered(seed))
    db.commit()
    assert db.query(StockBatch).count() == 1


def test_exhausted_retries_surface_as_internal_error(db, seed, monkeypatch):
    def always_stale(self, item):
        raise StaleDataError("always")

    monkeypatch.setattr(ReconciliationService, "reconcile", always_stale)

    with pytest.raises(InternalError):
        BatchService(db).create(ordered(seed))

    assert balance(db, seed.company) == Decimal("1000.00")
    assert db.query(StockBatch).count() == 0
