from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from conftest import balance
from stockledger.models import Company, StockBatch
from stockledger.services.cash_flow_service import CashFlowService, lot_cost, usd_to_srd
from stockledger.services.errors import InsufficientFundsError, NotFoundError
from stockledger.services.lifecycle import (
    TransitionContext, apply_transition, effects_for,
    commit_cash, release_cash, realize_cash, stamp_arrival
)


def test_lot_cost_counts_freight_once():
    assert lot_cost(Decimal("20"), 10, Decimal("50")) == Decimal("250.00")
    assert lot_cost(Decimal("0.333"), 3, None) == Decimal("0.99")


def test_usd_to_srd_uses_fixed_rate():
    assert usd_to_srd(Decimal("10")) == Decimal("55.00")


def test_debit_and_credit(db, seed):
    cash = CashFlowService(db)
    cash.debit_usd(seed.company.id, Decimal("300"))
    cash.credit_usd(seed.company.id, Decimal("100"))
    cash.credit_srd(seed.company.id, Decimal("42.50"))
    db.commit()

    company = db.get(Company, seed.company.id)
    assert company.cash_balance_usd == Decimal("800.00")
    assert company.cash_balance_srd == Decimal("42.50")


def test_debit_beyond_balance_is_rejected(db, seed):
    cash = CashFlowService(db)
    with pytest.raises(InsufficientFundsError) as excinfo:
        cash.debit_usd(seed.company.id, Decimal("1000.01"))

    assert excinfo.value.to_dict() == {
        "detail": "Insufficient funds",
        "required": "1000.01",
        "available": "1000.00",
        "currency": "USD",
    }
    assert balance(db, seed.company) == Decimal("1000.00")


def test_unknown_company(db, seed):
    with pytest.raises(NotFoundError):
        CashFlowService(db).debit_usd(9999, Decimal("1"))


def test_concurrent_balance_write_is_detected(db, seed, session_factory):
    other = session_factory()
    try:
        mine = db.get(Company, seed.company.id)
        theirs = other.get(Company, seed.company.id)

        theirs.cash_balance_usd = theirs.cash_balance_usd - Decimal("100")
        other.commit()

        mine.cash_balance_usd = mine.cash_balance_usd - Decimal("100")
        with pytest.raises(StaleDataError):
            db.flush()
        db.rollback()
    finally:
        other.close()

    assert balance(db, seed.company) == Decimal("900.00")


# ==================== TRANSITION TABLE ====================

def make_context(db, seed, status, committed="0", quantity=10, changes=None):
    batch = StockBatch(
        item_id=seed.item.id,
        quantity=quantity,
        original_quantity=quantity,
        status=status,
        cost_per_unit_usd=Decimal("20.00"),
        freight_cost_usd=Decimal("50.00"),
        committed_cost_usd=Decimal(committed),
    )
    db.add(batch)
    db.flush()
    return TransitionContext(batch, seed.company.id, changes or {}, CashFlowService(db))


def test_table_entries():
    assert effects_for("ToOrder", "Ordered") == (commit_cash,)
    assert effects_for("Ordered", "ToOrder") == (release_cash,)
    assert effects_for("Arrived", "Sold") == (realize_cash,)
    assert effects_for("Ordered", "Arrived") == (stamp_arrival,)
    assert effects_for("Ordered", "Ordered") == ()
    assert effects_for(None, "ToOrder") == ()


def test_commit_cash_debits_once(db, seed):
    ctx = make_context(db, seed, "ToOrder")
    commit_cash(ctx)
    commit_cash(ctx)

    assert ctx.debited == Decimal("250.00")
    assert ctx.batch.committed_cost_usd == Decimal("250.00")
    assert balance(db, seed.company) == Decimal("750.00")


def test_release_cash_refunds_what_was_committed(db, seed):
    ctx = make_context(db, seed, "Ordered", committed="120")
    release_cash(ctx)

    assert ctx.refunded == Decimal("120.00")
    assert ctx.batch.committed_cost_usd == Decimal("0.00")
    assert balance(db, seed.company) == Decimal("1120.00")


def test_realize_cash_moves_no_money(db, seed):
    ctx = make_context(db, seed, "Arrived", committed="250")
    realize_cash(ctx)

    assert ctx.batch.committed_cost_usd == Decimal("0.00")
    assert balance(db, seed.company) == Decimal("1000.00")


def test_stamp_arrival_overrides_request(db, seed):
    ctx = make_context(db, seed, "Ordered", changes={"arrived_date": "ignored"})
    stamp_arrival(ctx)
    assert ctx.changes["arrived_date"] == ctx.now


def test_arrived_back_to_ordered_does_not_debit_again(db, seed):
    ctx = make_context(db, seed, "Arrived", committed="250", changes={"status": "Ordered"})
    apply_transition(ctx, "Arrived", "Ordered")

    assert ctx.debited == Decimal("0.00")
    assert balance(db, seed.company) == Decimal("1000.00")


def test_unchanged_status_with_new_price_reprices(db, seed):
    ctx = make_context(
        db, seed, "Ordered", committed="250", changes={"cost_per_unit_usd": Decimal("25")}
    )
    apply_transition(ctx, "Ordered", "Ordered")

    assert ctx.applied == ["reprice_commitment"]
    assert ctx.debited == Decimal("50.00")
    assert ctx.batch.committed_cost_usd == Decimal("300.00")
