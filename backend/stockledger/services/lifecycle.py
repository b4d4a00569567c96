"""
Batch status state machine

Side effects of a status change are looked up in TRANSITIONS by
(from_status, to_status); creation uses None as the from-status. Each effect
receives a TransitionContext and may move cash or stamp fields into the
pending change set before the controller writes it to the batch.
"""
from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime
from decimal import Decimal
import logging

from stockledger.models import StockBatch, StockStatus, CASH_COMMITTING_STATUSES
from stockledger.services.cash_flow_service import CashFlowService, lot_cost, to_money, ZERO

logger = logging.getLogger(__name__)

TO_ORDER = StockStatus.TO_ORDER.value
ORDERED = StockStatus.ORDERED.value
ARRIVED = StockStatus.ARRIVED.value
SOLD = StockStatus.SOLD.value

PRICING_FIELDS = ("quantity", "cost_per_unit_usd", "freight_cost_usd")


class TransitionContext:
    """State shared by the effects of one batch mutation"""

    def __init__(
        self,
        batch: StockBatch,
        company_id: int,
        changes: Dict,
        cash: CashFlowService,
        creating: bool = False,
        now: Optional[datetime] = None
    ):
        self.batch = batch
        self.company_id = company_id
        self.changes = changes
        self.cash = cash
        self.creating = creating
        self.now = now or datetime.utcnow()
        self.debited = ZERO
        self.refunded = ZERO
        self.committed_now = False
        self.applied: List[str] = []

    def value(self, field: str):
        """Incoming value when the request carries one, else the stored value"""
        if field in self.changes and self.changes[field] is not None:
            return self.changes[field]
        return getattr(self.batch, field)

    def incoming_lot_cost(self) -> Decimal:
        return lot_cost(
            self.value("cost_per_unit_usd"),
            self.value("quantity"),
            self.value("freight_cost_usd"),
        )

    def stored_lot_cost(self) -> Decimal:
        return lot_cost(self.batch.cost_per_unit_usd, self.batch.quantity, self.batch.freight_cost_usd)


# ==================== EFFECTS ====================

def commit_cash(ctx: TransitionContext) -> None:
    """Debit the lot cost when the batch has nothing reserved yet"""
    if to_money(ctx.batch.committed_cost_usd) > ZERO:
        return
    ctx.debited += ctx.cash.commit_batch(ctx.batch, ctx.company_id, ctx.incoming_lot_cost())
    ctx.committed_now = True


def release_cash(ctx: TransitionContext) -> None:
    ctx.refunded += ctx.cash.release_batch(ctx.batch, ctx.company_id)


def realize_cash(ctx: TransitionContext) -> None:
    ctx.cash.realize_batch(ctx.batch)


def stamp_arrival(ctx: TransitionContext) -> None:
    """Arrival time is the time of the transition, whatever the caller sent"""
    ctx.changes["arrived_date"] = ctx.now


def stamp_arrival_if_missing(ctx: TransitionContext) -> None:
    if not ctx.changes.get("arrived_date"):
        ctx.changes["arrived_date"] = ctx.now


Effect = Callable[[TransitionContext], None]

TRANSITIONS: Dict[Tuple[Optional[str], str], Tuple[Effect, ...]] = {
    # creation
    (None, TO_ORDER): (),
    (None, ORDERED): (commit_cash,),
    (None, ARRIVED): (stamp_arrival_if_missing,),
    (None, SOLD): (),

    (TO_ORDER, ORDERED): (commit_cash,),
    (TO_ORDER, ARRIVED): (stamp_arrival,),
    (TO_ORDER, SOLD): (),

    (ORDERED, TO_ORDER): (release_cash,),
    (ORDERED, ARRIVED): (stamp_arrival,),
    (ORDERED, SOLD): (realize_cash,),

    (ARRIVED, TO_ORDER): (release_cash,),
    (ARRIVED, ORDERED): (commit_cash,),
    (ARRIVED, SOLD): (realize_cash,),

    (SOLD, TO_ORDER): (),
    (SOLD, ORDERED): (commit_cash,),
    (SOLD, ARRIVED): (stamp_arrival,),
}


def effects_for(from_status: Optional[str], to_status: str) -> Tuple[Effect, ...]:
    if from_status == to_status:
        return ()
    return TRANSITIONS.get((from_status, to_status), ())


def _pricing_changed(ctx: TransitionContext) -> bool:
    for field in PRICING_FIELDS:
        if field in ctx.changes and ctx.changes[field] is not None:
            if ctx.changes[field] != getattr(ctx.batch, field):
                return True
    return False


def _holds_commitment(ctx: TransitionContext, to_status: str) -> bool:
    # an Ordered batch is committed even when its lot cost was zero;
    # an Arrived one only if it still carries cash from its Ordered days
    if to_status == ORDERED:
        return True
    return to_status in CASH_COMMITTING_STATUSES and to_money(ctx.batch.committed_cost_usd) > ZERO


def apply_transition(ctx: TransitionContext, from_status: Optional[str], to_status: str) -> TransitionContext:
    """
    Run the effects registered for the transition, then re-price an
    outstanding commitment if quantity, cost or freight are being edited on a
    batch that stays committed.
    """
    for effect in effects_for(from_status, to_status):
        effect(ctx)
        ctx.applied.append(effect.__name__)

    if (
        not ctx.creating
        and not ctx.committed_now
        and _holds_commitment(ctx, to_status)
        and _pricing_changed(ctx)
    ):
        delta = ctx.cash.reprice_batch(
            ctx.batch, ctx.company_id, ctx.stored_lot_cost(), ctx.incoming_lot_cost()
        )
        if delta > ZERO:
            ctx.debited += delta
        elif delta < ZERO:
            ctx.refunded += -delta
        ctx.applied.append("reprice_commitment")

    if ctx.applied:
        logger.debug(
            f"Batch {ctx.batch.id} {from_status} -> {to_status}: {', '.join(ctx.applied)}"
        )
    return ctx
