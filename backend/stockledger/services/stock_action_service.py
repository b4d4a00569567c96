"""
Stock Action Service - add, sell and remove stock for an item

Batch-mode items are handled through their batches, oldest first; legacy
items adjust quantity_in_stock directly.
"""
from typing import List, Optional
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from stockledger.models import Item, StockStatus
from stockledger.services.audit_service import AuditService, AuditAction
from stockledger.services.batch_service import BatchService
from stockledger.services.cash_flow_service import CashFlowService, to_money, usd_to_srd, ZERO
from stockledger.services.errors import ValidationFailedError
from stockledger.services.lifecycle import TransitionContext, apply_transition
from stockledger.services.reconciliation_service import ReconciliationService
from stockledger.services.repositories import StockBatchRepository
from stockledger.services.transaction import run_atomic
from stockledger.services.validation_service import ValidationService

logger = logging.getLogger(__name__)

SOLD = StockStatus.SOLD.value


class StockActionResult:
    def __init__(
        self,
        message: str,
        item: Item,
        quantity: int,
        affected_batch_ids: List[int] = None,
        revenue_srd: Optional[Decimal] = None,
        profit_srd: Optional[Decimal] = None,
        refunded_usd: Optional[Decimal] = None
    ):
        self.message = message
        self.item_id = item.id
        self.quantity = quantity
        self.remaining_stock = item.quantity_in_stock
        self.affected_batch_ids = affected_batch_ids or []
        self.revenue_srd = revenue_srd
        self.profit_srd = profit_srd
        self.refunded_usd = refunded_usd

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "remaining_stock": self.remaining_stock,
            "affected_batch_ids": self.affected_batch_ids,
            "revenue_srd": self.revenue_srd,
            "profit_srd": self.profit_srd,
            "refunded_usd": self.refunded_usd,
        }


class StockActionService:
    def __init__(self, db: Session, company_id: int = None, actor=None):
        self.db = db
        self.company_id = company_id
        self.actor = actor
        self.batches = StockBatchRepository(db)
        self.validator = ValidationService(db, company_id)
        self.cash = CashFlowService(db)
        self.reconciliation = ReconciliationService(db)
        self.batch_service = BatchService(db, company_id, actor)
        self.audit = AuditService(db)

    def _check_available(self, item: Item, quantity: int) -> None:
        if item.use_batch_system:
            available = self.batches.sum_live_quantity(item.id)
        else:
            available = item.quantity_in_stock
        if quantity > available:
            raise ValidationFailedError(
                f"insufficient stock: {available} available, {quantity} requested"
            )

    def _consume_fifo(self, item: Item, quantity: int, preferred_location_id: int = None):
        """Yields (batch, units taken from it) oldest first until `quantity` is covered"""
        remaining = quantity
        for batch in self.batches.live_batches_fifo(item.id, preferred_location_id):
            if remaining <= 0:
                break
            take = min(batch.quantity, remaining)
            remaining -= take
            yield batch, take

    def _legacy_decrement(self, item: Item, quantity: int) -> None:
        item.quantity_in_stock = item.quantity_in_stock - quantity
        if item.quantity_in_stock == 0:
            item.status = SOLD
        self.db.flush()

    # ==================== ADD ====================

    def add_stock(self, item_id: int, quantity: int, reason: str = None) -> StockActionResult:
        return run_atomic(self.db, lambda: self._add_stock(item_id, quantity, reason), "add stock")

    def _add_stock(self, item_id: int, quantity: int, reason: Optional[str]) -> StockActionResult:
        if quantity <= 0:
            raise ValidationFailedError("quantity must be greater than zero")
        item = self.validator.require_item(item_id, for_update=True)
        affected = []

        if item.use_batch_system:
            outcome = self.batch_service.apply_create({
                "item_id": item.id,
                "quantity": quantity,
                "status": StockStatus.ARRIVED.value,
                "cost_per_unit_usd": item.cost_per_unit_usd,
                "freight_cost_usd": ZERO,
                "location_id": item.location_id,
                "notes": reason or "Stock added",
            })
            affected.append(outcome.batch.id)
        else:
            item.quantity_in_stock = item.quantity_in_stock + quantity
            if item.status == SOLD:
                item.status = StockStatus.ARRIVED.value
            self.db.flush()

        self.audit.log(
            action=AuditAction.STOCK_ADDED,
            resource_type="Item",
            resource_id=item.id,
            description=f"Added {quantity} units" + (f": {reason}" if reason else ""),
            new_values={"quantity_in_stock": item.quantity_in_stock},
            actor=self.actor,
            company_id=item.company_id
        )
        return StockActionResult(f"Added {quantity} units", item, quantity, affected)

    # ==================== SELL ====================

    def sell_stock(
        self,
        item_id: int,
        quantity: int,
        selling_price_srd: Decimal = None,
        location_id: int = None
    ) -> StockActionResult:
        return run_atomic(
            self.db,
            lambda: self._sell_stock(item_id, quantity, selling_price_srd, location_id),
            "sell stock"
        )

    def _sell_stock(self, item_id, quantity, selling_price_srd, location_id) -> StockActionResult:
        if quantity <= 0:
            raise ValidationFailedError("quantity must be greater than zero")
        item = self.validator.require_item(item_id, for_update=True)
        self._check_available(item, quantity)

        price = to_money(selling_price_srd if selling_price_srd is not None else item.selling_price_srd)
        cost_usd = ZERO
        affected = []

        if item.use_batch_system:
            for batch, take in list(self._consume_fifo(item, quantity, location_id)):
                cost_usd += to_money(batch.cost_per_unit_usd) * take
                if take == batch.quantity:
                    ctx = TransitionContext(batch, item.company_id, {"status": SOLD}, self.cash)
                    apply_transition(ctx, batch.status, SOLD)
                    batch.status = SOLD
                    sold = batch
                else:
                    share = self.cash.split_commitment(batch, take)
                    sold = self.batches.split_batch(
                        batch, take, batch.location_id, status=SOLD, committed_share=share
                    )
                    self.cash.realize_batch(sold)
                sold.notes = f"{sold.notes}\nSold {take} units" if sold.notes else f"Sold {take} units"
                affected.append(sold.id)
            self.db.flush()
            self.reconciliation.reconcile(item)
        else:
            cost_usd = to_money(item.cost_per_unit_usd) * quantity
            self._legacy_decrement(item, quantity)

        revenue = to_money(price * quantity)
        profit = revenue - usd_to_srd(cost_usd)
        self.cash.credit_srd(item.company_id, revenue, reason=f"sale of {quantity} x item {item.id}")

        self.audit.log(
            action=AuditAction.STOCK_SOLD,
            resource_type="Item",
            resource_id=item.id,
            description=f"Sold {quantity} units for SRD {revenue}",
            new_values={
                "quantity_in_stock": item.quantity_in_stock,
                "revenue_srd": revenue,
                "profit_srd": profit,
                "batch_ids": affected,
            },
            actor=self.actor,
            company_id=item.company_id
        )
        logger.info(f"Sold {quantity} units of item {item.id}: revenue SRD {revenue}, profit SRD {profit}")
        return StockActionResult(f"Sold {quantity} units", item, quantity, affected, revenue, profit)

    # ==================== REMOVE ====================

    def remove_stock(self, item_id: int, quantity: int, reason: str = None) -> StockActionResult:
        return run_atomic(self.db, lambda: self._remove_stock(item_id, quantity, reason), "remove stock")

    def _remove_stock(self, item_id: int, quantity: int, reason: Optional[str]) -> StockActionResult:
        if quantity <= 0:
            raise ValidationFailedError("quantity must be greater than zero")
        item = self.validator.require_item(item_id, for_update=True)
        self._check_available(item, quantity)
        affected = []
        refunded = ZERO

        if item.use_batch_system:
            for batch, take in list(self._consume_fifo(item, quantity)):
                affected.append(batch.id)
                # removed units take their share of the commitment back to the balance
                share = self.cash.split_commitment(batch, take)
                refunded += self.cash.credit_usd(
                    item.company_id, share, reason=f"batch {batch.id} removed {take} units"
                )
                if take == batch.quantity:
                    self.batches.delete(batch)
                else:
                    batch.committed_cost_usd = to_money(batch.committed_cost_usd) - share
                    batch.quantity = batch.quantity - take
            self.db.flush()
            self.reconciliation.reconcile(item)
        else:
            self._legacy_decrement(item, quantity)

        self.audit.log(
            action=AuditAction.STOCK_REMOVED,
            resource_type="Item",
            resource_id=item.id,
            description=f"Removed {quantity} units" + (f": {reason}" if reason else ""),
            new_values={
                "quantity_in_stock": item.quantity_in_stock,
                "batch_ids": affected,
                "refunded_usd": refunded,
            },
            actor=self.actor,
            company_id=item.company_id
        )
        return StockActionResult(
            f"Removed {quantity} units", item, quantity, affected, refunded_usd=refunded
        )
