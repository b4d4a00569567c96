"""
Batch Service - entry point for every batch mutation

Each operation runs as one atomic unit: validation, consolidation or transfer,
cash movement, the batch write and reconciliation of the owning item.
"""
from typing import Dict, List, Optional, Union
from enum import Enum
from decimal import Decimal
from sqlalchemy.orm import Session
from pydantic import BaseModel
import logging

from stockledger.models import StockBatch, StockStatus, CASH_COMMITTING_STATUSES
from stockledger.services.audit_service import AuditService, AuditAction
from stockledger.services.cash_flow_service import (
    CashFlowService, to_money, batch_commitment_summary, ZERO
)
from stockledger.services.consolidation_service import ConsolidationService
from stockledger.services.lifecycle import TransitionContext, apply_transition
from stockledger.services.reconciliation_service import ReconciliationService
from stockledger.services.repositories import ItemRepository, StockBatchRepository
from stockledger.services.transaction import run_atomic
from stockledger.services.transfer_service import TransferService, TransferOutcome
from stockledger.services.validation_service import ValidationService

logger = logging.getLogger(__name__)

CLONED_FIELDS = (
    "location_id", "assigned_user_id", "order_date", "expected_arrival",
    "arrived_date", "order_number", "notes",
)


def _payload(data: Union[BaseModel, Dict], exclude_unset: bool = False) -> Dict:
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=exclude_unset)
    payload = dict(data)
    if isinstance(payload.get("status"), Enum):
        payload["status"] = payload["status"].value
    return payload


class CreateOutcome:
    def __init__(self, batch: StockBatch, consolidated: bool, debited_amount: Decimal):
        self.batch = batch
        self.consolidated = consolidated
        self.debited_amount = debited_amount


class BatchService:
    def __init__(self, db: Session, company_id: int = None, actor=None):
        self.db = db
        self.company_id = company_id
        self.actor = actor
        self.items = ItemRepository(db)
        self.batches = StockBatchRepository(db)
        self.validator = ValidationService(db, company_id)
        self.cash = CashFlowService(db)
        self.consolidation = ConsolidationService(db)
        self.transfers = TransferService(db)
        self.reconciliation = ReconciliationService(db)
        self.audit = AuditService(db)

    # ==================== READS ====================

    def get_by_id(self, batch_id: int) -> StockBatch:
        return self.validator.require_batch(batch_id)

    def list(self, item_id: int = None, location_id: int = None, status: str = None) -> List[StockBatch]:
        return self.batches.list(self.company_id, item_id, location_id, status)

    # ==================== CREATE ====================

    def create(self, data: Union[BaseModel, Dict]) -> CreateOutcome:
        payload = _payload(data)
        return run_atomic(self.db, lambda: self.apply_create(dict(payload)), "create batch")

    def apply_create(self, payload: Dict) -> CreateOutcome:
        """CreateBatch inside an enclosing transaction"""
        item = self.validator.validate_batch_create(payload)

        status = payload.get("status") or StockStatus.TO_ORDER.value
        quantity = payload["quantity"]
        cost = to_money(payload["cost_per_unit_usd"])
        freight = to_money(payload.get("freight_cost_usd"))
        location_id = payload.get("location_id")

        match = self.consolidation.find_match(item.id, location_id, status, cost, freight)

        lot = StockBatch(
            item_id=item.id,
            quantity=quantity,
            original_quantity=quantity,
            status=status,
            cost_per_unit_usd=cost,
            freight_cost_usd=freight,
            committed_cost_usd=ZERO,
            **{field: payload.get(field) for field in CLONED_FIELDS}
        )
        changes = {field: payload.get(field) for field in CLONED_FIELDS}
        ctx = apply_transition(
            TransitionContext(lot, item.company_id, changes, self.cash, creating=True),
            None, status
        )

        if match is not None:
            self.consolidation.merge_into(match, quantity, ctx.now)
            match.committed_cost_usd = to_money(match.committed_cost_usd) + to_money(lot.committed_cost_usd)
            batch = match
            consolidated = True
        else:
            lot.arrived_date = ctx.changes.get("arrived_date")
            batch = self.batches.add(lot)
            consolidated = False

        self.reconciliation.reconcile(item)

        self.audit.log(
            action=AuditAction.CONSOLIDATE if consolidated else AuditAction.CREATE,
            resource_type="StockBatch",
            resource_id=batch.id,
            description=(
                f"Added {quantity} units to batch {batch.id}" if consolidated
                else f"Created batch {batch.id} with {quantity} units"
            ),
            new_values=batch_commitment_summary(batch),
            actor=self.actor,
            company_id=item.company_id
        )
        return CreateOutcome(batch, consolidated, ctx.debited)

    # ==================== UPDATE ====================

    def update(self, batch_id: int, data: Union[BaseModel, Dict]) -> StockBatch:
        payload = _payload(data, exclude_unset=True)
        return run_atomic(self.db, lambda: self._update(batch_id, dict(payload)), "update batch")

    def _update(self, batch_id: int, changes: Dict) -> StockBatch:
        batch = self.validator.require_batch(batch_id, for_update=True)
        item = self.items.get_for_update(batch.item_id)
        self.validator.validate_batch_update(batch, changes)

        old_values = batch_commitment_summary(batch)
        old_status = batch.status
        new_status = changes.get("status") or old_status

        ctx = apply_transition(
            TransitionContext(batch, item.company_id, changes, self.cash),
            old_status, new_status
        )

        for key, value in ctx.changes.items():
            if key in ("cost_per_unit_usd", "freight_cost_usd"):
                value = to_money(value)
            setattr(batch, key, value)
        batch.updated_at = ctx.now
        self.db.flush()

        self.reconciliation.reconcile(item)

        self.audit.log(
            action=AuditAction.UPDATE,
            resource_type="StockBatch",
            resource_id=batch.id,
            description=f"Updated batch {batch.id} ({old_status} -> {batch.status})",
            old_values=old_values,
            new_values=batch_commitment_summary(batch),
            actor=self.actor,
            company_id=item.company_id
        )
        return batch

    # ==================== DELETE ====================

    def delete(self, batch_id: int) -> Decimal:
        """Remove a batch; returns the USD refunded (0 when nothing was committed)"""
        return run_atomic(self.db, lambda: self._delete(batch_id), "delete batch")

    def _delete(self, batch_id: int) -> Decimal:
        batch = self.validator.require_batch(batch_id, for_update=True)
        item = self.items.get_for_update(batch.item_id)
        old_values = batch_commitment_summary(batch)

        refunded = ZERO
        if batch.status in CASH_COMMITTING_STATUSES:
            refunded = self.cash.release_batch(batch, item.company_id)

        self.batches.delete(batch)
        self.reconciliation.reconcile(item)

        self.audit.log(
            action=AuditAction.DELETE,
            resource_type="StockBatch",
            resource_id=batch_id,
            description=f"Deleted batch {batch_id}, refunded USD {refunded}",
            old_values=old_values,
            actor=self.actor,
            company_id=item.company_id
        )
        return refunded

    # ==================== TRANSFER ====================

    def transfer(self, batch_id: int, to_location_id: int, quantity: Optional[int] = None) -> TransferOutcome:
        return run_atomic(
            self.db, lambda: self._transfer(batch_id, to_location_id, quantity), "transfer batch"
        )

    def _transfer(self, batch_id: int, to_location_id: int, quantity: Optional[int]) -> TransferOutcome:
        batch = self.validator.require_batch(batch_id, for_update=True)
        item = self.items.get_for_update(batch.item_id)
        location, amount = self.validator.validate_transfer(batch, to_location_id, quantity)
        from_location_id = batch.location_id

        outcome = self.transfers.transfer(batch, location, amount)
        self.reconciliation.reconcile(item)

        self.audit.log(
            action=AuditAction.SPLIT if outcome.is_split else AuditAction.TRANSFER,
            resource_type="StockBatch",
            resource_id=batch.id,
            description=f"Moved {amount} units from location {from_location_id} to {location.id}",
            old_values={"location_id": from_location_id},
            new_values=outcome.to_dict(),
            actor=self.actor,
            company_id=item.company_id
        )
        return outcome
