"""
Consolidation Service - merges a new lot into an equivalent existing batch
"""
from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session
import logging

from stockledger.models import StockBatch, StockStatus
from stockledger.services.cash_flow_service import to_money
from stockledger.services.repositories import StockBatchRepository

logger = logging.getLogger(__name__)


class ConsolidationService:
    def __init__(self, db: Session):
        self.db = db
        self.batches = StockBatchRepository(db)

    def find_match(
        self,
        item_id: int,
        location_id: Optional[int],
        status: str,
        cost_per_unit_usd: Decimal,
        freight_cost_usd: Decimal
    ) -> Optional[StockBatch]:
        """
        Existing batch with the same (location, status, cost, freight).
        Sold batches never match; each sale stays its own row.
        """
        if status == StockStatus.SOLD.value:
            return None
        return self.batches.find_equivalent(
            item_id, location_id, status, to_money(cost_per_unit_usd), to_money(freight_cost_usd)
        )

    def merge_into(self, batch: StockBatch, quantity: int, when: datetime = None) -> StockBatch:
        when = when or datetime.utcnow()
        note = f"Consolidated {quantity} units on {when.strftime('%Y-%m-%d')}"

        batch.quantity = batch.quantity + quantity
        batch.original_quantity = batch.original_quantity + quantity
        batch.notes = f"{batch.notes}\n{note}" if batch.notes else note
        batch.updated_at = when
        self.db.flush()

        logger.info(f"Consolidated {quantity} units into batch {batch.id} (now {batch.quantity})")
        return batch
