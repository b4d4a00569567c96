"""
Transfer Service - moves stock between locations
"""
from typing import Optional
from sqlalchemy.orm import Session
import logging

from stockledger.models import Location, StockBatch
from stockledger.services.cash_flow_service import CashFlowService
from stockledger.services.repositories import StockBatchRepository

logger = logging.getLogger(__name__)


class TransferOutcome:
    def __init__(
        self,
        batch: StockBatch,
        transferred_amount: int,
        new_batch: Optional[StockBatch] = None
    ):
        self.batch = batch
        self.transferred_amount = transferred_amount
        self.new_batch = new_batch

    @property
    def is_split(self) -> bool:
        return self.new_batch is not None

    def to_dict(self) -> dict:
        if self.is_split:
            return {
                "message": f"Transferred {self.transferred_amount} units to a new batch",
                "original_batch_id": self.batch.id,
                "new_batch_id": self.new_batch.id,
                "remaining_in_original": self.batch.quantity,
                "transferred_amount": self.transferred_amount,
            }
        return {
            "message": "Batch relocated",
            "batch_id": self.batch.id,
            "transferred_amount": self.transferred_amount,
        }


class TransferService:
    def __init__(self, db: Session):
        self.db = db
        self.batches = StockBatchRepository(db)
        self.cash = CashFlowService(db)

    def transfer(self, batch: StockBatch, location: Location, quantity: int) -> TransferOutcome:
        """
        Move `quantity` units of a validated batch to `location`.

        The whole batch is relocated in place; a partial quantity is split off
        into a clone carrying its share of the batch's committed cost.
        """
        if quantity == batch.quantity:
            self.batches.relocate_batch(batch, location.id)
            logger.info(f"Relocated batch {batch.id} ({quantity} units) to location {location.id}")
            return TransferOutcome(batch, quantity)

        share = self.cash.split_commitment(batch, quantity)
        new_batch = self.batches.split_batch(batch, quantity, location.id, committed_share=share)

        logger.info(
            f"Split {quantity} units of batch {batch.id} into batch {new_batch.id} "
            f"at location {location.id}; {batch.quantity} remain"
        )
        return TransferOutcome(batch, quantity, new_batch)
