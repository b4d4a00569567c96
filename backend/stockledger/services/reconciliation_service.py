"""
Reconciliation Service - keeps an item's cached quantity equal to its live batches

Live batches are every batch whose status is not Sold. The same rule is used
by the consistency checks so the two never disagree.
"""
from typing import List, Optional, Union
from sqlalchemy.orm import Session
import logging

from stockledger.models import Item, StockStatus
from stockledger.services.errors import NotFoundError
from stockledger.services.repositories import ItemRepository, StockBatchRepository

logger = logging.getLogger(__name__)


class ReconcileResult:
    def __init__(self, item: Item, old_quantity: int, new_quantity: int,
                 old_status: str, changed: bool):
        self.item_id = item.id
        self.old_quantity = old_quantity
        self.new_quantity = new_quantity
        self.old_status = old_status
        self.new_status = item.status
        self.changed = changed

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed": self.changed,
        }


class ReconciliationService:
    def __init__(self, db: Session):
        self.db = db
        self.items = ItemRepository(db)
        self.batches = StockBatchRepository(db)

    def _primary_location(self, item: Item) -> Optional[int]:
        by_location = self.batches.live_quantity_by_location(item.id)
        candidates = [
            (quantity, location_id) for location_id, quantity in by_location.items()
            if location_id is not None and quantity > 0
        ]
        if not candidates:
            return None
        # most units wins, lowest id breaks ties
        candidates.sort(key=lambda c: (-c[0], c[1]))
        return candidates[0][1]

    def reconcile(self, item: Union[Item, int]) -> Optional[ReconcileResult]:
        """
        Recompute quantity_in_stock from live batches.

        No-op (returns None) for items outside the batch system. Writes only
        when something differs, so a second call changes nothing.
        """
        if not isinstance(item, Item):
            item_id = item
            item = self.items.get_by_id(item_id)
            if not item:
                raise NotFoundError("Item", item_id)

        if not item.use_batch_system:
            return None

        self.db.flush()
        total = self.batches.sum_live_quantity(item.id)
        old_quantity = item.quantity_in_stock
        old_status = item.status
        changed = False

        if item.quantity_in_stock != total:
            item.quantity_in_stock = total
            changed = True

        if total == 0 and item.status != StockStatus.SOLD.value:
            item.status = StockStatus.SOLD.value
            changed = True

        if item.location_id is None:
            location_id = self._primary_location(item)
            if location_id is not None:
                item.location_id = location_id
                changed = True

        if changed:
            self.db.flush()
            logger.info(
                f"Reconciled item {item.id}: quantity {old_quantity} -> {total}, "
                f"status {old_status} -> {item.status}"
            )
        return ReconcileResult(item, old_quantity, total, old_status, changed)

    def reconcile_all(self, company_id: int = None) -> List[ReconcileResult]:
        results = []
        for item in self.items.list_by_company(company_id, use_batch_system=True):
            result = self.reconcile(item)
            if result is not None:
                results.append(result)
        return results
