"""
Item Service - items and the legacy item-level order commitment

Items in batch mode derive quantity_in_stock from their batches; items outside
it carry the quantity themselves and commit cash through their own status.
The two paths are kept apart by the use_batch_system guards below.
"""
from typing import Dict, List, Optional, Union
from decimal import Decimal
from enum import Enum
from sqlalchemy.orm import Session
from pydantic import BaseModel
import logging

from stockledger.models import Item, StockBatch, StockStatus
from stockledger.services.audit_service import AuditService, AuditAction
from stockledger.services.cash_flow_service import CashFlowService, to_money
from stockledger.services.errors import NotFoundError, ValidationFailedError
from stockledger.services.reconciliation_service import ReconciliationService
from stockledger.services.repositories import CompanyRepository, ItemRepository, StockBatchRepository
from stockledger.services.transaction import run_atomic
from stockledger.services.validation_service import ValidationService

logger = logging.getLogger(__name__)

NOT_NULLABLE = (
    "name", "status", "use_batch_system", "quantity_in_stock",
    "cost_per_unit_usd", "freight_cost_usd", "selling_price_srd",
)
MONEY_FIELDS = ("cost_per_unit_usd", "freight_cost_usd", "selling_price_srd")


def _item_snapshot(item: Item) -> Dict:
    return {
        "status": item.status,
        "use_batch_system": item.use_batch_system,
        "quantity_in_stock": item.quantity_in_stock,
        "cost_per_unit_usd": item.cost_per_unit_usd,
        "freight_cost_usd": item.freight_cost_usd,
        "location_id": item.location_id,
    }


class ItemService:
    def __init__(self, db: Session, company_id: int = None, actor=None):
        self.db = db
        self.company_id = company_id
        self.actor = actor
        self.companies = CompanyRepository(db)
        self.items = ItemRepository(db)
        self.batches = StockBatchRepository(db)
        self.validator = ValidationService(db, company_id)
        self.cash = CashFlowService(db)
        self.reconciliation = ReconciliationService(db)
        self.audit = AuditService(db)

    def get_by_id(self, item_id: int) -> Item:
        return self.validator.require_item(item_id)

    def list(self, status: str = None, use_batch_system: bool = None) -> List[Item]:
        return self.items.list_by_company(self.company_id, status, use_batch_system)

    # ==================== CREATE ====================

    def create(self, data: Union[BaseModel, Dict]) -> Item:
        payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        if isinstance(payload.get("status"), Enum):
            payload["status"] = payload["status"].value
        return run_atomic(self.db, lambda: self._create(dict(payload)), "create item")

    def _create(self, payload: Dict) -> Item:
        company_id = payload.get("company_id") or self.company_id
        if company_id is None:
            raise ValidationFailedError("company_id is required")
        if self.company_id and company_id != self.company_id:
            raise NotFoundError("Company", company_id)
        if not self.companies.get_by_id(company_id):
            raise NotFoundError("Company", company_id)

        self.validator.validate_item_fields(payload, company_id)

        use_batch_system = payload.get("use_batch_system", True)
        item = Item(
            name=payload["name"],
            description=payload.get("description"),
            status=payload.get("status") or StockStatus.TO_ORDER.value,
            use_batch_system=use_batch_system,
            # derived from batches in batch mode
            quantity_in_stock=0 if use_batch_system else (payload.get("quantity_in_stock") or 0),
            cost_per_unit_usd=to_money(payload.get("cost_per_unit_usd")),
            freight_cost_usd=to_money(payload.get("freight_cost_usd")),
            selling_price_srd=to_money(payload.get("selling_price_srd")),
            company_id=company_id,
            location_id=payload.get("location_id"),
            assigned_user_id=payload.get("assigned_user_id"),
        )

        self.cash.apply_item_status_change(item, {}, creating=True)

        self.db.add(item)
        self.db.flush()

        self.audit.log(
            action=AuditAction.CREATE,
            resource_type="Item",
            resource_id=item.id,
            description=f"Created item {item.name}",
            new_values=_item_snapshot(item),
            actor=self.actor,
            company_id=company_id
        )
        return item

    # ==================== UPDATE ====================

    def _check_mode_switch(self, item: Item, changes: Dict) -> Optional[bool]:
        """Returns the new use_batch_system value when it changes, else None"""
        if "use_batch_system" not in changes or changes["use_batch_system"] == item.use_batch_system:
            return None

        to_order = StockStatus.TO_ORDER.value
        if changes["use_batch_system"]:
            if item.status == to_order or changes.get("status") == to_order:
                raise ValidationFailedError(
                    "cannot switch to the batch system while the item's order is outstanding"
                )
        elif self.batches.count_for_item(item.id) > 0:
            raise ValidationFailedError(
                "cannot leave the batch system while the item still has batches"
            )
        return changes["use_batch_system"]

    def update(self, item_id: int, data: Union[BaseModel, Dict]) -> Item:
        changes = data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else dict(data)
        if isinstance(changes.get("status"), Enum):
            changes["status"] = changes["status"].value
        return run_atomic(self.db, lambda: self._update(item_id, dict(changes)), "update item")

    def _update(self, item_id: int, changes: Dict) -> Item:
        item = self.validator.require_item(item_id, for_update=True)

        nulls = [f"{field} cannot be null" for field in NOT_NULLABLE if field in changes and changes[field] is None]
        if nulls:
            raise ValidationFailedError(nulls)
        self.validator.validate_item_fields(changes, item.company_id)

        switched_to = self._check_mode_switch(item, changes)
        batch_mode_after = item.use_batch_system if switched_to is None else switched_to

        if batch_mode_after and switched_to is None and "quantity_in_stock" in changes \
                and changes["quantity_in_stock"] != item.quantity_in_stock:
            raise ValidationFailedError("quantity_in_stock is derived from batches for this item")

        old_values = _item_snapshot(item)

        # leaving batch mode counts as a fresh start for the legacy order path
        self.cash.apply_item_status_change(item, changes, creating=switched_to is False)

        for key, value in changes.items():
            if key in MONEY_FIELDS:
                value = to_money(value)
            setattr(item, key, value)
        self.db.flush()

        if switched_to:
            self._carry_over_legacy_stock(item)
            self.reconciliation.reconcile(item)

        self.audit.log(
            action=AuditAction.UPDATE,
            resource_type="Item",
            resource_id=item.id,
            description=f"Updated item {item.name}",
            old_values=old_values,
            new_values=_item_snapshot(item),
            actor=self.actor,
            company_id=item.company_id
        )
        return item

    def _carry_over_legacy_stock(self, item: Item) -> None:
        """Legacy units on hand become one batch so the switch loses no stock"""
        if not item.quantity_in_stock or self.batches.count_for_item(item.id) > 0:
            return
        status = item.status
        if status == StockStatus.SOLD.value:
            status = StockStatus.ARRIVED.value
        batch = self.batches.add(StockBatch(
            item_id=item.id,
            quantity=item.quantity_in_stock,
            original_quantity=item.quantity_in_stock,
            status=status,
            cost_per_unit_usd=to_money(item.cost_per_unit_usd),
            freight_cost_usd=to_money(item.freight_cost_usd),
            location_id=item.location_id,
            assigned_user_id=item.assigned_user_id,
            notes="Carried over from legacy stock",
        ))
        logger.info(f"Moved {batch.quantity} legacy units of item {item.id} into batch {batch.id}")

    # ==================== DELETE ====================

    def delete(self, item_id: int) -> Decimal:
        return run_atomic(self.db, lambda: self._delete(item_id), "delete item")

    def _delete(self, item_id: int) -> Decimal:
        item = self.validator.require_item(item_id, for_update=True)
        if self.batches.count_for_item(item.id) > 0:
            raise ValidationFailedError("cannot delete an item that still has batches")

        refunded = self.cash.release_item_order(item)
        old_values = _item_snapshot(item)
        company_id = item.company_id

        self.db.delete(item)
        self.db.flush()

        self.audit.log(
            action=AuditAction.DELETE,
            resource_type="Item",
            resource_id=item_id,
            description=f"Deleted item {item_id}",
            old_values=old_values,
            actor=self.actor,
            company_id=company_id
        )
        return refunded

    # ==================== RECONCILE ====================

    def reconcile(self, item_id: int):
        def _reconcile():
            item = self.validator.require_item(item_id, for_update=True)
            if not item.use_batch_system:
                raise ValidationFailedError(f"item {item_id} does not use the batch system")
            result = self.reconciliation.reconcile(item)
            if result.changed:
                self.audit.log(
                    action=AuditAction.RECONCILE,
                    resource_type="Item",
                    resource_id=item.id,
                    description=f"Reconciled quantity {result.old_quantity} -> {result.new_quantity}",
                    old_values={"quantity_in_stock": result.old_quantity, "status": result.old_status},
                    new_values={"quantity_in_stock": result.new_quantity, "status": result.new_status},
                    actor=self.actor,
                    company_id=item.company_id
                )
            return result

        return run_atomic(self.db, _reconcile, "reconcile item")
