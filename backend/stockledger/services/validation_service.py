"""
Validation Service - preconditions checked before any ledger write

Missing entities raise NotFoundError immediately; constraint violations are
collected so the caller sees every problem in one response.
"""
from typing import Dict, List, Optional, Tuple
from decimal import Decimal
from sqlalchemy.orm import Session

from stockledger.models import Item, Location, StockBatch
from stockledger.services.errors import NotFoundError, ValidationFailedError
from stockledger.services.repositories import (
    ItemRepository, LocationRepository, UserRepository, StockBatchRepository
)


class ValidationService:
    def __init__(self, db: Session, company_id: int = None):
        self.db = db
        self.company_id = company_id
        self.items = ItemRepository(db)
        self.locations = LocationRepository(db)
        self.users = UserRepository(db)
        self.batches = StockBatchRepository(db)

    # ==================== LOOKUPS ====================

    def require_item(self, item_id: int, for_update: bool = False) -> Item:
        if for_update:
            item = self.items.get_for_update(item_id, self.company_id)
        else:
            item = self.items.get_by_id(item_id, self.company_id)
        if not item:
            raise NotFoundError("Item", item_id)
        return item

    def require_batch(self, batch_id: int, for_update: bool = False) -> StockBatch:
        if for_update:
            batch = self.batches.get_for_update(batch_id, self.company_id)
        else:
            batch = self.batches.get_by_id(batch_id, self.company_id)
        if not batch:
            raise NotFoundError("Batch", batch_id)
        return batch

    # ==================== FIELD CHECKS ====================

    def _check_non_negative(self, data: Dict, errors: List[str]) -> None:
        quantity = data.get("quantity")
        if quantity is not None and quantity < 0:
            errors.append("quantity must not be negative")
        for field in ("cost_per_unit_usd", "freight_cost_usd"):
            value = data.get(field)
            if value is not None and Decimal(str(value)) < 0:
                errors.append(f"{field} must not be negative")

    def _check_location(self, location_id: Optional[int], company_id: int, errors: List[str]) -> Optional[Location]:
        if location_id is None:
            return None
        location = self.locations.get_by_id(location_id)
        if not location:
            raise NotFoundError("Location", location_id)
        if location.company_id != company_id:
            errors.append(f"location {location_id} belongs to a different company")
        return location

    def _check_assigned_user(self, user_id: Optional[int], company_id: int, errors: List[str]) -> None:
        if user_id is None:
            return
        user = self.users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        if user.company_id != company_id:
            errors.append(f"user {user_id} belongs to a different company")

    @staticmethod
    def _raise_if(errors: List[str]) -> None:
        if errors:
            raise ValidationFailedError(errors)

    # ==================== BATCH OPERATIONS ====================

    def validate_batch_create(self, data: Dict) -> Item:
        """Checks for CreateBatch; returns the owning item locked for update"""
        errors: List[str] = []
        if data.get("item_id") is None:
            errors.append("item_id is required")
        if data.get("quantity") is None:
            errors.append("quantity is required")
        if data.get("cost_per_unit_usd") is None:
            errors.append("cost_per_unit_usd is required")
        self._raise_if(errors)

        item = self.require_item(data["item_id"], for_update=True)
        if not item.use_batch_system:
            errors.append(f"item {item.id} does not use the batch system")
        self._check_non_negative(data, errors)
        self._check_location(data.get("location_id"), item.company_id, errors)
        self._check_assigned_user(data.get("assigned_user_id"), item.company_id, errors)
        self._raise_if(errors)
        return item

    def validate_batch_update(self, batch: StockBatch, changes: Dict) -> None:
        errors: List[str] = []
        company_id = batch.item.company_id
        for field in ("quantity", "cost_per_unit_usd", "freight_cost_usd"):
            if field in changes and changes[field] is None:
                errors.append(f"{field} cannot be null")
        if "status" in changes and changes["status"] is None:
            errors.append("status cannot be null")
        self._check_non_negative(changes, errors)
        if "location_id" in changes:
            self._check_location(changes["location_id"], company_id, errors)
        if "assigned_user_id" in changes:
            self._check_assigned_user(changes["assigned_user_id"], company_id, errors)
        self._raise_if(errors)

    def validate_transfer(
        self,
        batch: StockBatch,
        to_location_id: int,
        quantity: Optional[int]
    ) -> Tuple[Location, int]:
        """Returns the destination and the effective transfer quantity"""
        location = self.locations.get_by_id(to_location_id)
        if not location:
            raise NotFoundError("Location", to_location_id)

        errors: List[str] = []
        amount = batch.quantity if quantity is None else quantity
        if amount <= 0:
            errors.append("transfer quantity must be greater than zero")
        elif amount > batch.quantity:
            errors.append(
                f"transfer quantity {amount} exceeds available quantity {batch.quantity}"
            )
        if location.company_id != batch.item.company_id:
            errors.append(f"location {to_location_id} belongs to a different company")
        elif batch.location_id == location.id:
            errors.append("batch is already at the target location")
        self._raise_if(errors)
        return location, amount

    # ==================== ITEM OPERATIONS ====================

    def validate_item_fields(self, data: Dict, company_id: int) -> None:
        errors: List[str] = []
        if data.get("quantity_in_stock") is not None and data["quantity_in_stock"] < 0:
            errors.append("quantity_in_stock must not be negative")
        for field in ("cost_per_unit_usd", "freight_cost_usd", "selling_price_srd"):
            value = data.get(field)
            if value is not None and Decimal(str(value)) < 0:
                errors.append(f"{field} must not be negative")
        if data.get("location_id") is not None:
            self._check_location(data["location_id"], company_id, errors)
        if data.get("assigned_user_id") is not None:
            self._check_assigned_user(data["assigned_user_id"], company_id, errors)
        self._raise_if(errors)
