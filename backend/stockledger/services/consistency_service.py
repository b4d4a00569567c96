"""
Consistency Service - diagnostics over the stock ledger

Compares each batch-mode item's cached quantity against its live batches
(Sold batches excluded, the rule reconciliation uses), and checks balances
and location ownership. Optionally repairs quantity mismatches.
"""
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from stockledger.models import Company, Item, Location, StockBatch
from stockledger.services.reconciliation_service import ReconciliationService
from stockledger.services.repositories import ItemRepository, StockBatchRepository

logger = logging.getLogger(__name__)


class ConsistencyService:
    def __init__(self, db: Session):
        self.db = db
        self.items = ItemRepository(db)
        self.batches = StockBatchRepository(db)
        self.reconciliation = ReconciliationService(db)

    def check_item(self, item: Item, fix: bool = False) -> Dict:
        batch_total = self.batches.sum_live_quantity(item.id)
        batch_count = self.batches.count_for_item(item.id)
        item_quantity = item.quantity_in_stock
        difference = item_quantity - batch_total
        valid = difference == 0
        fixed = False

        if valid:
            message = "Consistent"
        else:
            message = (
                f"Item shows {item_quantity} but live batches total {batch_total}"
            )
            if fix:
                self.reconciliation.reconcile(item)
                fixed = True
                message += "; reconciled"

        return {
            "item_id": item.id,
            "item_name": item.name,
            "valid": valid,
            "item_quantity": item_quantity,
            "batch_total": batch_total,
            "difference": difference,
            "batch_count": batch_count,
            "fixed": fixed,
            "message": message,
        }

    def check_cash_balances(self, company_id: int = None) -> List[str]:
        query = self.db.query(Company)
        if company_id:
            query = query.filter(Company.id == company_id)
        errors = []
        for company in query.all():
            if company.cash_balance_usd < 0:
                errors.append(f"Company {company.id} has a negative USD balance ({company.cash_balance_usd})")
            if company.cash_balance_srd < 0:
                errors.append(f"Company {company.id} has a negative SRD balance ({company.cash_balance_srd})")
        return errors

    def check_location_references(self, company_id: int = None) -> List[str]:
        errors = []

        items = self.db.query(Item, Location).join(Location, Item.location_id == Location.id).filter(
            Location.company_id != Item.company_id
        )
        if company_id:
            items = items.filter(Item.company_id == company_id)
        for item, location in items.all():
            errors.append(
                f"Item {item.id} references location {location.id} of company {location.company_id}"
            )

        batches = self.db.query(StockBatch, Item, Location).join(
            Item, StockBatch.item_id == Item.id
        ).join(
            Location, StockBatch.location_id == Location.id
        ).filter(Location.company_id != Item.company_id)
        if company_id:
            batches = batches.filter(Item.company_id == company_id)
        for batch, item, location in batches.all():
            errors.append(
                f"Batch {batch.id} of item {item.id} references location {location.id} "
                f"of company {location.company_id}"
            )
        return errors

    def check_all(self, company_id: Optional[int] = None, fix: bool = False) -> Dict:
        """
        Full consistency report.

        Items outside the batch system are skipped for the quantity check but
        reported as a warning when they still own batches.
        """
        results = []
        warnings = []

        for item in self.items.list_by_company(company_id):
            if not item.use_batch_system:
                if self.batches.count_for_item(item.id):
                    warnings.append(f"Item {item.id} ({item.name}) has batches but does not use the batch system")
                continue
            results.append(self.check_item(item, fix=fix))

        errors = self.check_cash_balances(company_id) + self.check_location_references(company_id)
        mismatches = [r for r in results if not r["valid"] and not r["fixed"]]

        if mismatches or errors:
            logger.warning(
                f"Consistency check found {len(mismatches)} quantity mismatches and {len(errors)} errors"
            )

        return {
            "valid": not mismatches and not errors,
            "items": results,
            "errors": errors,
            "warnings": warnings,
        }
